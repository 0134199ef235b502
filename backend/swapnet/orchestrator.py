"""
Task orchestration: the entry points the studio UI calls.

Each entry point builds a GenerationTask, composes and encodes the request,
runs the retry-wrapped backend call(s) and normalizes the reply. Fan-out
entry points start all attempts at once and aggregate with a named policy:
try-on variants use AnyOfN (fail only if every attempt failed), batch
background changes use BestEffort (never fail, possibly empty).
"""
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from . import config, gemini, prompts
from .credentials import CredentialStore
from .errors import (
    MalformedStructuredResponseError,
    MissingCredentialError,
    MissingGarmentError,
    MissingSubjectError,
    StudioError,
    as_studio_error,
)
from .fanout import AnyOfN, BestEffort, fan_out
from .models import GenerationTask, ImageAsset
from .responses import extract_image, extract_text
from .retry import with_retry

logger = logging.getLogger(__name__)

PROMPT_LIST_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "prompts": {
            "type": "ARRAY",
            "items": {"type": "STRING"},
        }
    },
}


class StudioOrchestrator:
    def __init__(
        self,
        credentials: CredentialStore,
        *,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        max_attempts: int = config.MAX_ATTEMPTS,
        base_delay: float = config.RETRY_BASE_DELAY_S,
        timeout_s: float = config.HTTP_TIMEOUT_S,
        text_model_id: str = config.DEFAULT_TEXT_MODEL,
    ):
        self.credentials = credentials
        self.client_factory = client_factory or (lambda: httpx.AsyncClient(timeout=timeout_s))
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.text_model_id = text_model_id

    # --- helpers ---

    def _require_api_key(self) -> str:
        api_key = self.credentials.resolve()
        if not api_key:
            raise MissingCredentialError()
        return api_key

    @asynccontextmanager
    async def _client(self):
        async with self.client_factory() as client:
            yield client

    async def _call(self, operation):
        """Retry-wrapped call; anything that escapes is a StudioError."""
        try:
            return await with_retry(operation, max_attempts=self.max_attempts, base_delay=self.base_delay)
        except StudioError:
            raise
        except Exception as e:
            logger.error(f"Generation API error: {type(e).__name__}: {e}", exc_info=True)
            raise as_studio_error(e) from e

    async def _generate_image(self, client: httpx.AsyncClient, api_key: str, task: GenerationTask, parts_or_prompt) -> str:
        """One attempt: retry-wrapped backend call followed by normalization."""
        if task.uses_imagen:
            async def operation():
                return await gemini.predict_images(
                    client,
                    api_key=api_key,
                    model_id=task.model_id,
                    prompt=parts_or_prompt,
                    aspect_ratio=task.aspect_ratio,
                )
        else:
            async def operation():
                return await gemini.generate_content(
                    client,
                    api_key=api_key,
                    model_id=task.model_id,
                    parts=parts_or_prompt,
                    generation_config={
                        "responseModalities": ["TEXT", "IMAGE"],
                        "imageConfig": gemini.image_config(task.aspect_ratio, task.resolution),
                    },
                    safety_settings=gemini.DEFAULT_SAFETY_SETTINGS,
                )

        data = await self._call(operation)
        return extract_image(data)

    # --- entry points ---

    async def generate_virtual_try_on(
        self,
        subject: Optional[ImageAsset],
        garment: Optional[ImageAsset] = None,
        garment_detail: Optional[ImageAsset] = None,
        accessory: Optional[ImageAsset] = None,
        instructions: str = "",
        aspect_ratio: str = config.DEFAULT_ASPECT_RATIO,
        resolution: str = config.DEFAULT_RESOLUTION,
        model_id: str = config.DEFAULT_IMAGE_MODEL,
        variant_count: int = 1,
    ) -> List[str]:
        """
        Dress the subject in the garment and/or accessory.

        Runs `variant_count` independent attempts concurrently and returns every
        image produced, in completion order. Raises only when no attempt
        succeeded, with the last-settled failure.
        """
        if subject is None:
            raise MissingSubjectError()
        if garment is None and accessory is None:
            raise MissingGarmentError()
        if variant_count < 1:
            raise ValueError("variant_count must be >= 1")
        api_key = self._require_api_key()

        task = GenerationTask(
            kind="try_on",
            model_id=model_id,
            subject=subject,
            garment=garment,
            garment_detail=garment_detail,
            accessory=accessory,
            instructions=instructions or "",
            aspect_ratio=aspect_ratio,
            resolution=resolution,
            variant_count=variant_count,
        )
        logger.info(
            f"Try-on requested: model={model_id}, variants={variant_count}, "
            f"images={list(task.image_roles())}, aspect={aspect_ratio}, size={resolution}"
        )

        request = _build_request(task)

        async with self._client() as client:
            images = await fan_out(
                [lambda: self._generate_image(client, api_key, task, request) for _ in range(variant_count)],
                AnyOfN(),
            )
        logger.info(f"Try-on completed with {len(images)}/{variant_count} image(s)")
        return images

    async def change_image_background(
        self,
        image: Union[ImageAsset, str, None],
        prompt_text: str = prompts.DEFAULT_BACKGROUND_PROMPT,
        detail_image: Optional[ImageAsset] = None,
        aspect_ratio: str = config.DEFAULT_ASPECT_RATIO,
        resolution: str = config.DEFAULT_RESOLUTION,
        model_id: str = config.DEFAULT_IMAGE_MODEL,
        custom_bg_image: Optional[ImageAsset] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> str:
        """
        Replace the background behind the subject. `image` may be an ImageAsset
        or a data URL (e.g. a try-on result passed straight back in).
        """
        if image is None:
            raise MissingSubjectError()
        subject = ImageAsset.from_data_url(image) if isinstance(image, str) else image
        api_key = self._require_api_key()

        task = GenerationTask(
            kind="background_change",
            model_id=model_id,
            subject=subject,
            detail=detail_image,
            custom_background=custom_bg_image,
            instructions=prompt_text or "",
            aspect_ratio=aspect_ratio,
            resolution=resolution,
        )
        logger.info(f"Background change requested: model={model_id}, images={list(task.image_roles())}")

        request = _build_request(task)

        if client is not None:
            return await self._generate_image(client, api_key, task, request)
        async with self._client() as own_client:
            result = await self._generate_image(own_client, api_key, task, request)
        logger.info("Background change completed")
        return result

    async def change_image_background_batch(
        self,
        image: Union[ImageAsset, str, None],
        prompt_list: List[str],
        detail_image: Optional[ImageAsset] = None,
        aspect_ratio: str = config.DEFAULT_ASPECT_RATIO,
        resolution: str = config.DEFAULT_RESOLUTION,
        model_id: str = config.DEFAULT_IMAGE_MODEL,
        custom_bg_image: Optional[ImageAsset] = None,
    ) -> List[str]:
        """One background change per prompt, concurrently. Failed prompts are dropped."""
        if image is None:
            raise MissingSubjectError()
        self._require_api_key()
        logger.info(f"Batch background change requested for {len(prompt_list)} prompt(s)")

        async with self._client() as client:
            def attempt(prompt_text):
                return lambda: self.change_image_background(
                    image,
                    prompt_text,
                    detail_image,
                    aspect_ratio,
                    resolution,
                    model_id,
                    custom_bg_image,
                    client=client,
                )

            images = await fan_out([attempt(p) for p in prompt_list], BestEffort())
        logger.info(f"Batch background change produced {len(images)}/{len(prompt_list)} image(s)")
        return images

    async def analyze_outfit(self, image: Optional[ImageAsset], detail_image: Optional[ImageAsset] = None) -> str:
        """Free-text outfit description for video generation. Empty text is returned as ""."""
        if image is None:
            raise MissingSubjectError()
        api_key = self._require_api_key()
        parts = _build_request(
            GenerationTask(kind="outfit_analysis", model_id=self.text_model_id, subject=image, detail=detail_image)
        )

        async with self._client() as client:
            async def operation():
                return await gemini.generate_content(
                    client,
                    api_key=api_key,
                    model_id=self.text_model_id,
                    parts=parts,
                )

            data = await self._call(operation)

        text = extract_text(data)
        if not text:
            logger.warning("Outfit analysis returned no text")
        return text

    async def generate_prompts_from_analysis(self, analysis_text: str, count: int) -> List[str]:
        """
        Ask for `count` video motion prompts as structured JSON and return the
        `prompts` array. Malformed JSON raises MalformedStructuredResponseError.
        """
        api_key = self._require_api_key()

        async with self._client() as client:
            async def operation():
                return await gemini.generate_content(
                    client,
                    api_key=api_key,
                    model_id=self.text_model_id,
                    parts=[prompts.text_part(analysis_text or "")],
                    generation_config={
                        "responseMimeType": "application/json",
                        "responseSchema": PROMPT_LIST_SCHEMA,
                    },
                    system_instruction=prompts.compose_prompt_instruction(count),
                )

            data = await self._call(operation)

        text = extract_text(data)
        try:
            parsed: Any = json.loads(text or "{}")
        except json.JSONDecodeError as e:
            logger.error(f"Could not parse prompt list JSON: {text[:300]}")
            raise MalformedStructuredResponseError(f"The AI returned malformed JSON: {e}") from e

        if not isinstance(parsed, dict):
            return []
        prompt_list = parsed.get("prompts") or []
        if not isinstance(prompt_list, list):
            raise MalformedStructuredResponseError("The AI returned a non-list 'prompts' field.")
        return [str(p) for p in prompt_list]


def _build_request(task: GenerationTask) -> Union[str, List[Dict[str, Any]]]:
    """Request body content for a task: a text prompt for Imagen models, otherwise an ordered part list."""
    if task.uses_imagen:
        if task.kind == "try_on":
            return prompts.compose_imagen_try_on(task.instructions)
        if task.kind == "background_change":
            return prompts.compose_imagen_background(task.instructions)
        raise ValueError(f"Imagen models cannot run {task.kind}")

    if task.kind == "try_on":
        return prompts.compose_try_on(
            task.subject, task.garment, task.garment_detail, task.accessory, task.instructions, task.aspect_ratio
        )
    if task.kind == "background_change":
        return prompts.compose_background_change(
            task.subject, task.detail, task.custom_background, task.instructions, task.aspect_ratio
        )
    if task.kind == "outfit_analysis":
        return prompts.compose_outfit_analysis(task.subject, task.detail)
    raise ValueError(f"Unknown task kind: {task.kind}")

"""
Gemini / Imagen REST transport.

Direct REST calls with API key authentication (passed as the `key` query
parameter); no SDK or OAuth2. Every HTTP call goes through `_gemini_post_json`
so tests can stub the network. HTTP failures are mapped onto the StudioError
taxonomy here, so callers only ever see typed errors.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from .errors import (
    BackendError,
    InvalidCredentialError,
    ModelNotFoundError,
    PermissionDeniedError,
    TransientBackendError,
)
from .retry import is_transient

logger = logging.getLogger(__name__)

BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

# One safety policy for every image request (try-on and background change).
DEFAULT_SAFETY_SETTINGS: List[Dict[str, str]] = [
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
]


async def _gemini_post_json(
    client: httpx.AsyncClient,
    *,
    url: str,
    headers: Dict[str, str],
    payload: Dict[str, Any],
) -> httpx.Response:
    """
    Thin wrapper for Gemini HTTP calls to make the orchestration testable (can be monkeypatched).
    """
    return await client.post(url, headers=headers, json=payload)


def image_config(aspect_ratio: Optional[str], resolution: Optional[str]) -> Dict[str, str]:
    config: Dict[str, str] = {}
    if aspect_ratio:
        config["aspectRatio"] = aspect_ratio
    if resolution:
        config["imageSize"] = resolution
    return config


def classify_http_error(status_code: int, error_text: str) -> Exception:
    """Map a failed HTTP reply onto the error taxonomy."""
    snippet = (error_text or "")[:500]
    message = f"Gemini API error {status_code}: {snippet}"

    if status_code == 403 or "PERMISSION_DENIED" in snippet:
        return PermissionDeniedError()
    if status_code == 404:
        return ModelNotFoundError()
    if status_code in (400, 401) and "API key" in snippet:
        return InvalidCredentialError()
    if status_code in (500, 503) or is_transient(Exception(snippet)):
        return TransientBackendError(message)
    return BackendError(message)


async def _post(client: httpx.AsyncClient, *, api_key: str, model_id: str, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    endpoint = f"{BASE_URL}/{model_id}:{method}"
    try:
        response = await _gemini_post_json(
            client,
            url=f"{endpoint}?key={api_key}",
            headers={"Content-Type": "application/json"},
            payload=payload,
        )
    except httpx.TimeoutException as e:
        logger.error(f"Gemini request to {model_id} timed out: {e}")
        raise TransientBackendError(f"Request deadline expired while calling {model_id}.") from e
    except httpx.HTTPError as e:
        logger.error(f"Gemini request to {model_id} failed: {e}")
        raise BackendError(f"Could not reach the generation API: {e}") from e

    if not response.is_success:
        error_text = response.text
        logger.error(f"Gemini API error ({model_id}:{method}): {response.status_code} - {error_text[:500]}")
        raise classify_http_error(response.status_code, error_text)

    try:
        return response.json()
    except ValueError as e:
        raise BackendError(f"Gemini API returned a non-JSON body: {response.text[:200]}") from e


async def generate_content(
    client: httpx.AsyncClient,
    *,
    api_key: str,
    model_id: str,
    parts: List[Dict[str, Any]],
    generation_config: Optional[Dict[str, Any]] = None,
    safety_settings: Optional[List[Dict[str, str]]] = None,
    system_instruction: Optional[str] = None,
) -> Dict[str, Any]:
    """POST models/<model_id>:generateContent and return the decoded JSON reply."""
    payload: Dict[str, Any] = {
        "contents": [
            {
                "role": "user",
                "parts": parts,
            }
        ],
    }
    if generation_config:
        payload["generationConfig"] = generation_config
    if safety_settings:
        payload["safetySettings"] = safety_settings
    if system_instruction:
        payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}

    logger.info(f"Calling {model_id}:generateContent with {len(parts)} part(s)")
    return await _post(client, api_key=api_key, model_id=model_id, method="generateContent", payload=payload)


async def predict_images(
    client: httpx.AsyncClient,
    *,
    api_key: str,
    model_id: str,
    prompt: str,
    aspect_ratio: Optional[str] = None,
    sample_count: int = 1,
) -> Dict[str, Any]:
    """POST models/<model_id>:predict for Imagen text-to-image models."""
    parameters: Dict[str, Any] = {"sampleCount": sample_count}
    if aspect_ratio:
        parameters["aspectRatio"] = aspect_ratio
    payload = {
        "instances": [{"prompt": prompt}],
        "parameters": parameters,
    }
    logger.info(f"Calling {model_id}:predict")
    return await _post(client, api_key=api_key, model_id=model_id, method="predict", payload=payload)

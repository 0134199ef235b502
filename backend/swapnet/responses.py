"""
Response normalization.

Raw backend replies are parsed once into one of four shapes
(DirectImageList, CandidateResponse, TextResponse, MalformedResponse) and
everything downstream works on those. `extract_image` and `extract_text` handle
every shape explicitly; an unknown shape is a TypeError, not a silent fallthrough.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Union

from .encoding import to_data_url
from .errors import (
    GenerationInterruptedError,
    GenerationReturnedTextError,
    NoImageDataError,
    NoResultError,
    SafetyBlockedError,
)

logger = logging.getLogger(__name__)

DIRECT_IMAGE_MEDIA_TYPE = "image/png"
FALLBACK_IMAGE_MEDIA_TYPE = "image/png"

SAFETY_FINISH_REASONS = {"SAFETY", "IMAGE_SAFETY", "CONTENT_FILTER", "PROHIBITED_CONTENT"}
INTERRUPTED_FINISH_REASONS = {"IMAGE_OTHER"}


@dataclass(frozen=True)
class InlineData:
    data: str
    mime_type: Optional[str] = None


@dataclass(frozen=True)
class Part:
    inline_data: Optional[InlineData] = None
    text: Optional[str] = None
    thought: bool = False


@dataclass(frozen=True)
class Candidate:
    finish_reason: Optional[str] = None
    parts: Tuple[Part, ...] = ()
    safety_ratings: Tuple[dict, ...] = ()


@dataclass(frozen=True)
class DirectImageList:
    images: Tuple[str, ...]


@dataclass(frozen=True)
class CandidateResponse:
    candidates: Tuple[Candidate, ...]
    block_reason: Optional[str] = None


@dataclass(frozen=True)
class TextResponse:
    text: str


@dataclass(frozen=True)
class MalformedResponse:
    reason: str
    raw: Any = field(default=None, repr=False)


ParsedResponse = Union[DirectImageList, CandidateResponse, TextResponse, MalformedResponse]


def _get(obj: dict, *names, default=None):
    # The REST API answers in camelCase; SDK dumps and older clients use snake_case.
    for name in names:
        if name in obj and obj[name] is not None:
            return obj[name]
    return default


def _parse_part(raw_part) -> Optional[Part]:
    if not isinstance(raw_part, dict):
        return None
    inline = _get(raw_part, "inlineData", "inline_data")
    inline_data = None
    if isinstance(inline, dict) and inline.get("data"):
        inline_data = InlineData(
            data=str(inline["data"]),
            mime_type=_get(inline, "mimeType", "mime_type"),
        )
    text = raw_part.get("text")
    return Part(
        inline_data=inline_data,
        text=str(text) if text else None,
        thought=bool(raw_part.get("thought")),
    )


def _parse_candidate(raw_candidate) -> Candidate:
    if not isinstance(raw_candidate, dict):
        return Candidate()
    content = raw_candidate.get("content") or {}
    raw_parts = (content.get("parts") or []) if isinstance(content, dict) else []
    parts = tuple(p for p in (_parse_part(rp) for rp in raw_parts) if p is not None)
    ratings = _get(raw_candidate, "safetyRatings", "safety_ratings", default=[]) or []
    finish_reason = _get(raw_candidate, "finishReason", "finish_reason")
    return Candidate(
        finish_reason=str(finish_reason).upper() if finish_reason else None,
        parts=parts,
        safety_ratings=tuple(r for r in ratings if isinstance(r, dict)),
    )


def _direct_images(raw: dict) -> Optional[List[str]]:
    generated = _get(raw, "generatedImages", "generated_images")
    if isinstance(generated, list):
        out = []
        for entry in generated:
            image = entry.get("image") if isinstance(entry, dict) else None
            if not isinstance(image, dict):
                continue
            data = _get(image, "imageBytes", "image_bytes")
            if data:
                out.append(str(data))
        return out

    predictions = raw.get("predictions")
    if isinstance(predictions, list):
        return [str(p["bytesBase64Encoded"]) for p in predictions if isinstance(p, dict) and p.get("bytesBase64Encoded")]
    return None


def parse_response(raw: Any) -> ParsedResponse:
    if not isinstance(raw, dict):
        return MalformedResponse(reason=f"expected a JSON object, got {type(raw).__name__}", raw=raw)

    images = _direct_images(raw)
    if images:
        return DirectImageList(images=tuple(images))

    if "candidates" in raw or "promptFeedback" in raw:
        candidates = raw.get("candidates")
        if not isinstance(candidates, list):
            candidates = []
        feedback = raw.get("promptFeedback") or {}
        return CandidateResponse(
            candidates=tuple(_parse_candidate(c) for c in candidates),
            block_reason=feedback.get("blockReason") if isinstance(feedback, dict) else None,
        )

    if isinstance(raw.get("text"), str):
        return TextResponse(text=raw["text"])

    if images is not None:
        # An empty image list with nothing else to go on
        return CandidateResponse(candidates=())

    return MalformedResponse(reason="no candidates, images or text in response", raw=raw)


def extract_image(raw: Any) -> str:
    """Return the generated image as a data URI, or raise the classified StudioError."""
    parsed = raw if isinstance(raw, (DirectImageList, CandidateResponse, TextResponse, MalformedResponse)) else parse_response(raw)

    if isinstance(parsed, DirectImageList):
        return to_data_url(DIRECT_IMAGE_MEDIA_TYPE, parsed.images[0])

    if isinstance(parsed, MalformedResponse):
        logger.error(f"Malformed generation response: {parsed.reason}")
        raise NoResultError()

    if isinstance(parsed, TextResponse):
        if parsed.text:
            raise GenerationReturnedTextError(parsed.text)
        raise NoImageDataError()

    if isinstance(parsed, CandidateResponse):
        if not parsed.candidates:
            if parsed.block_reason:
                raise NoResultError(f"The API returned no result (prompt blocked: {parsed.block_reason}).")
            raise NoResultError()

        candidate = parsed.candidates[0]
        if candidate.safety_ratings:
            logger.info(f"Safety ratings: {list(candidate.safety_ratings)}")

        if candidate.finish_reason in SAFETY_FINISH_REASONS:
            logger.warning(f"Candidate blocked by safety filter (finish reason {candidate.finish_reason})")
            raise SafetyBlockedError()

        if candidate.finish_reason in INTERRUPTED_FINISH_REASONS:
            raise GenerationInterruptedError()

        for part in candidate.parts:
            if part.inline_data is not None:
                return to_data_url(part.inline_data.mime_type or FALLBACK_IMAGE_MEDIA_TYPE, part.inline_data.data)

        for part in candidate.parts:
            if part.text:
                raise GenerationReturnedTextError(part.text)

        raise NoImageDataError()

    raise TypeError(f"Unhandled response shape: {type(parsed).__name__}")


def extract_text(raw: Any) -> str:
    """Plain text of the reply, or "" when there is none."""
    parsed = raw if isinstance(raw, (DirectImageList, CandidateResponse, TextResponse, MalformedResponse)) else parse_response(raw)

    if isinstance(parsed, TextResponse):
        return parsed.text
    if isinstance(parsed, CandidateResponse):
        if not parsed.candidates:
            return ""
        return "".join(p.text for p in parsed.candidates[0].parts if p.text and not p.thought)
    if isinstance(parsed, (DirectImageList, MalformedResponse)):
        return ""

    raise TypeError(f"Unhandled response shape: {type(parsed).__name__}")

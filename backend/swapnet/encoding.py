import io
import logging
from typing import Any, Dict, Tuple

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

FALLBACK_MEDIA_TYPE = "image/jpeg"


def strip_data_url(payload: str) -> str:
    """
    Remove a `data:<type>;base64,` style envelope, keeping everything after the first comma.
    Payloads without a comma pass through unchanged, so stripping twice is a no-op.
    """
    if "," in payload:
        return payload.split(",", 1)[1]
    return payload


def encode(asset) -> Tuple[str, str]:
    """Return (media_type, raw_base64_payload) for an ImageAsset without touching it."""
    return asset.mime_type, strip_data_url(asset.data)


def inline_part(asset) -> Dict[str, Any]:
    """Wire part for one image, in the REST snake_case form."""
    mime_type, payload = encode(asset)
    return {
        "inline_data": {
            "mime_type": mime_type,
            "data": payload,
        }
    }


def to_data_url(media_type: str, payload: str) -> str:
    return f"data:{media_type};base64,{payload}"


def sniff_media_type(raw: bytes) -> str:
    """Detect the media type from the image header. Falls back to JPEG when Pillow can't tell."""
    try:
        with Image.open(io.BytesIO(raw)) as im:
            fmt = im.format
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Could not detect image format, assuming {FALLBACK_MEDIA_TYPE}: {e}")
        return FALLBACK_MEDIA_TYPE
    return Image.MIME.get(fmt or "", FALLBACK_MEDIA_TYPE)

import base64
import uuid
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .encoding import sniff_media_type, to_data_url


class ImageAsset(BaseModel):
    """
    A user-supplied or library-stored image.

    `data` is the transportable payload, normally a `data:<type>;base64,...` URL.
    Serialized with camelCase keys so stored libraries stay compatible with the
    browser front end.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    data: str
    mime_type: str = Field(alias="mimeType")
    preview_url: str = Field(default="", alias="previewUrl")

    @classmethod
    def from_bytes(cls, raw: bytes, content_type: Optional[str] = None, asset_id: Optional[str] = None) -> "ImageAsset":
        """Build an asset from uploaded bytes, sniffing the type when none (or a non-image one) is declared."""
        if not raw:
            raise ValueError("Empty image")
        mime_type = content_type if content_type and content_type.startswith("image/") else sniff_media_type(raw)
        data_url = to_data_url(mime_type, base64.b64encode(raw).decode("utf-8"))
        return cls(
            id=asset_id or uuid.uuid4().hex,
            data=data_url,
            mime_type=mime_type,
            preview_url=data_url,
        )

    @classmethod
    def from_data_url(cls, data_url: str, default_mime: str = "image/png") -> "ImageAsset":
        """Wrap a data URL (e.g. a previous generation result) as an asset."""
        mime_type = default_mime
        if data_url.startswith("data:") and ";" in data_url:
            mime_type = data_url[len("data:"):data_url.index(";")] or default_mime
        return cls(id=uuid.uuid4().hex, data=data_url, mime_type=mime_type, preview_url=data_url)

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True)


class GenerationTask(BaseModel):
    """One in-flight request. Built per orchestrator call and never retained."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    kind: str  # try_on | background_change | outfit_analysis | prompt_generation
    model_id: str
    subject: Optional[ImageAsset] = None
    garment: Optional[ImageAsset] = None
    garment_detail: Optional[ImageAsset] = None
    accessory: Optional[ImageAsset] = None
    detail: Optional[ImageAsset] = None
    custom_background: Optional[ImageAsset] = None
    instructions: str = ""
    aspect_ratio: Optional[str] = None
    resolution: Optional[str] = None
    variant_count: int = 1

    @property
    def uses_imagen(self) -> bool:
        return self.model_id.startswith("imagen-")

    def image_roles(self) -> Tuple[str, ...]:
        roles = ("subject", "garment", "garment_detail", "accessory", "detail", "custom_background")
        return tuple(r for r in roles if getattr(self, r) is not None)

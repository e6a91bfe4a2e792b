"""
Catalog schemas.

Per-kind media attribute payloads plus admin patch models. The catalog
tree is generic; everything that differs between video templates,
pictures, audio and video content is described here.
"""

from decimal import Decimal
from typing import Dict, List, Literal, NamedTuple, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

from marketplace.models.catalog import ContentKind


class _MediaAttributes(BaseModel):
    model_config = ConfigDict(extra="forbid")


class TemplateAttributes(_MediaAttributes):
    """Video template: preview clip plus QR artwork."""

    video_url: str = Field(..., min_length=1)
    qr_url: str = Field(..., min_length=1)


class PictureAttributes(_MediaAttributes):
    preview_image_url: str = Field(..., min_length=1)
    download_image_url: str = Field(..., min_length=1)
    format: Literal["jpg", "jpeg", "png", "gif", "webp"]
    width: Optional[int] = Field(None, ge=0)
    height: Optional[int] = Field(None, ge=0)
    file_size: Optional[int] = Field(None, ge=0)
    category: str = "other"
    tags: List[str] = Field(default_factory=list)


class AudioAttributes(_MediaAttributes):
    preview_audio_url: str = Field(..., min_length=1)
    download_audio_url: str = Field(..., min_length=1)
    format: Literal["mp3", "wav", "aac", "flac", "ogg", "m4a"]
    thumbnail_url: Optional[str] = None
    duration: Optional[float] = Field(None, ge=0, description="Seconds")
    file_size: Optional[int] = Field(None, ge=0)
    bitrate: Optional[int] = Field(None, ge=0, description="kbps")
    sample_rate: Optional[int] = Field(None, ge=0, description="Hz")
    artist: Optional[str] = None
    album: Optional[str] = None
    category: str = "other"
    tags: List[str] = Field(default_factory=list)


class VideoAttributes(_MediaAttributes):
    preview_video_url: str = Field(..., min_length=1)
    download_video_url: str = Field(..., min_length=1)
    format: Literal["mp4", "mov", "avi", "webm", "mkv"]
    thumbnail_url: Optional[str] = None
    duration: Optional[float] = Field(None, ge=0, description="Seconds")
    width: Optional[int] = Field(None, ge=0)
    height: Optional[int] = Field(None, ge=0)
    fps: Optional[float] = Field(None, ge=0)
    file_size: Optional[int] = Field(None, ge=0)
    category: str = "other"
    tags: List[str] = Field(default_factory=list)


ATTRIBUTE_SCHEMAS: Dict[ContentKind, Type[_MediaAttributes]] = {
    ContentKind.TEMPLATE: TemplateAttributes,
    ContentKind.PICTURE: PictureAttributes,
    ContentKind.AUDIO: AudioAttributes,
    ContentKind.VIDEO: VideoAttributes,
}


class MediaFields(NamedTuple):
    """Attribute names holding the preview and downloadable media URLs."""

    preview: str
    download: str


MEDIA_FIELDS: Dict[ContentKind, MediaFields] = {
    # Templates ship a single clip; the QR artwork is the deliverable.
    ContentKind.TEMPLATE: MediaFields(preview="video_url", download="qr_url"),
    ContentKind.PICTURE: MediaFields(preview="preview_image_url", download="download_image_url"),
    ContentKind.AUDIO: MediaFields(preview="preview_audio_url", download="download_audio_url"),
    ContentKind.VIDEO: MediaFields(preview="preview_video_url", download="download_video_url"),
}


def media_urls(attributes: Optional[dict]) -> Dict[str, str]:
    """URL-valued attributes, used for purchase line snapshots."""
    return {
        key: value
        for key, value in (attributes or {}).items()
        if key.endswith("_url") and value
    }


class FolderUpdate(BaseModel):
    """Admin patch for folder metadata and pricing. Unset fields are left alone."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    base_price: Optional[Decimal] = Field(None, ge=0)
    discount_price: Optional[Decimal] = Field(None, ge=0)
    is_purchasable: Optional[bool] = None
    thumbnail_url: Optional[str] = None
    cover_photo_url: Optional[str] = None
    preview_video_url: Optional[str] = None


class ItemUpdate(BaseModel):
    """
    Admin patch for an item.

    attributes is merged into the stored payload and re-validated against
    the kind's schema.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    base_price: Optional[Decimal] = Field(None, ge=0)
    discount_price: Optional[Decimal] = Field(None, ge=0)
    attributes: Optional[dict] = None

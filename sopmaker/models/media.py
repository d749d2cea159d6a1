"""Media attached to SOP steps."""

from __future__ import annotations
from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel


MediaType = Literal["image", "video", "document"]
DisplayMode = Literal["contain", "cover"]

ALLOWED_MEDIA_TYPES: tuple[str, ...] = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "video/mp4",
    "application/pdf",
)


def media_type_for(content_type: str) -> MediaType:
    """Classify a MIME type into the coarse media type stored on the row."""
    if content_type.startswith("image/"):
        return "image"
    if content_type.startswith("video/"):
        return "video"
    return "document"


class Media(BaseModel):
    id: UUID
    step_id: UUID
    type: MediaType
    url: str
    path: str | None = None
    caption: str | None = None
    display_mode: DisplayMode = "contain"
    content_type: str | None = None
    size_bytes: int | None = None
    order_index: int = 0
    created_at: datetime


class SignedUploadResponse(BaseModel):
    signed_url: str
    path: str
    method: Literal["PUT"] = "PUT"
    expires_in: int

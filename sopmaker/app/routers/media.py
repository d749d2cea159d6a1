"""Routes for media attached to SOP steps.

Files reach object storage one of two ways: proxied through `POST /api/media`,
or uploaded by the client to a signed URL from `POST /api/media/upload-url`
and then registered with `POST /api/steps/{step_id}/media`.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile
from pydantic import BaseModel, Field

from sopmaker.app.auth import get_optional_caller, require_viewer
from sopmaker.app.dependencies import (
    media_max_bytes,
    signed_url_expiration,
    storage_client,
)
from sopmaker.app.errors import BadRequestError, InternalError, NotFoundError
from sopmaker.app.guard import enforce, enforce_optional
from sopmaker.app.models import MessageResponse
from sopmaker.app.side_effects import schedule
from sopmaker.db.media import (
    create_media,
    delete_media,
    get_media_for_step,
    update_media,
)
from sopmaker.integrations.storage import (
    StorageClient,
    StorageError,
    build_media_path,
    media_path_prefix,
)
from sopmaker.models.account import Caller
from sopmaker.models.media import (
    ALLOWED_MEDIA_TYPES,
    DisplayMode,
    Media,
    SignedUploadResponse,
    media_type_for,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/media", tags=["media"])
step_media_router = APIRouter(prefix="/api/steps", tags=["media"])


# --- Request Models ---


class UploadUrlRequest(BaseModel):
    step_id: UUID
    filename: str = Field(min_length=1)
    content_type: str
    size_bytes: Optional[int] = Field(default=None, ge=0)


class RegisterMediaRequest(BaseModel):
    path: str = Field(min_length=1)
    content_type: str
    caption: Optional[str] = None
    display_mode: DisplayMode = "contain"
    size_bytes: Optional[int] = Field(default=None, ge=0)


class UpdateMediaRequest(BaseModel):
    caption: Optional[str] = None
    display_mode: Optional[DisplayMode] = None


# --- Helpers ---


def validate_upload(
    content_type: Optional[str], size_bytes: Optional[int], max_bytes: int
) -> str:
    """Check a file's MIME type and size against the upload policy.

    Returns:
        The accepted content type.

    Raises:
        BadRequestError: If the type isn't allowed or the file is too large.
    """
    if content_type not in ALLOWED_MEDIA_TYPES:
        raise BadRequestError(
            f"Invalid file type: {content_type}",
            details=f"Allowed types: {', '.join(ALLOWED_MEDIA_TYPES)}",
        )
    if size_bytes is not None and size_bytes > max_bytes:
        raise BadRequestError(
            "File too large",
            details=f"Maximum size is {max_bytes // (1024 * 1024)}MB",
        )
    return content_type


def _discard_object(storage: StorageClient, path: str) -> None:
    try:
        storage.remove([path])
    except StorageError:
        logger.warning(f"Could not remove orphaned object {path}")


# --- Endpoints ---


@router.get("", response_model=list[Media])
def list_media(
    step_id: UUID,
    caller: Optional[Caller] = Depends(get_optional_caller),
) -> list[Media]:
    """List a step's media in display order."""
    enforce_optional(caller, "step", step_id)
    return get_media_for_step(step_id)


@router.post("", status_code=201, response_model=Media)
def upload_media(
    step_id: UUID = Form(...),
    file: UploadFile = File(...),
    caption: Optional[str] = Form(None),
    display_mode: DisplayMode = Form("contain"),
    caller: Caller = Depends(require_viewer),
    storage: StorageClient = Depends(storage_client),
    max_bytes: int = Depends(media_max_bytes),
) -> Media:
    """Upload a file through the API and attach it to a step."""
    # One byte past the limit is enough to tell an oversized file apart.
    content = file.file.read(max_bytes + 1)
    content_type = validate_upload(file.content_type, len(content), max_bytes)

    ownership = enforce(caller, "step", step_id)
    path = build_media_path(
        caller.account_id, ownership.sop_id, step_id, file.filename or "upload"
    )
    try:
        url = storage.upload(path, content, content_type)
    except StorageError:
        raise InternalError("Failed to upload file")

    try:
        return create_media(
            step_id=step_id,
            type=media_type_for(content_type),
            url=url,
            path=path,
            caption=caption,
            display_mode=display_mode,
            content_type=content_type,
            size_bytes=len(content),
        )
    except LookupError:
        _discard_object(storage, path)
        raise NotFoundError(f"Step {step_id} not found")
    except Exception:
        logger.error(f"Failed to save media for step {step_id}", exc_info=True)
        _discard_object(storage, path)
        raise


@router.post("/upload-url", response_model=SignedUploadResponse)
def create_upload_url(
    request: UploadUrlRequest,
    caller: Caller = Depends(require_viewer),
    storage: StorageClient = Depends(storage_client),
    max_bytes: int = Depends(media_max_bytes),
    expires_in: int = Depends(signed_url_expiration),
) -> SignedUploadResponse:
    """Issue a signed URL the client can upload a file to directly."""
    validate_upload(request.content_type, request.size_bytes, max_bytes)
    ownership = enforce(caller, "step", request.step_id)
    path = build_media_path(
        caller.account_id, ownership.sop_id, request.step_id, request.filename
    )
    try:
        signed = storage.create_signed_upload_url(path, expires_in)
    except StorageError:
        raise InternalError("Failed to create upload URL")
    return SignedUploadResponse(
        signed_url=signed.signed_url, path=signed.path, expires_in=expires_in
    )


@step_media_router.post("/{step_id}/media", status_code=201, response_model=Media)
def register_media(
    step_id: UUID,
    request: RegisterMediaRequest,
    caller: Caller = Depends(require_viewer),
    storage: StorageClient = Depends(storage_client),
    max_bytes: int = Depends(media_max_bytes),
) -> Media:
    """Record a file the client already uploaded through a signed URL."""
    content_type = validate_upload(request.content_type, request.size_bytes, max_bytes)
    ownership = enforce(caller, "step", step_id)

    prefix = media_path_prefix(caller.account_id, ownership.sop_id, step_id)
    if not request.path.startswith(prefix) or ".." in request.path:
        raise BadRequestError("Invalid media path", details=f"Path must start with {prefix}")

    try:
        return create_media(
            step_id=step_id,
            type=media_type_for(content_type),
            url=storage.public_url(request.path),
            path=request.path,
            caption=request.caption,
            display_mode=request.display_mode,
            content_type=content_type,
            size_bytes=request.size_bytes,
        )
    except LookupError:
        raise NotFoundError(f"Step {step_id} not found")


@router.patch("/{media_id}", response_model=Media)
def update_existing_media(
    media_id: UUID,
    request: UpdateMediaRequest,
    caller: Caller = Depends(require_viewer),
) -> Media:
    fields = request.model_dump(exclude_unset=True)
    if fields.get("display_mode", "contain") is None:
        raise BadRequestError("display_mode must be contain or cover")
    if not fields:
        raise BadRequestError("No fields to update")

    enforce(caller, "media", media_id)
    media = update_media(media_id, **fields)
    if media is None:
        raise NotFoundError(f"Media {media_id} not found")
    return media


@router.delete("/{media_id}", response_model=MessageResponse)
def remove_media(
    media_id: UUID,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(require_viewer),
    storage: StorageClient = Depends(storage_client),
) -> MessageResponse:
    """Delete a media record; the stored object is removed afterwards."""
    enforce(caller, "media", media_id)
    media = delete_media(media_id)
    if media is None:
        raise NotFoundError(f"Media {media_id} not found")
    if media.path:
        schedule(background_tasks, storage.remove, [media.path])
    return MessageResponse(message=f"Media {media_id} deleted")

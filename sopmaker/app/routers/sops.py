"""CRUD routes for SOPs."""

import logging
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from psycopg import errors as pg_errors
from pydantic import BaseModel, field_validator

from sopmaker.app.auth import require_viewer, get_optional_caller
from sopmaker.app.dependencies import storage_client
from sopmaker.app.errors import BadRequestError, ConflictError, NotFoundError
from sopmaker.app.guard import can_see_all_sops, enforce, enforce_optional
from sopmaker.app.models import MessageResponse
from sopmaker.app.side_effects import schedule
from sopmaker.db.activity import record_audit_event, record_sop_view
from sopmaker.db.media import get_media_paths_for_sop
from sopmaker.db.sops import (
    create_sop,
    delete_sop,
    get_sop_detail,
    list_sops,
    publish_sop,
    update_sop,
)
from sopmaker.db.steps import reorder_steps
from sopmaker.integrations.storage import StorageClient
from sopmaker.models.account import Caller
from sopmaker.models.sop import (
    Sop,
    SopDetail,
    SopListMeta,
    SopListResponse,
    SopSortBy,
    SopStatus,
)
from sopmaker.models.step import Step

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sops", tags=["sops"])


# --- Request Models ---


def _require_title(v: Optional[str]) -> str:
    if v is None or not v.strip():
        raise ValueError("Title is required")
    return v.strip()


class CreateSopRequest(BaseModel):
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    status: SopStatus = "draft"

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _require_title(v)


class UpdateSopRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    status: Optional[SopStatus] = None
    is_published: Optional[bool] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> str:
        return _require_title(v)

    @field_validator("status", "is_published")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("must not be null")
        return v


class ReorderStepsRequest(BaseModel):
    step_ids: list[UUID]


# --- CRUD Endpoints ---


@router.get("", response_model=SopListResponse)
def list_all_sops(
    category: Optional[str] = None,
    status: Optional[SopStatus] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort_by: SopSortBy = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    all: bool = False,
    caller: Caller = Depends(require_viewer),
) -> SopListResponse:
    """List the caller's SOPs.

    Args:
        category: Only SOPs in this category.
        status: Only SOPs with this status.
        limit: Page size (1-100).
        offset: Rows to skip.
        sort_by: created_at, updated_at or title.
        sort_order: asc or desc.
        all: Editors and admins may list every account's SOPs.
    """
    owner_id = None if all and can_see_all_sops(caller) else caller.account_id
    sops, total = list_sops(
        owner_id,
        category=category,
        status=status,
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return SopListResponse(
        data=sops,
        meta=SopListMeta(
            total=total, limit=limit, offset=offset, has_more=offset + limit < total
        ),
    )


@router.post("", status_code=201, response_model=Sop)
def create_new_sop(
    request: CreateSopRequest,
    caller: Caller = Depends(require_viewer),
) -> Sop:
    """Create a SOP owned by the caller."""
    try:
        return create_sop(
            created_by=caller.account_id,
            title=request.title,
            description=request.description,
            category=request.category,
            status=request.status,
        )
    except pg_errors.UniqueViolation:
        raise ConflictError("An SOP with this title already exists")


@router.get("/{sop_id}", response_model=SopDetail)
def get_sop(
    sop_id: UUID,
    background_tasks: BackgroundTasks,
    caller: Optional[Caller] = Depends(get_optional_caller),
) -> SopDetail:
    """Get a SOP with its ordered steps and media.

    Published SOPs are readable by anyone, including anonymous callers.
    """
    ownership = enforce_optional(caller, "sop", sop_id)
    detail = get_sop_detail(sop_id)
    if detail is None:
        raise NotFoundError(f"SOP {sop_id} not found")

    viewer_id = caller.account_id if caller else None
    if viewer_id != ownership.owner_id:
        schedule(background_tasks, record_sop_view, sop_id, viewer_id)
    return detail


@router.put("/{sop_id}", response_model=Sop)
@router.patch("/{sop_id}", response_model=Sop)
def update_existing_sop(
    sop_id: UUID,
    request: UpdateSopRequest,
    caller: Caller = Depends(require_viewer),
) -> Sop:
    """Update a SOP's title, description, category, status or publication flag."""
    fields = request.model_dump(exclude_unset=True)
    if not fields:
        raise BadRequestError("No fields to update")

    enforce(caller, "sop", sop_id)
    try:
        sop = update_sop(sop_id, **fields)
    except pg_errors.UniqueViolation:
        raise ConflictError("An SOP with this title already exists")
    if sop is None:
        raise NotFoundError(f"SOP {sop_id} not found")
    return sop


@router.delete("/{sop_id}", response_model=MessageResponse)
def remove_sop(
    sop_id: UUID,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(require_viewer),
    storage: StorageClient = Depends(storage_client),
) -> MessageResponse:
    """Delete a SOP with its steps and media."""
    enforce(caller, "sop", sop_id)
    paths = get_media_paths_for_sop(sop_id)
    if not delete_sop(sop_id):
        raise NotFoundError(f"SOP {sop_id} not found")
    if paths:
        schedule(background_tasks, storage.remove, paths)
    return MessageResponse(message=f"SOP {sop_id} deleted")


@router.post("/{sop_id}/publish", response_model=Sop)
def publish(
    sop_id: UUID,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(require_viewer),
) -> Sop:
    """Publish a SOP, making it readable by everyone."""
    enforce(caller, "sop", sop_id)
    sop = publish_sop(sop_id)
    if sop is None:
        raise NotFoundError(f"SOP {sop_id} not found")
    schedule(
        background_tasks,
        record_audit_event,
        sop_id,
        caller.account_id,
        "publish",
        {"version": sop.version},
    )
    return sop


@router.put("/{sop_id}/steps/order", response_model=list[Step])
def reorder_sop_steps(
    sop_id: UUID,
    request: ReorderStepsRequest,
    caller: Caller = Depends(require_viewer),
) -> list[Step]:
    """Rewrite step positions to follow the order of `step_ids`."""
    enforce(caller, "sop", sop_id)
    try:
        return reorder_steps(sop_id, request.step_ids)
    except ValueError as e:
        raise BadRequestError(str(e))
    except LookupError:
        raise NotFoundError(f"SOP {sop_id} not found")

"""CRUD routes for SOP steps."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, Field, field_validator

from sopmaker.app.auth import get_optional_caller, require_viewer
from sopmaker.app.dependencies import storage_client
from sopmaker.app.errors import BadRequestError, NotFoundError
from sopmaker.app.guard import enforce, enforce_optional
from sopmaker.app.side_effects import schedule
from sopmaker.db.media import get_media_paths_for_step
from sopmaker.db.steps import (
    create_step,
    delete_step,
    get_step_by_id,
    get_steps_for_sop,
    update_step,
)
from sopmaker.integrations.storage import StorageClient
from sopmaker.models.account import Caller
from sopmaker.models.step import Step, StepPosition

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/steps", tags=["steps"])


# --- Request/Response Models ---


def _require_instructions(v: Optional[str]) -> str:
    if v is None or not v.strip():
        raise ValueError("Instructions are required")
    return v


class CreateStepRequest(BaseModel):
    sop_id: UUID
    instructions: str
    title: Optional[str] = None
    role: Optional[str] = None
    safety_notes: Optional[str] = None
    verification: Optional[str] = None
    order_index: Optional[int] = Field(default=None, ge=0)

    @field_validator("instructions")
    @classmethod
    def validate_instructions(cls, v: str) -> str:
        return _require_instructions(v)


class UpdateStepRequest(BaseModel):
    title: Optional[str] = None
    instructions: Optional[str] = None
    role: Optional[str] = None
    safety_notes: Optional[str] = None
    verification: Optional[str] = None

    @field_validator("instructions")
    @classmethod
    def validate_instructions(cls, v: Optional[str]) -> str:
        return _require_instructions(v)


class DeleteStepResponse(BaseModel):
    message: str
    remaining: list[StepPosition]


# --- CRUD Endpoints ---


@router.get("", response_model=list[Step])
def list_steps(
    sop_id: UUID,
    caller: Optional[Caller] = Depends(get_optional_caller),
) -> list[Step]:
    """List a SOP's steps in order."""
    enforce_optional(caller, "sop", sop_id)
    return get_steps_for_sop(sop_id)


@router.post("", status_code=201, response_model=Step)
def create_new_step(
    request: CreateStepRequest,
    caller: Caller = Depends(require_viewer),
) -> Step:
    """Add a step to a SOP, appended unless `order_index` is given."""
    enforce(caller, "sop", request.sop_id)
    try:
        return create_step(
            sop_id=request.sop_id,
            instructions=request.instructions,
            title=request.title,
            role=request.role,
            safety_notes=request.safety_notes,
            verification=request.verification,
            order_index=request.order_index,
        )
    except ValueError as e:
        raise BadRequestError(str(e))
    except LookupError:
        raise NotFoundError(f"SOP {request.sop_id} not found")


@router.get("/{step_id}", response_model=Step)
def get_step(
    step_id: UUID,
    caller: Optional[Caller] = Depends(get_optional_caller),
) -> Step:
    enforce_optional(caller, "step", step_id)
    step = get_step_by_id(step_id)
    if step is None:
        raise NotFoundError(f"Step {step_id} not found")
    return step


@router.put("/{step_id}", response_model=Step)
@router.patch("/{step_id}", response_model=Step)
def update_existing_step(
    step_id: UUID,
    request: UpdateStepRequest,
    caller: Caller = Depends(require_viewer),
) -> Step:
    fields = request.model_dump(exclude_unset=True)
    if not fields:
        raise BadRequestError("No fields to update")

    enforce(caller, "step", step_id)
    step = update_step(step_id, **fields)
    if step is None:
        raise NotFoundError(f"Step {step_id} not found")
    return step


@router.delete("/{step_id}", response_model=DeleteStepResponse)
def remove_step(
    step_id: UUID,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(require_viewer),
    storage: StorageClient = Depends(storage_client),
) -> DeleteStepResponse:
    """Delete a step and its media; the remaining steps are renumbered from 0."""
    enforce(caller, "step", step_id)
    paths = get_media_paths_for_step(step_id)
    try:
        remaining = delete_step(step_id)
    except LookupError:
        remaining = None
    if remaining is None:
        raise NotFoundError(f"Step {step_id} not found")
    if paths:
        schedule(background_tasks, storage.remove, paths)
    return DeleteStepResponse(
        message="Step deleted successfully and remaining steps reordered",
        remaining=remaining,
    )

"""Reader comments on SOPs and their moderation."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, field_validator

from sopmaker.app.auth import get_optional_caller, require_viewer
from sopmaker.app.errors import NotFoundError
from sopmaker.app.guard import enforce, enforce_optional, is_permitted
from sopmaker.app.side_effects import schedule
from sopmaker.db.activity import record_notification
from sopmaker.db.comments import create_comment, list_comments, set_comment_status
from sopmaker.db.ownership import Ownership
from sopmaker.db.sops import get_sop_by_id
from sopmaker.models.account import Caller
from sopmaker.models.comment import CommentStatus, SopComment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sops", tags=["comments"])

ANONYMOUS_AUTHOR = "Anonymous"


class CreateCommentRequest(BaseModel):
    content: str
    author: Optional[str] = None

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Comment content is required")
        return v.strip()


class UpdateCommentRequest(BaseModel):
    status: CommentStatus


def _can_moderate(caller: Optional[Caller], ownership: Ownership) -> bool:
    return caller is not None and is_permitted(
        caller.account_id, caller.role, ownership, "modify"
    )


def _author_name(caller: Optional[Caller], requested: Optional[str]) -> str:
    if caller is not None and caller.account.name:
        return caller.account.name
    if requested and requested.strip():
        return requested.strip()
    return ANONYMOUS_AUTHOR


@router.post("/{sop_id}/comments", status_code=201, response_model=SopComment)
def add_comment(
    sop_id: UUID,
    request: CreateCommentRequest,
    background_tasks: BackgroundTasks,
    caller: Optional[Caller] = Depends(get_optional_caller),
) -> SopComment:
    """Leave a comment on a SOP the caller can read.

    Comments from the SOP's moderators are approved immediately; everyone
    else's wait for approval. The owner is notified of comments left by others.
    """
    ownership = enforce_optional(caller, "sop", sop_id)
    sop = get_sop_by_id(sop_id)
    if sop is None:
        raise NotFoundError(f"SOP {sop_id} not found")

    comment = create_comment(
        sop_id=sop_id,
        content=request.content,
        author_name=_author_name(caller, request.author),
        account_id=caller.account_id if caller else None,
        status="approved" if _can_moderate(caller, ownership) else "pending",
    )

    commenter_id = caller.account_id if caller else None
    if commenter_id != ownership.owner_id:
        schedule(
            background_tasks,
            record_notification,
            ownership.owner_id,
            "new_comment",
            f'New comment on your SOP: "{sop.title}"',
            sop_id,
            {"comment_id": str(comment.id)},
        )
    return comment


@router.get("/{sop_id}/comments", response_model=list[SopComment])
def get_comments(
    sop_id: UUID,
    caller: Optional[Caller] = Depends(get_optional_caller),
) -> list[SopComment]:
    """Comments on a SOP, newest first.

    Readers see approved comments; moderators also see pending and rejected ones.
    """
    ownership = enforce_optional(caller, "sop", sop_id)
    return list_comments(sop_id, include_unapproved=_can_moderate(caller, ownership))


@router.patch("/{sop_id}/comments/{comment_id}", response_model=SopComment)
def moderate_comment(
    sop_id: UUID,
    comment_id: UUID,
    request: UpdateCommentRequest,
    caller: Caller = Depends(require_viewer),
) -> SopComment:
    """Approve or reject a comment."""
    enforce(caller, "sop", sop_id)
    comment = set_comment_status(sop_id, comment_id, request.status)
    if comment is None:
        raise NotFoundError(f"Comment {comment_id} not found")
    logger.info(f"Comment {comment_id} on SOP {sop_id} set to {request.status}")
    return comment

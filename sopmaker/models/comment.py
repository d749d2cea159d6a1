"""Reader comments on SOPs."""

from __future__ import annotations
from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel


CommentStatus = Literal["pending", "approved", "rejected"]


class SopComment(BaseModel):
    """A comment left on a SOP.

    New comments from anyone but the owner start out `pending` and are only
    shown to other readers once the owner approves them.
    """

    id: UUID
    sop_id: UUID
    account_id: UUID | None = None
    author_name: str
    content: str
    status: CommentStatus = "pending"
    created_at: datetime

"""Standard Operating Procedure models."""

from __future__ import annotations
from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel

from .step import StepWithMedia


SopStatus = Literal["draft", "review", "published", "archived"]
SopSortBy = Literal["created_at", "updated_at", "title"]


class Sop(BaseModel):
    """A procedure document. `created_by` is the owning account and never changes."""

    id: UUID
    title: str
    description: str | None = None
    category: str | None = None
    created_by: UUID
    is_published: bool = False
    version: int = 1
    status: SopStatus = "draft"
    published_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class SopDetail(Sop):
    """A SOP with its ordered steps and their media."""

    steps: list[StepWithMedia] = []


class SopListMeta(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class SopListResponse(BaseModel):
    data: list[Sop]
    meta: SopListMeta

"""Step models and ordering helpers."""

from __future__ import annotations
from datetime import datetime
from typing import Protocol, Sequence
from uuid import UUID

from pydantic import BaseModel

from .media import Media


class Step(BaseModel):
    """A single instruction within a SOP.

    `order_index` is zero-based and unique within the owning SOP.
    """

    id: UUID
    sop_id: UUID
    order_index: int
    title: str | None = None
    instructions: str
    role: str | None = None
    safety_notes: str | None = None
    verification: str | None = None
    created_at: datetime
    updated_at: datetime


class StepWithMedia(Step):
    media: list[Media] = []


class StepPosition(BaseModel):
    id: UUID
    order_index: int


class _Ordered(Protocol):
    id: UUID
    order_index: int


def resequence(items: Sequence[_Ordered]) -> list[StepPosition]:
    """Assign contiguous zero-based positions, preserving relative order.

    Items are ordered by their current `order_index`; gaps and duplicates are
    both closed. Works for anything with `id` and `order_index` (steps, media).
    """
    ordered = sorted(items, key=lambda item: item.order_index)
    return [
        StepPosition(id=item.id, order_index=index) for index, item in enumerate(ordered)
    ]


def changed_positions(items: Sequence[_Ordered]) -> list[StepPosition]:
    """Return only the positions that differ from the items' current index."""
    current = {item.id: item.order_index for item in items}
    return [pos for pos in resequence(items) if current[pos.id] != pos.order_index]

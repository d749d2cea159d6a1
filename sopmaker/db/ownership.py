"""Read-side lookups that resolve any resource to its owning SOP in one query."""

from dataclasses import dataclass
from typing import Literal, Optional
from uuid import UUID

from .connection import get_db_cursor

ResourceKind = Literal["sop", "step", "media"]

# Each query walks the ownership chain (Media -> Step -> SOP) with inner joins,
# so a missing link anywhere yields no row.
_OWNERSHIP_QUERIES: dict[ResourceKind, str] = {
    "sop": """
        SELECT s.id, s.created_by, s.is_published
        FROM sops s
        WHERE s.id = %s
    """,
    "step": """
        SELECT s.id, s.created_by, s.is_published
        FROM steps st
        JOIN sops s ON s.id = st.sop_id
        WHERE st.id = %s
    """,
    "media": """
        SELECT s.id, s.created_by, s.is_published
        FROM media m
        JOIN steps st ON st.id = m.step_id
        JOIN sops s ON s.id = st.sop_id
        WHERE m.id = %s
    """,
}


@dataclass(frozen=True)
class Ownership:
    sop_id: UUID
    owner_id: UUID
    is_published: bool


def get_ownership(kind: ResourceKind, resource_id: UUID) -> Optional[Ownership]:
    """Return the owning SOP's id, owner and publication state, or None."""
    with get_db_cursor() as cursor:
        cursor.execute(_OWNERSHIP_QUERIES[kind], (str(resource_id),))
        row = cursor.fetchone()
    if row is None:
        return None
    sop_id, owner_id, is_published = row
    return Ownership(
        sop_id=UUID(str(sop_id)),
        owner_id=UUID(str(owner_id)),
        is_published=bool(is_published),
    )

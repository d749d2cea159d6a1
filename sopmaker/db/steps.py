"""Database operations for SOP steps.

Steps keep a contiguous zero-based `order_index` within their SOP. Every write
that moves positions runs in one transaction and first locks the parent SOP
row, so concurrent edits to the same SOP are applied one at a time. The
`(sop_id, order_index)` unique constraint is deferred to commit, which lets
positions be shuffled freely inside the transaction.
"""

import logging
from typing import Any, Optional
from uuid import UUID

import psycopg
from psycopg import sql as psql

from sopmaker.models.step import Step, StepPosition, changed_positions, resequence
from .connection import get_db_cursor, get_db_transaction

logger = logging.getLogger(__name__)

_STEP_COLUMNS = (
    "id, sop_id, order_index, title, instructions, role, safety_notes, "
    "verification, created_at, updated_at"
)

UPDATABLE_STEP_FIELDS = ("title", "instructions", "role", "safety_notes", "verification")


def get_steps_for_sop(sop_id: UUID) -> list[Step]:
    """Get all steps of a SOP ordered by position."""
    with get_db_cursor() as cursor:
        cursor.execute(
            f"""
            SELECT {_STEP_COLUMNS} FROM steps
            WHERE sop_id = %s
            ORDER BY order_index
            """,
            (str(sop_id),),
        )
        return [_row_to_step(row) for row in cursor.fetchall()]


def get_step_by_id(step_id: UUID) -> Optional[Step]:
    """Get a single step by ID."""
    with get_db_cursor() as cursor:
        cursor.execute(
            f"SELECT {_STEP_COLUMNS} FROM steps WHERE id = %s", (str(step_id),)
        )
        row = cursor.fetchone()
        return _row_to_step(row) if row else None


def create_step(
    sop_id: UUID,
    instructions: str,
    title: Optional[str] = None,
    role: Optional[str] = None,
    safety_notes: Optional[str] = None,
    verification: Optional[str] = None,
    order_index: Optional[int] = None,
) -> Step:
    """Create a step in a SOP.

    Without `order_index` the step is appended. With one, the step is inserted
    at that position and later siblings move down by one.

    Raises:
        ValueError: If `order_index` is outside `[0, number of steps]`.
    """
    with get_db_transaction() as cursor:
        _lock_sop(cursor, sop_id)
        cursor.execute("SELECT COUNT(*) FROM steps WHERE sop_id = %s", (str(sop_id),))
        count = cursor.fetchone()[0]

        if order_index is None:
            order_index = count
        elif not 0 <= order_index <= count:
            raise ValueError(
                f"order_index must be between 0 and {count}, got {order_index}"
            )
        else:
            cursor.execute(
                """
                UPDATE steps SET order_index = order_index + 1
                WHERE sop_id = %s AND order_index >= %s
                """,
                (str(sop_id), order_index),
            )

        cursor.execute(
            f"""
            INSERT INTO steps
                (sop_id, order_index, title, instructions, role, safety_notes, verification)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {_STEP_COLUMNS}
            """,
            (
                str(sop_id),
                order_index,
                title,
                instructions,
                role,
                safety_notes,
                verification,
            ),
        )
        step = _row_to_step(cursor.fetchone())
        _touch_sop(cursor, sop_id)
    logger.info(f"Created step {step.id} at position {order_index} in SOP {sop_id}")
    return step


def update_step(step_id: UUID, **fields: Any) -> Optional[Step]:
    """Update a step's editable fields. Returns None if not found."""
    update_parts: list[psql.Composable] = []
    params: list[Any] = []
    for field in UPDATABLE_STEP_FIELDS:
        if field in fields:
            update_parts.append(psql.SQL("{} = %s").format(psql.Identifier(field)))
            params.append(fields[field])
    if not update_parts:
        return get_step_by_id(step_id)

    params.append(str(step_id))
    with get_db_transaction() as cursor:
        query = psql.SQL("""
            UPDATE steps
            SET {updates}
            WHERE id = %s
            RETURNING {columns}
        """).format(
            updates=psql.SQL(", ").join(update_parts),
            columns=psql.SQL(_STEP_COLUMNS),
        )
        cursor.execute(query, params)
        row = cursor.fetchone()
        if row is None:
            return None
        step = _row_to_step(row)
        _touch_sop(cursor, step.sop_id)
        return step


def delete_step(step_id: UUID) -> Optional[list[StepPosition]]:
    """Delete a step and renumber its remaining siblings.

    Media attached to the step is removed by the foreign-key cascade.

    Returns:
        The remaining steps' positions (contiguous from 0, original relative
        order preserved), or None if the step was not found.
    """
    with get_db_transaction() as cursor:
        cursor.execute("SELECT sop_id FROM steps WHERE id = %s", (str(step_id),))
        row = cursor.fetchone()
        if row is None:
            return None
        sop_id = UUID(str(row[0]))
        _lock_sop(cursor, sop_id)

        cursor.execute("DELETE FROM steps WHERE id = %s", (str(step_id),))
        if cursor.rowcount == 0:
            # Deleted concurrently between the lookup and the lock.
            return None

        positions = _resequence_siblings(cursor, sop_id)
        _touch_sop(cursor, sop_id)
    logger.info(f"Deleted step {step_id} from SOP {sop_id}")
    return positions


def reorder_steps(sop_id: UUID, step_ids: list[UUID]) -> list[Step]:
    """Rewrite positions so that steps appear in the order of `step_ids`.

    Raises:
        ValueError: If `step_ids` isn't exactly the SOP's set of steps.
    """
    with get_db_transaction() as cursor:
        _lock_sop(cursor, sop_id)
        cursor.execute("SELECT id FROM steps WHERE sop_id = %s", (str(sop_id),))
        existing = {UUID(str(row[0])) for row in cursor.fetchall()}
        if len(step_ids) != len(set(step_ids)) or set(step_ids) != existing:
            raise ValueError("step_ids must list every step of the SOP exactly once")

        cursor.executemany(
            "UPDATE steps SET order_index = %s WHERE id = %s",
            [(index, str(step_id)) for index, step_id in enumerate(step_ids)],
        )
        _touch_sop(cursor, sop_id)
    return get_steps_for_sop(sop_id)


def _resequence_siblings(cursor: psycopg.Cursor, sop_id: UUID) -> list[StepPosition]:
    cursor.execute(
        "SELECT id, order_index FROM steps WHERE sop_id = %s ORDER BY order_index",
        (str(sop_id),),
    )
    current = [
        StepPosition(id=UUID(str(id)), order_index=order_index)
        for id, order_index in cursor.fetchall()
    ]
    updates = changed_positions(current)
    if updates:
        cursor.executemany(
            "UPDATE steps SET order_index = %s WHERE id = %s",
            [(pos.order_index, str(pos.id)) for pos in updates],
        )
    return resequence(current)


def _lock_sop(cursor: psycopg.Cursor, sop_id: UUID) -> None:
    cursor.execute("SELECT id FROM sops WHERE id = %s FOR UPDATE", (str(sop_id),))
    if cursor.fetchone() is None:
        raise LookupError(f"SOP {sop_id} not found")


def _touch_sop(cursor: psycopg.Cursor, sop_id: UUID) -> None:
    cursor.execute("UPDATE sops SET updated_at = NOW() WHERE id = %s", (str(sop_id),))


def _row_to_step(row) -> Step:
    (
        id,
        sop_id,
        order_index,
        title,
        instructions,
        role,
        safety_notes,
        verification,
        created_at,
        updated_at,
    ) = row
    return Step(
        id=id,
        sop_id=sop_id,
        order_index=order_index,
        title=title,
        instructions=instructions,
        role=role,
        safety_notes=safety_notes,
        verification=verification,
        created_at=created_at,
        updated_at=updated_at,
    )

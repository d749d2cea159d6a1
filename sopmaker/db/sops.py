"""Database operations for SOPs."""

import logging
from typing import Any, Optional
from uuid import UUID

from psycopg import sql as psql

from sopmaker.models.sop import Sop, SopDetail, SopSortBy, SopStatus
from .connection import get_db_cursor

logger = logging.getLogger(__name__)

_SOP_COLUMNS = (
    "id, title, description, category, created_by, is_published, version, "
    "status, published_at, created_at, updated_at"
)

UPDATABLE_SOP_FIELDS = ("title", "description", "category", "status", "is_published")


def create_sop(
    created_by: UUID,
    title: str,
    description: Optional[str] = None,
    category: Optional[str] = None,
    status: SopStatus = "draft",
) -> Sop:
    """Create a new SOP owned by `created_by`."""
    with get_db_cursor() as cursor:
        cursor.execute(
            f"""
            INSERT INTO sops (title, description, category, created_by, status)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {_SOP_COLUMNS}
            """,
            (title, description, category, str(created_by), status),
        )
        sop = _row_to_sop(cursor.fetchone())
    logger.info(f"Created SOP id={sop.id} for account {created_by}")
    return sop


def get_sop_by_id(sop_id: UUID) -> Optional[Sop]:
    """Get a single SOP by ID."""
    with get_db_cursor() as cursor:
        cursor.execute(
            f"SELECT {_SOP_COLUMNS} FROM sops WHERE id = %s", (str(sop_id),)
        )
        row = cursor.fetchone()
        return _row_to_sop(row) if row else None


def get_sop_detail(sop_id: UUID) -> Optional[SopDetail]:
    """Get a SOP with its ordered steps and each step's ordered media."""
    from .steps import get_steps_for_sop
    from .media import get_media_for_sop

    sop = get_sop_by_id(sop_id)
    if sop is None:
        return None

    media_by_step = get_media_for_sop(sop_id)
    steps = [
        {**step.model_dump(), "media": media_by_step.get(step.id, [])}
        for step in get_steps_for_sop(sop_id)
    ]
    return SopDetail(**sop.model_dump(), steps=steps)


def list_sops(
    owner_id: Optional[UUID],
    category: Optional[str] = None,
    status: Optional[SopStatus] = None,
    limit: int = 50,
    offset: int = 0,
    sort_by: SopSortBy = "created_at",
    sort_order: str = "desc",
) -> tuple[list[Sop], int]:
    """List SOPs with optional filters and pagination.

    Args:
        owner_id: Only return SOPs created by this account. None returns all SOPs.
        category: Exact category filter.
        status: Exact status filter.
        limit: Page size.
        offset: Number of rows to skip.
        sort_by: Column to order by.
        sort_order: "asc" or "desc".

    Returns:
        The page of SOPs and the total number of matching rows.
    """
    conditions: list[psql.Composable] = []
    params: list[Any] = []
    if owner_id is not None:
        conditions.append(psql.SQL("created_by = %s"))
        params.append(str(owner_id))
    if category is not None:
        conditions.append(psql.SQL("category = %s"))
        params.append(category)
    if status is not None:
        conditions.append(psql.SQL("status = %s"))
        params.append(status)

    where = (
        psql.SQL("WHERE ") + psql.SQL(" AND ").join(conditions)
        if conditions
        else psql.SQL("")
    )
    direction = psql.SQL("ASC") if sort_order == "asc" else psql.SQL("DESC")

    with get_db_cursor() as cursor:
        cursor.execute(
            psql.SQL("SELECT COUNT(*) FROM sops {where}").format(where=where), params
        )
        total = cursor.fetchone()[0]

        cursor.execute(
            psql.SQL("""
                SELECT {columns}
                FROM sops
                {where}
                ORDER BY {sort_by} {direction}, id
                LIMIT %s OFFSET %s
            """).format(
                columns=psql.SQL(_SOP_COLUMNS),
                where=where,
                sort_by=psql.Identifier(sort_by),
                direction=direction,
            ),
            [*params, limit, offset],
        )
        sops = [_row_to_sop(row) for row in cursor.fetchall()]
    return sops, total


def update_sop(sop_id: UUID, **fields: Any) -> Optional[Sop]:
    """Update a SOP's editable fields and bump its version. Returns None if not found.

    Only keys in UPDATABLE_SOP_FIELDS are applied; `created_by` can never change.
    """
    update_parts: list[psql.Composable] = []
    params: list[Any] = []
    for field in UPDATABLE_SOP_FIELDS:
        if field in fields:
            update_parts.append(psql.SQL("{} = %s").format(psql.Identifier(field)))
            params.append(fields[field])
    if not update_parts:
        return get_sop_by_id(sop_id)

    update_parts.append(psql.SQL("version = version + 1"))
    params.append(str(sop_id))

    with get_db_cursor() as cursor:
        query = psql.SQL("""
            UPDATE sops
            SET {updates}
            WHERE id = %s
            RETURNING {columns}
        """).format(
            updates=psql.SQL(", ").join(update_parts),
            columns=psql.SQL(_SOP_COLUMNS),
        )
        cursor.execute(query, params)
        row = cursor.fetchone()
        return _row_to_sop(row) if row else None


def publish_sop(sop_id: UUID) -> Optional[Sop]:
    """Mark a SOP as published. Returns None if not found."""
    with get_db_cursor() as cursor:
        cursor.execute(
            f"""
            UPDATE sops
            SET is_published = TRUE,
                status = 'published',
                published_at = COALESCE(published_at, NOW()),
                version = version + 1
            WHERE id = %s
            RETURNING {_SOP_COLUMNS}
            """,
            (str(sop_id),),
        )
        row = cursor.fetchone()
        return _row_to_sop(row) if row else None


def delete_sop(sop_id: UUID) -> bool:
    """Delete a SOP. Steps and media rows cascade. Returns True if found."""
    with get_db_cursor() as cursor:
        cursor.execute("DELETE FROM sops WHERE id = %s", (str(sop_id),))
        deleted = cursor.rowcount > 0
    if deleted:
        logger.info(f"Deleted SOP {sop_id}")
    return deleted


def list_categories(owner_id: Optional[UUID]) -> list[str]:
    """Distinct categories of SOPs owned by `owner_id` (or of all SOPs if None)."""
    with get_db_cursor() as cursor:
        if owner_id is None:
            cursor.execute("""
                SELECT DISTINCT category FROM sops
                WHERE category IS NOT NULL
                ORDER BY category
            """)
        else:
            cursor.execute(
                """
                SELECT DISTINCT category FROM sops
                WHERE category IS NOT NULL AND (created_by = %s OR is_published)
                ORDER BY category
                """,
                (str(owner_id),),
            )
        return [row[0] for row in cursor.fetchall()]


def _row_to_sop(row) -> Sop:
    (
        id,
        title,
        description,
        category,
        created_by,
        is_published,
        version,
        status,
        published_at,
        created_at,
        updated_at,
    ) = row
    return Sop(
        id=id,
        title=title,
        description=description,
        category=category,
        created_by=created_by,
        is_published=is_published,
        version=version,
        status=status,
        published_at=published_at,
        created_at=created_at,
        updated_at=updated_at,
    )

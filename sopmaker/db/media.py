"""Database operations for step media."""

import logging
from collections import defaultdict
from typing import Any, Optional
from uuid import UUID

from psycopg import sql as psql

from sopmaker.models.media import DisplayMode, Media, MediaType
from sopmaker.models.step import StepPosition, changed_positions
from .connection import get_db_cursor, get_db_transaction

logger = logging.getLogger(__name__)

_MEDIA_COLUMNS = (
    "id, step_id, type, url, path, caption, display_mode, content_type, "
    "size_bytes, order_index, created_at"
)

UPDATABLE_MEDIA_FIELDS = ("caption", "display_mode")


def get_media_for_step(step_id: UUID) -> list[Media]:
    """Get a step's media ordered by position."""
    with get_db_cursor() as cursor:
        cursor.execute(
            f"""
            SELECT {_MEDIA_COLUMNS} FROM media
            WHERE step_id = %s
            ORDER BY order_index, created_at
            """,
            (str(step_id),),
        )
        return [_row_to_media(row) for row in cursor.fetchall()]


def get_media_for_sop(sop_id: UUID) -> dict[UUID, list[Media]]:
    """Get all media of a SOP grouped by step id, each group ordered by position."""
    with get_db_cursor() as cursor:
        cursor.execute(
            """
            SELECT {columns} FROM media m
            JOIN steps st ON st.id = m.step_id
            WHERE st.sop_id = %s
            ORDER BY m.order_index, m.created_at
            """.format(
                columns=", ".join(f"m.{col.strip()}" for col in _MEDIA_COLUMNS.split(","))
            ),
            (str(sop_id),),
        )
        grouped: dict[UUID, list[Media]] = defaultdict(list)
        for row in cursor.fetchall():
            media = _row_to_media(row)
            grouped[media.step_id].append(media)
        return dict(grouped)


def get_media_paths_for_sop(sop_id: UUID) -> list[str]:
    """Storage paths of every media object under a SOP."""
    with get_db_cursor() as cursor:
        cursor.execute(
            """
            SELECT m.path FROM media m
            JOIN steps st ON st.id = m.step_id
            WHERE st.sop_id = %s AND m.path IS NOT NULL
            """,
            (str(sop_id),),
        )
        return [row[0] for row in cursor.fetchall()]


def get_media_paths_for_step(step_id: UUID) -> list[str]:
    """Storage paths of every media object attached to a step."""
    with get_db_cursor() as cursor:
        cursor.execute(
            "SELECT path FROM media WHERE step_id = %s AND path IS NOT NULL",
            (str(step_id),),
        )
        return [row[0] for row in cursor.fetchall()]


def get_media_by_id(media_id: UUID) -> Optional[Media]:
    with get_db_cursor() as cursor:
        cursor.execute(
            f"SELECT {_MEDIA_COLUMNS} FROM media WHERE id = %s", (str(media_id),)
        )
        row = cursor.fetchone()
        return _row_to_media(row) if row else None


def create_media(
    step_id: UUID,
    type: MediaType,
    url: str,
    path: Optional[str] = None,
    caption: Optional[str] = None,
    display_mode: DisplayMode = "contain",
    content_type: Optional[str] = None,
    size_bytes: Optional[int] = None,
) -> Media:
    """Attach a media record to a step, appended after its existing media.

    Raises:
        LookupError: If the step doesn't exist.
    """
    with get_db_transaction() as cursor:
        cursor.execute(
            "SELECT sop_id FROM steps WHERE id = %s FOR UPDATE", (str(step_id),)
        )
        row = cursor.fetchone()
        if row is None:
            raise LookupError(f"Step {step_id} not found")
        sop_id = row[0]

        cursor.execute("SELECT COUNT(*) FROM media WHERE step_id = %s", (str(step_id),))
        order_index = cursor.fetchone()[0]

        cursor.execute(
            f"""
            INSERT INTO media
                (step_id, type, url, path, caption, display_mode, content_type,
                 size_bytes, order_index)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_MEDIA_COLUMNS}
            """,
            (
                str(step_id),
                type,
                url,
                path,
                caption,
                display_mode,
                content_type,
                size_bytes,
                order_index,
            ),
        )
        media = _row_to_media(cursor.fetchone())
        cursor.execute("UPDATE sops SET updated_at = NOW() WHERE id = %s", (sop_id,))
    logger.info(f"Created {type} media {media.id} for step {step_id}")
    return media


def update_media(media_id: UUID, **fields: Any) -> Optional[Media]:
    """Update caption and/or display mode. Returns None if not found."""
    update_parts: list[psql.Composable] = []
    params: list[Any] = []
    for field in UPDATABLE_MEDIA_FIELDS:
        if field in fields:
            update_parts.append(psql.SQL("{} = %s").format(psql.Identifier(field)))
            params.append(fields[field])
    if not update_parts:
        return get_media_by_id(media_id)

    params.append(str(media_id))
    with get_db_cursor() as cursor:
        query = psql.SQL("""
            UPDATE media
            SET {updates}
            WHERE id = %s
            RETURNING {columns}
        """).format(
            updates=psql.SQL(", ").join(update_parts),
            columns=psql.SQL(_MEDIA_COLUMNS),
        )
        cursor.execute(query, params)
        row = cursor.fetchone()
        return _row_to_media(row) if row else None


def delete_media(media_id: UUID) -> Optional[Media]:
    """Delete a media record and renumber the step's remaining media.

    Returns:
        The deleted Media (so its stored object can be removed), or None if not found.
    """
    with get_db_transaction() as cursor:
        # Lock the parent step so concurrent creates and deletes renumber in turn.
        cursor.execute(
            """
            SELECT s.id FROM media m JOIN steps s ON s.id = m.step_id
            WHERE m.id = %s
            FOR UPDATE OF s
            """,
            (str(media_id),),
        )
        if cursor.fetchone() is None:
            return None

        cursor.execute(
            f"DELETE FROM media WHERE id = %s RETURNING {_MEDIA_COLUMNS}",
            (str(media_id),),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        media = _row_to_media(row)

        cursor.execute(
            "SELECT id, order_index FROM media WHERE step_id = %s ORDER BY order_index",
            (str(media.step_id),),
        )
        siblings = [
            StepPosition(id=UUID(str(id)), order_index=order_index)
            for id, order_index in cursor.fetchall()
        ]
        updates = changed_positions(siblings)
        if updates:
            cursor.executemany(
                "UPDATE media SET order_index = %s WHERE id = %s",
                [(pos.order_index, str(pos.id)) for pos in updates],
            )
    logger.info(f"Deleted media {media_id} from step {media.step_id}")
    return media


def _row_to_media(row) -> Media:
    (
        id,
        step_id,
        type,
        url,
        path,
        caption,
        display_mode,
        content_type,
        size_bytes,
        order_index,
        created_at,
    ) = row
    return Media(
        id=id,
        step_id=step_id,
        type=type,
        url=url,
        path=path,
        caption=caption,
        display_mode=display_mode,
        content_type=content_type,
        size_bytes=size_bytes,
        order_index=order_index,
        created_at=created_at,
    )

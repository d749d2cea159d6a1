"""Database operations for SOP comments."""

import logging
from typing import Optional
from uuid import UUID

from sopmaker.models.comment import CommentStatus, SopComment
from .connection import get_db_cursor

logger = logging.getLogger(__name__)

_COMMENT_COLUMNS = "id, sop_id, account_id, author_name, content, status, created_at"


def create_comment(
    sop_id: UUID,
    content: str,
    author_name: str,
    account_id: Optional[UUID] = None,
    status: CommentStatus = "pending",
) -> SopComment:
    """Store a new comment on a SOP."""
    with get_db_cursor() as cursor:
        cursor.execute(
            f"""
            INSERT INTO sop_comments (sop_id, account_id, author_name, content, status)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {_COMMENT_COLUMNS}
            """,
            (
                str(sop_id),
                str(account_id) if account_id else None,
                author_name,
                content,
                status,
            ),
        )
        comment = _row_to_comment(cursor.fetchone())
    logger.info(f"Created {status} comment {comment.id} on SOP {sop_id}")
    return comment


def list_comments(sop_id: UUID, include_unapproved: bool = False) -> list[SopComment]:
    """Comments on a SOP, newest first.

    Args:
        sop_id: The SOP the comments belong to.
        include_unapproved: Also return pending and rejected comments.
    """
    status_filter = "" if include_unapproved else "AND status = 'approved'"
    with get_db_cursor() as cursor:
        cursor.execute(
            f"""
            SELECT {_COMMENT_COLUMNS} FROM sop_comments
            WHERE sop_id = %s {status_filter}
            ORDER BY created_at DESC, id
            """,
            (str(sop_id),),
        )
        return [_row_to_comment(row) for row in cursor.fetchall()]


def set_comment_status(
    sop_id: UUID, comment_id: UUID, status: CommentStatus
) -> Optional[SopComment]:
    """Moderate a comment. Returns None if the SOP has no such comment."""
    with get_db_cursor() as cursor:
        cursor.execute(
            f"""
            UPDATE sop_comments SET status = %s
            WHERE id = %s AND sop_id = %s
            RETURNING {_COMMENT_COLUMNS}
            """,
            (status, str(comment_id), str(sop_id)),
        )
        row = cursor.fetchone()
        return _row_to_comment(row) if row else None


def _row_to_comment(row) -> SopComment:
    id, sop_id, account_id, author_name, content, status, created_at = row
    return SopComment(
        id=id,
        sop_id=sop_id,
        account_id=account_id,
        author_name=author_name,
        content=content,
        status=status,
        created_at=created_at,
    )

"""Audit trail, view tracking and notification writes.

These are best-effort records; callers schedule them after the response.
"""

import json
import logging
from typing import Any, Optional
from uuid import UUID

from .connection import get_db_cursor

logger = logging.getLogger(__name__)


def record_audit_event(
    sop_id: UUID,
    account_id: UUID,
    action: str,
    details: Optional[dict[str, Any]] = None,
) -> None:
    """Append an entry to the SOP's audit trail."""
    with get_db_cursor() as cursor:
        cursor.execute(
            """
            INSERT INTO audit_trail (sop_id, account_id, action, details)
            VALUES (%s, %s, %s, %s)
            """,
            (str(sop_id), str(account_id), action, json.dumps(details or {})),
        )
    logger.debug(f"Recorded audit event {action} on SOP {sop_id} by {account_id}")


def record_sop_view(sop_id: UUID, account_id: Optional[UUID]) -> None:
    """Count a view of a SOP."""
    with get_db_cursor() as cursor:
        cursor.execute(
            "INSERT INTO sop_views (sop_id, account_id) VALUES (%s, %s)",
            (str(sop_id), str(account_id) if account_id else None),
        )


def record_notification(
    account_id: UUID,
    kind: str,
    content: str,
    sop_id: Optional[UUID] = None,
    data: Optional[dict[str, Any]] = None,
) -> None:
    """Queue an unread notification for an account."""
    with get_db_cursor() as cursor:
        cursor.execute(
            """
            INSERT INTO notifications
                (account_id, type, content, resource_id, resource_type, data)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (
                str(account_id),
                kind,
                content,
                str(sop_id) if sop_id else None,
                "sop" if sop_id else None,
                json.dumps(data or {}),
            ),
        )
    logger.debug(f"Recorded {kind} notification for {account_id}")

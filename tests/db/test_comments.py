"""Tests for comment storage."""

from datetime import datetime
from unittest.mock import patch, MagicMock
from uuid import UUID

from sopmaker.db.comments import create_comment, list_comments, set_comment_status

_MOD = "sopmaker.db.comments"
SOP_ID = UUID("00000000-0000-0000-0000-00000000050a")
COMMENT_ID = UUID("00000000-0000-0000-0000-0000000000cc")
NOW = datetime(2024, 3, 2, 14, 30, 0)


def _comment_row(status: str = "pending"):
    return (COMMENT_ID, SOP_ID, None, "Anonymous", "Nice", status, NOW)


def _cursor(mock_get_cursor: MagicMock) -> MagicMock:
    mock_cursor = MagicMock()
    mock_get_cursor.return_value.__enter__.return_value = mock_cursor
    return mock_cursor


@patch(f"{_MOD}.get_db_cursor")
def test_create_comment(mock_get_cursor):
    mock_cursor = _cursor(mock_get_cursor)
    mock_cursor.fetchone.return_value = _comment_row()

    comment = create_comment(SOP_ID, "Nice", "Anonymous")

    assert comment.id == COMMENT_ID
    assert comment.status == "pending"
    params = mock_cursor.execute.call_args.args[1]
    assert params == (str(SOP_ID), None, "Anonymous", "Nice", "pending")


@patch(f"{_MOD}.get_db_cursor")
def test_list_filters_to_approved_by_default(mock_get_cursor):
    mock_cursor = _cursor(mock_get_cursor)
    mock_cursor.fetchall.return_value = [_comment_row("approved")]

    comments = list_comments(SOP_ID)

    assert [c.status for c in comments] == ["approved"]
    query = mock_cursor.execute.call_args.args[0]
    assert "status = 'approved'" in query
    assert "ORDER BY created_at DESC" in query


@patch(f"{_MOD}.get_db_cursor")
def test_list_unapproved_for_moderators(mock_get_cursor):
    mock_cursor = _cursor(mock_get_cursor)
    mock_cursor.fetchall.return_value = []

    list_comments(SOP_ID, include_unapproved=True)

    assert "status = 'approved'" not in mock_cursor.execute.call_args.args[0]


@patch(f"{_MOD}.get_db_cursor")
def test_set_status_scoped_to_sop(mock_get_cursor):
    mock_cursor = _cursor(mock_get_cursor)
    mock_cursor.fetchone.return_value = None

    assert set_comment_status(SOP_ID, COMMENT_ID, "rejected") is None
    assert mock_cursor.execute.call_args.args[1] == (
        "rejected",
        str(COMMENT_ID),
        str(SOP_ID),
    )

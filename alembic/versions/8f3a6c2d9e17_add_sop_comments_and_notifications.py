"""add_sop_comments_and_notifications

Revision ID: 8f3a6c2d9e17
Revises: 4d9e2b7a1f63
Create Date: 2026-10-19 10:12:48.503116+00:00

"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "8f3a6c2d9e17"
down_revision: Union[str, Sequence[str], None] = "4d9e2b7a1f63"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.execute("""
        CREATE TABLE IF NOT EXISTS sop_comments (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            sop_id UUID NOT NULL REFERENCES sops(id) ON DELETE CASCADE,
            account_id UUID REFERENCES users(id) ON DELETE SET NULL,
            author_name TEXT NOT NULL DEFAULT 'Anonymous',
            content TEXT NOT NULL CHECK (btrim(content) <> ''),
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'approved', 'rejected')),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_sop_comments_sop_id ON sop_comments(sop_id);

        CREATE TABLE IF NOT EXISTS notifications (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            account_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type TEXT NOT NULL,
            content TEXT NOT NULL,
            resource_id UUID,
            resource_type TEXT,
            data JSONB NOT NULL DEFAULT '{}'::jsonb,
            is_read BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_notifications_account_id ON notifications(account_id);
    """)


def downgrade() -> None:
    """Downgrade schema."""
    op.execute("""
        DROP TABLE IF EXISTS notifications;
        DROP TABLE IF EXISTS sop_comments;
    """)

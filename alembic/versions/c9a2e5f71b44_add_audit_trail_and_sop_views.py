"""add_audit_trail_and_sop_views

Revision ID: c9a2e5f71b44
Revises: 7c4e1d8b2f35
Create Date: 2026-10-02 09:41:05.114297+00:00

"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "c9a2e5f71b44"
down_revision: Union[str, Sequence[str], None] = "7c4e1d8b2f35"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.execute("""
        CREATE TABLE IF NOT EXISTS audit_trail (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            sop_id UUID NOT NULL REFERENCES sops(id) ON DELETE CASCADE,
            account_id UUID REFERENCES users(id) ON DELETE SET NULL,
            action TEXT NOT NULL,
            details JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_audit_trail_sop_id ON audit_trail(sop_id);

        CREATE TABLE IF NOT EXISTS sop_views (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            sop_id UUID NOT NULL REFERENCES sops(id) ON DELETE CASCADE,
            account_id UUID REFERENCES users(id) ON DELETE SET NULL,
            viewed_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_sop_views_sop_id ON sop_views(sop_id);
    """)


def downgrade() -> None:
    """Downgrade schema."""
    op.execute("""
        DROP TABLE IF EXISTS sop_views;
        DROP TABLE IF EXISTS audit_trail;
    """)

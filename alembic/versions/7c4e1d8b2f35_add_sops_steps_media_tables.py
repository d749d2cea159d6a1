"""add_sops_steps_media_tables

Revision ID: 7c4e1d8b2f35
Revises: 3b1f0c2a9d10
Create Date: 2026-09-28 14:20:47.902115+00:00

"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "7c4e1d8b2f35"
down_revision: Union[str, Sequence[str], None] = "3b1f0c2a9d10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.execute("""
        CREATE TABLE IF NOT EXISTS sops (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            title TEXT NOT NULL,
            description TEXT,
            category TEXT,
            created_by UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            is_published BOOLEAN NOT NULL DEFAULT FALSE,
            version INTEGER NOT NULL DEFAULT 1,
            status TEXT NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'review', 'published', 'archived')),
            published_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT sops_created_by_title_key UNIQUE (created_by, title)
        );

        CREATE INDEX IF NOT EXISTS idx_sops_created_by ON sops(created_by);
        CREATE INDEX IF NOT EXISTS idx_sops_category ON sops(category);

        DROP TRIGGER IF EXISTS sops_set_updated_at ON sops;
        CREATE TRIGGER sops_set_updated_at
            BEFORE UPDATE ON sops
            FOR EACH ROW
            EXECUTE FUNCTION set_updated_at();

        -- Positions are renumbered in bulk, so uniqueness is checked at commit.
        CREATE TABLE IF NOT EXISTS steps (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            sop_id UUID NOT NULL REFERENCES sops(id) ON DELETE CASCADE,
            order_index INTEGER NOT NULL CHECK (order_index >= 0),
            title TEXT,
            instructions TEXT NOT NULL,
            role TEXT,
            safety_notes TEXT,
            verification TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT steps_sop_id_order_index_key UNIQUE (sop_id, order_index)
                DEFERRABLE INITIALLY DEFERRED
        );

        DROP TRIGGER IF EXISTS steps_set_updated_at ON steps;
        CREATE TRIGGER steps_set_updated_at
            BEFORE UPDATE ON steps
            FOR EACH ROW
            EXECUTE FUNCTION set_updated_at();

        CREATE TABLE IF NOT EXISTS media (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            step_id UUID NOT NULL REFERENCES steps(id) ON DELETE CASCADE,
            type TEXT NOT NULL CHECK (type IN ('image', 'video', 'document')),
            url TEXT NOT NULL,
            path TEXT,
            caption TEXT,
            display_mode TEXT NOT NULL DEFAULT 'contain'
                CHECK (display_mode IN ('contain', 'cover')),
            content_type TEXT,
            size_bytes BIGINT,
            order_index INTEGER NOT NULL DEFAULT 0 CHECK (order_index >= 0),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT media_step_id_order_index_key UNIQUE (step_id, order_index)
                DEFERRABLE INITIALLY DEFERRED
        );
    """)


def downgrade() -> None:
    """Downgrade schema."""
    op.execute("""
        DROP TABLE IF EXISTS media;
        DROP TRIGGER IF EXISTS steps_set_updated_at ON steps;
        DROP TABLE IF EXISTS steps;
        DROP TRIGGER IF EXISTS sops_set_updated_at ON sops;
        DROP TABLE IF EXISTS sops CASCADE;
    """)

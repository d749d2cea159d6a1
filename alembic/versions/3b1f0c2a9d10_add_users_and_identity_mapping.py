"""add_users_and_identity_mapping

Revision ID: 3b1f0c2a9d10
Revises:
Create Date: 2026-09-28 14:02:11.318402+00:00

"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "3b1f0c2a9d10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.execute("""
        -- Shared trigger function for updated_at columns
        CREATE OR REPLACE FUNCTION set_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;

        CREATE TABLE IF NOT EXISTS users (
            id UUID PRIMARY KEY,
            firebase_uid TEXT UNIQUE,
            email TEXT NOT NULL,
            name TEXT NOT NULL,
            avatar_url TEXT,
            role TEXT NOT NULL DEFAULT 'viewer'
                CHECK (role IN ('admin', 'editor', 'viewer')),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        DROP TRIGGER IF EXISTS users_set_updated_at ON users;
        CREATE TRIGGER users_set_updated_at
            BEFORE UPDATE ON users
            FOR EACH ROW
            EXECUTE FUNCTION set_updated_at();

        -- Legacy-provider UIDs are not UUIDs; each one is assigned a canonical id once.
        CREATE TABLE IF NOT EXISTS firebase_user_mapping (
            firebase_uid TEXT PRIMARY KEY,
            supabase_uuid UUID NOT NULL UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
    """)


def downgrade() -> None:
    """Downgrade schema."""
    op.execute("""
        DROP TABLE IF EXISTS firebase_user_mapping;
        DROP TRIGGER IF EXISTS users_set_updated_at ON users;
        DROP TABLE IF EXISTS users CASCADE;
        DROP FUNCTION IF EXISTS set_updated_at();
    """)

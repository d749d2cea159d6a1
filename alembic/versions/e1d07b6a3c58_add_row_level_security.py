"""add_row_level_security

Revision ID: e1d07b6a3c58
Revises: c9a2e5f71b44
Create Date: 2026-10-06 17:12:39.550861+00:00

"""

from typing import Sequence, Union

from alembic import op

from sopmaker.db.bootstrap import (
    CURRENT_ACCOUNT_FUNCTION,
    EXEC_SQL_FUNCTION,
    EXEC_SQL_REVOKE,
    POLICY_DDL,
)


# revision identifiers, used by Alembic.
revision: str = "e1d07b6a3c58"
down_revision: Union[str, Sequence[str], None] = "c9a2e5f71b44"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.execute(CURRENT_ACCOUNT_FUNCTION)
    for table, policies in POLICY_DDL.items():
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        for policy_name, statement in policies:
            op.execute(f"DROP POLICY IF EXISTS {policy_name} ON {table}")
            op.execute(statement)
    op.execute(EXEC_SQL_FUNCTION)
    op.execute(EXEC_SQL_REVOKE)


def downgrade() -> None:
    """Downgrade schema."""
    op.execute("DROP FUNCTION IF EXISTS exec_sql(text)")
    for table, policies in POLICY_DDL.items():
        for policy_name, _ in policies:
            op.execute(f"DROP POLICY IF EXISTS {policy_name} ON {table}")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")
    op.execute("DROP FUNCTION IF EXISTS app_current_account_id()")

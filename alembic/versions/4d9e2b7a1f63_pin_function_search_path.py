"""pin_function_search_path

Revision ID: 4d9e2b7a1f63
Revises: e1d07b6a3c58
Create Date: 2026-10-20 08:15:22.604918+00:00

"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "4d9e2b7a1f63"
down_revision: Union[str, Sequence[str], None] = "e1d07b6a3c58"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.execute("""
        ALTER FUNCTION public.exec_sql(text) SET search_path = public;
        ALTER FUNCTION public.app_current_account_id() SET search_path = public;
    """)


def downgrade() -> None:
    """Downgrade schema."""
    op.execute("""
        ALTER FUNCTION public.exec_sql(text) RESET search_path;
        ALTER FUNCTION public.app_current_account_id() RESET search_path;
    """)

"""Idempotent schema repair for databases that have drifted from the migrations.

Alembic owns the schema on databases it created. This module exists for the
ones it didn't: hosted projects where tables were created by hand, policies
were dropped, or the `exec_sql` helper went missing. Each repair action runs
in its own transaction and is reported individually, so one failure never
hides the outcome of the rest.

Run it with:

    python -m sopmaker.db.bootstrap [--only tables|policies|functions]
"""

import argparse
import logging
import os
import sys
from typing import Callable, Literal, Optional

import psycopg
from dotenv import load_dotenv

from sopmaker.models.bootstrap import BootstrapReport, BootstrapStepResult, StepStatus
from .connection import get_db_cursor, get_db_transaction

logger = logging.getLogger(__name__)

BootstrapGroup = Literal["tables", "policies", "functions"]
BOOTSTRAP_GROUPS: tuple[BootstrapGroup, ...] = ("tables", "policies", "functions")

_UPDATED_AT_FUNCTION = """
CREATE OR REPLACE FUNCTION set_updated_at()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = NOW();
    RETURN NEW;
END;
$$ LANGUAGE plpgsql
"""


def _updated_at_trigger(table: str) -> str:
    return f"""
    CREATE TRIGGER {table}_set_updated_at
    BEFORE UPDATE ON {table}
    FOR EACH ROW EXECUTE FUNCTION set_updated_at()
    """


# Ordered so that every foreign key target is created before its referrers.
TABLE_DDL: dict[str, list[str]] = {
    "users": [
        """
        CREATE TABLE users (
            id UUID PRIMARY KEY,
            firebase_uid TEXT UNIQUE,
            email TEXT NOT NULL,
            name TEXT NOT NULL,
            avatar_url TEXT,
            role TEXT NOT NULL DEFAULT 'viewer'
                CHECK (role IN ('admin', 'editor', 'viewer')),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """,
        _UPDATED_AT_FUNCTION,
        _updated_at_trigger("users"),
    ],
    "firebase_user_mapping": [
        """
        CREATE TABLE firebase_user_mapping (
            firebase_uid TEXT PRIMARY KEY,
            supabase_uuid UUID NOT NULL UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """,
    ],
    "sops": [
        """
        CREATE TABLE sops (
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
        )
        """,
        _UPDATED_AT_FUNCTION,
        _updated_at_trigger("sops"),
    ],
    "steps": [
        """
        CREATE TABLE steps (
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
        )
        """,
        _UPDATED_AT_FUNCTION,
        _updated_at_trigger("steps"),
    ],
    "media": [
        """
        CREATE TABLE media (
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
        )
        """,
    ],
    "audit_trail": [
        """
        CREATE TABLE audit_trail (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            sop_id UUID NOT NULL REFERENCES sops(id) ON DELETE CASCADE,
            account_id UUID REFERENCES users(id) ON DELETE SET NULL,
            action TEXT NOT NULL,
            details JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """,
    ],
    "sop_views": [
        """
        CREATE TABLE sop_views (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            sop_id UUID NOT NULL REFERENCES sops(id) ON DELETE CASCADE,
            account_id UUID REFERENCES users(id) ON DELETE SET NULL,
            viewed_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """,
    ],
    "sop_comments": [
        """
        CREATE TABLE sop_comments (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            sop_id UUID NOT NULL REFERENCES sops(id) ON DELETE CASCADE,
            account_id UUID REFERENCES users(id) ON DELETE SET NULL,
            author_name TEXT NOT NULL DEFAULT 'Anonymous',
            content TEXT NOT NULL CHECK (btrim(content) <> ''),
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'approved', 'rejected')),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """,
        "CREATE INDEX idx_sop_comments_sop_id ON sop_comments(sop_id)",
    ],
    "notifications": [
        """
        CREATE TABLE notifications (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            account_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type TEXT NOT NULL,
            content TEXT NOT NULL,
            resource_id UUID,
            resource_type TEXT,
            data JSONB NOT NULL DEFAULT '{}'::jsonb,
            is_read BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """,
        "CREATE INDEX idx_notifications_account_id ON notifications(account_id)",
    ],
}

CORE_TABLES: tuple[str, ...] = tuple(TABLE_DDL)

# Resolves the calling account from the JWT claims the REST gateway exposes
# as settings. NULL outside of gateway requests, which matches no policy.
# Helper functions pin search_path so objects in other schemas can never
# shadow the ones they reference.
CURRENT_ACCOUNT_FUNCTION = """
CREATE OR REPLACE FUNCTION app_current_account_id()
RETURNS UUID AS $$
    SELECT NULLIF(current_setting('request.jwt.claim.sub', true), '')::uuid
$$ LANGUAGE sql STABLE
SET search_path = public
"""

_OWNS_SOP = "s.created_by = app_current_account_id()"

POLICY_DDL: dict[str, list[tuple[str, str]]] = {
    "users": [
        (
            "users_self",
            """
            CREATE POLICY users_self ON users
            FOR ALL
            USING (id = app_current_account_id())
            WITH CHECK (id = app_current_account_id())
            """,
        ),
    ],
    "sops": [
        (
            "sops_read",
            """
            CREATE POLICY sops_read ON sops
            FOR SELECT
            USING (created_by = app_current_account_id() OR is_published)
            """,
        ),
        (
            "sops_owner_write",
            """
            CREATE POLICY sops_owner_write ON sops
            FOR ALL
            USING (created_by = app_current_account_id())
            WITH CHECK (created_by = app_current_account_id())
            """,
        ),
    ],
    "steps": [
        (
            "steps_read",
            f"""
            CREATE POLICY steps_read ON steps
            FOR SELECT
            USING (EXISTS (
                SELECT 1 FROM sops s
                WHERE s.id = steps.sop_id AND ({_OWNS_SOP} OR s.is_published)
            ))
            """,
        ),
        (
            "steps_owner_write",
            f"""
            CREATE POLICY steps_owner_write ON steps
            FOR ALL
            USING (EXISTS (
                SELECT 1 FROM sops s WHERE s.id = steps.sop_id AND {_OWNS_SOP}
            ))
            WITH CHECK (EXISTS (
                SELECT 1 FROM sops s WHERE s.id = steps.sop_id AND {_OWNS_SOP}
            ))
            """,
        ),
    ],
    "media": [
        (
            "media_read",
            f"""
            CREATE POLICY media_read ON media
            FOR SELECT
            USING (EXISTS (
                SELECT 1 FROM steps st JOIN sops s ON s.id = st.sop_id
                WHERE st.id = media.step_id AND ({_OWNS_SOP} OR s.is_published)
            ))
            """,
        ),
        (
            "media_owner_write",
            f"""
            CREATE POLICY media_owner_write ON media
            FOR ALL
            USING (EXISTS (
                SELECT 1 FROM steps st JOIN sops s ON s.id = st.sop_id
                WHERE st.id = media.step_id AND {_OWNS_SOP}
            ))
            WITH CHECK (EXISTS (
                SELECT 1 FROM steps st JOIN sops s ON s.id = st.sop_id
                WHERE st.id = media.step_id AND {_OWNS_SOP}
            ))
            """,
        ),
    ],
}

# Row-returning statements come back as a JSON array of rows; anything else is
# executed for effect and reported as {"success": true}.
EXEC_SQL_FUNCTION = """
CREATE OR REPLACE FUNCTION exec_sql(query text)
RETURNS json AS $$
DECLARE
    result json;
BEGIN
    IF lower(ltrim(query)) LIKE 'select%' OR lower(ltrim(query)) LIKE 'with%' THEN
        EXECUTE format('SELECT COALESCE(json_agg(t), ''[]''::json) FROM (%s) t', query)
            INTO result;
        RETURN result;
    END IF;
    EXECUTE query;
    RETURN json_build_object('success', true);
EXCEPTION WHEN OTHERS THEN
    RETURN json_build_object('success', false, 'error', SQLERRM);
END;
$$ LANGUAGE plpgsql SECURITY DEFINER
SET search_path = public
"""

EXEC_SQL_REVOKE = "REVOKE ALL ON FUNCTION exec_sql(text) FROM PUBLIC"

_EXEC_SQL_PROBE = "SELECT 1 AS ok"


def table_exists(cursor: psycopg.Cursor, table: str) -> bool:
    cursor.execute("SELECT to_regclass(%s) IS NOT NULL", (f"public.{table}",))
    return bool(cursor.fetchone()[0])


def check_schema() -> dict[str, bool]:
    """Report which of the core tables exist."""
    with get_db_cursor() as cursor:
        return {table: table_exists(cursor, table) for table in CORE_TABLES}


def _run_step(
    report: BootstrapReport,
    name: str,
    action: Callable[[psycopg.Cursor], tuple[StepStatus, str]],
) -> None:
    """Run one repair action in its own transaction and record the outcome."""
    try:
        with get_db_transaction() as cursor:
            status, message = action(cursor)
    except psycopg.Error as e:
        logger.error(f"Bootstrap step {name} failed: {e}", exc_info=True)
        status, message = "failed", str(e).strip()
    else:
        logger.info(f"Bootstrap step {name}: {status} {message}".rstrip())
    report.steps.append(BootstrapStepResult(name=name, status=status, message=message))


def _create_table(table: str) -> Callable[[psycopg.Cursor], tuple[StepStatus, str]]:
    def action(cursor: psycopg.Cursor) -> tuple[StepStatus, str]:
        if table_exists(cursor, table):
            return "skipped", "already exists"
        for statement in TABLE_DDL[table]:
            cursor.execute(statement)
        return "success", "created"

    return action


def _install_current_account_function(cursor: psycopg.Cursor) -> tuple[StepStatus, str]:
    cursor.execute(CURRENT_ACCOUNT_FUNCTION)
    return "success", "installed"


def _install_policies(table: str) -> Callable[[psycopg.Cursor], tuple[StepStatus, str]]:
    def action(cursor: psycopg.Cursor) -> tuple[StepStatus, str]:
        if not table_exists(cursor, table):
            return "skipped", f"table {table} does not exist"
        cursor.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        for policy_name, statement in POLICY_DDL[table]:
            cursor.execute(f"DROP POLICY IF EXISTS {policy_name} ON {table}")
            cursor.execute(statement)
        return "success", f"{len(POLICY_DDL[table])} policies installed"

    return action


def _install_exec_sql(cursor: psycopg.Cursor) -> tuple[StepStatus, str]:
    cursor.execute(EXEC_SQL_FUNCTION)
    cursor.execute(EXEC_SQL_REVOKE)
    return "success", "installed"


def _verify_exec_sql(cursor: psycopg.Cursor) -> tuple[StepStatus, str]:
    cursor.execute("SELECT exec_sql(%s)", (_EXEC_SQL_PROBE,))
    result = cursor.fetchone()[0]
    if result == [{"ok": 1}]:
        return "success", "exec_sql answered a probe query"
    return "failed", f"unexpected exec_sql result: {result}"


def run_bootstrap(only: Optional[BootstrapGroup] = None) -> BootstrapReport:
    """Create missing tables, reinstall policies and helper functions.

    Args:
        only: Restrict the run to one group of steps.

    Returns:
        A report with one entry per step. Failures are recorded, never raised.
    """
    report = BootstrapReport()
    groups = (only,) if only else BOOTSTRAP_GROUPS

    if "tables" in groups:
        for table in CORE_TABLES:
            _run_step(report, f"tables:{table}", _create_table(table))

    if "policies" in groups:
        _run_step(
            report,
            "policies:app_current_account_id",
            _install_current_account_function,
        )
        for table in POLICY_DDL:
            _run_step(report, f"policies:{table}", _install_policies(table))

    if "functions" in groups:
        _run_step(report, "functions:exec_sql", _install_exec_sql)
        _run_step(report, "functions:verify_exec_sql", _verify_exec_sql)

    logger.info(
        f"Bootstrap finished: {report.count('success')} succeeded, "
        f"{report.count('skipped')} skipped, {report.count('failed')} failed"
    )
    return report


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Create missing tables and reinstall policies and helper functions"
    )
    parser.add_argument(
        "--only",
        choices=BOOTSTRAP_GROUPS,
        help="Run a single group of repair steps.",
    )
    args = parser.parse_args(argv)

    if os.getenv("ENV", "dev") == "dev":
        load_dotenv(".env.dev")
    if not os.getenv("DATABASE_URL"):
        print("ERROR: DATABASE_URL is not set.", file=sys.stderr)
        return 1

    logging.basicConfig(level=logging.INFO, format="%(levelname)s - %(message)s")
    report = run_bootstrap(only=args.only)
    for step in report.steps:
        print(f"[{step.status:>7}] {step.name} {step.message}".rstrip())
    return 0 if report.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())

"""Operator endpoints for schema inspection and repair."""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from sopmaker.app.auth import require_admin
from sopmaker.db.bootstrap import check_schema, run_bootstrap
from sopmaker.models.account import Caller
from sopmaker.models.bootstrap import BootstrapReport

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


class SchemaStatusResponse(BaseModel):
    tables: dict[str, bool]
    missing: list[str]


@router.post("/db-repair", response_model=BootstrapReport)
def repair_database(caller: Caller = Depends(require_admin)) -> BootstrapReport:
    """Run every bootstrap step and return the per-step report.

    Always 200: failed steps are part of the report, not an error response.
    """
    logger.info(f"Database repair requested by {caller.account_id}")
    return run_bootstrap()


@router.get("/schema", response_model=SchemaStatusResponse)
def schema_status(caller: Caller = Depends(require_admin)) -> SchemaStatusResponse:
    tables = check_schema()
    return SchemaStatusResponse(
        tables=tables, missing=[name for name, exists in tables.items() if not exists]
    )

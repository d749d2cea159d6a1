from fastapi import APIRouter, Depends

from sopmaker.app.auth import require_viewer
from sopmaker.app.guard import can_see_all_sops
from sopmaker.db.sops import list_categories
from sopmaker.models.account import Caller

router = APIRouter(prefix="/api/categories", tags=["categories"])


@router.get("", response_model=list[str])
def read_categories(caller: Caller = Depends(require_viewer)) -> list[str]:
    """Distinct categories of the SOPs the caller can see, sorted."""
    owner_id = None if can_see_all_sops(caller) else caller.account_id
    return list_categories(owner_id)

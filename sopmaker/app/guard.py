"""Ownership-based authorization for SOPs, steps and media.

Every decision re-reads the ownership chain (Media -> Step -> SOP -> owner)
through a single joined query; nothing is cached between requests.
"""

import logging
from dataclasses import dataclass
from typing import Literal, Optional, Union
from uuid import UUID

from sopmaker.db.ownership import Ownership, ResourceKind, get_ownership
from sopmaker.models.account import Caller, Role
from .env_loader import env_flag
from .errors import ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)

Action = Literal["read", "modify"]
DenyReason = Literal["not_found", "forbidden"]

_LABELS: dict[ResourceKind, str] = {"sop": "SOP", "step": "Step", "media": "Media"}


@dataclass(frozen=True)
class ResourceRef:
    kind: ResourceKind
    id: UUID


@dataclass(frozen=True)
class Allow:
    ownership: Ownership


@dataclass(frozen=True)
class Deny:
    reason: DenyReason


Decision = Union[Allow, Deny]


def editors_can_modify_any() -> bool:
    """Whether editors get owner-level mutation rights on every SOP."""
    return env_flag("EDITOR_CAN_MODIFY_ANY", default=True)


def is_permitted(
    account_id: UUID, role: Role, ownership: Ownership, action: Action
) -> bool:
    """The SOP rule, applied to a resolved ownership chain."""
    if ownership.owner_id == account_id or role == "admin":
        return True
    if role == "editor" and editors_can_modify_any():
        return True
    return action == "read" and ownership.is_published


def can_see_all_sops(caller: Caller) -> bool:
    """Whether the caller may read every SOP regardless of owner."""
    return caller.role == "admin" or (
        caller.role == "editor" and editors_can_modify_any()
    )


def authorize(caller: Caller, resource: ResourceRef, action: Action) -> Decision:
    """Decide whether `caller` may perform `action` on `resource`.

    Returns:
        Allow carrying the resolved ownership chain, or Deny with
        "not_found" (resource or a chain link is missing) or "forbidden".
    """
    ownership = get_ownership(resource.kind, resource.id)
    if ownership is None:
        return Deny("not_found")
    if is_permitted(caller.account_id, caller.role, ownership, action):
        return Allow(ownership)
    return Deny("forbidden")


def enforce(
    caller: Caller,
    kind: ResourceKind,
    resource_id: UUID,
    action: Action = "modify",
) -> Ownership:
    """Authorize or raise.

    Raises:
        NotFoundError: If the resource or its ownership chain is missing.
        ForbiddenError: If the caller lacks rights on the owning SOP.
    """
    decision = authorize(caller, ResourceRef(kind, resource_id), action)
    if isinstance(decision, Allow):
        return decision.ownership
    label = _LABELS[kind]
    if decision.reason == "not_found":
        raise NotFoundError(f"{label} {resource_id} not found")
    logger.warning(
        f"Denied {action} on {kind} {resource_id} for account {caller.account_id} "
        f"(role={caller.role})"
    )
    verb = "modify" if action == "modify" else "access"
    raise ForbiddenError(f"You do not have permission to {verb} this {label.lower()}")


def enforce_optional(
    caller: Optional[Caller], kind: ResourceKind, resource_id: UUID
) -> Ownership:
    """Read check for endpoints open to anonymous callers on published SOPs."""
    if caller is not None:
        return enforce(caller, kind, resource_id, action="read")
    ownership = get_ownership(kind, resource_id)
    if ownership is None or not ownership.is_published:
        # Unpublished content is indistinguishable from missing content to anonymous callers.
        raise NotFoundError(f"{_LABELS[kind]} {resource_id} not found")
    return ownership

"""Caller authentication and role-based authorization dependencies."""

from .identity import (
    get_current_caller,
    get_optional_caller,
    require_viewer,
    require_admin,
)

# Export for use in routers
__all__ = [
    "get_current_caller",
    "get_optional_caller",
    "require_viewer",
    "require_admin",
]

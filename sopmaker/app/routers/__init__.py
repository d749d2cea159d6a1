from .admin import router as admin_router
from .auth import router as auth_router
from .categories import router as categories_router
from .comments import router as comments_router
from .media import router as media_router, step_media_router
from .sops import router as sops_router
from .steps import router as steps_router

__all__ = [
    "admin_router",
    "auth_router",
    "categories_router",
    "comments_router",
    "media_router",
    "step_media_router",
    "sops_router",
    "steps_router",
]

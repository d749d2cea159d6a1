from .account import Account, Caller, IdentityAssertion, IdentityProvider, Role
from .media import Media, MediaType, DisplayMode, ALLOWED_MEDIA_TYPES
from .step import Step, StepWithMedia, StepPosition
from .sop import Sop, SopDetail, SopStatus, SopListResponse, SopListMeta
from .comment import SopComment, CommentStatus
from .bootstrap import BootstrapReport, BootstrapStepResult


__all__ = [
    "Account",
    "Caller",
    "IdentityAssertion",
    "IdentityProvider",
    "Role",
    "Media",
    "MediaType",
    "DisplayMode",
    "ALLOWED_MEDIA_TYPES",
    "Step",
    "StepWithMedia",
    "StepPosition",
    "Sop",
    "SopDetail",
    "SopStatus",
    "SopListResponse",
    "SopListMeta",
    "SopComment",
    "CommentStatus",
    "BootstrapReport",
    "BootstrapStepResult",
]

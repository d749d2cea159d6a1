from .account import AccountFactory
from .sop import CommentFactory, SopFactory, StepFactory, MediaFactory

__all__ = [
    "AccountFactory",
    "SopFactory",
    "StepFactory",
    "MediaFactory",
    "CommentFactory",
]

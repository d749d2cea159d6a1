from .client import (
    StorageClient,
    StorageError,
    SignedUpload,
    build_media_path,
    media_path_prefix,
)

__all__ = [
    "StorageClient",
    "StorageError",
    "SignedUpload",
    "build_media_path",
    "media_path_prefix",
]

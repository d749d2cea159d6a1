import os

from sopmaker.integrations.storage import StorageClient
from sopmaker.integrations.storage.client import DEFAULT_SIGNED_URL_EXPIRATION

DEFAULT_MEDIA_MAX_BYTES = 10 * 1024 * 1024  # 10MB


def storage_client() -> StorageClient:
    """Object storage client configured from the environment."""
    return StorageClient.from_env()


def media_max_bytes() -> int:
    """Largest media upload accepted, in bytes."""
    return int(os.getenv("MEDIA_MAX_BYTES", DEFAULT_MEDIA_MAX_BYTES))


def signed_url_expiration() -> int:
    return int(os.getenv("SIGNED_URL_EXPIRATION_SECONDS", DEFAULT_SIGNED_URL_EXPIRATION))

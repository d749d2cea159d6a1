import os
import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID, uuid4

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = "sop-media"
DEFAULT_SIGNED_URL_EXPIRATION = 60 * 15  # 15 minutes


class StorageError(Exception):
    """Raised when the object storage service rejects a request."""


@dataclass
class SignedUpload:
    signed_url: str
    path: str
    token: Optional[str] = None


def build_media_path(
    account_id: UUID, sop_id: UUID, step_id: UUID, filename: str
) -> str:
    """Object path for a new media file.

    The original filename is replaced with a uuid4, keeping its lowercase
    extension: users/{account}/sops/{sop}/steps/{step}/{uuid}.{ext}
    """
    _, dot, extension = filename.rpartition(".")
    suffix = f".{extension.lower()}" if dot and extension else ""
    return f"users/{account_id}/sops/{sop_id}/steps/{step_id}/{uuid4()}{suffix}"


def media_path_prefix(account_id: UUID, sop_id: UUID, step_id: UUID) -> str:
    return f"users/{account_id}/sops/{sop_id}/steps/{step_id}/"


@dataclass
class StorageClient:
    """Thin client for the hosted object storage REST API."""

    base_url: str
    service_key: str
    bucket: str = DEFAULT_BUCKET
    timeout: float = 10

    @classmethod
    def from_env(cls) -> "StorageClient":
        return cls(
            base_url=os.environ["SUPABASE_URL"].rstrip("/"),
            service_key=os.environ["SUPABASE_SERVICE_ROLE_KEY"],
            bucket=os.getenv("MEDIA_BUCKET", DEFAULT_BUCKET),
        )

    def _auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }

    def _object_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        headers = {**self._auth_headers(), **kwargs.pop("headers", {})}
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Storage request {method} {url} failed: {e}")
            raise StorageError(f"Storage request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(
                f"Storage request {method} {url} returned "
                f"{response.status_code}: {response.text}"
            )
            raise StorageError(
                f"Storage service returned {response.status_code}: {response.text}"
            )
        return response

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        """Upload an object and return its public URL."""
        self._request(
            "POST",
            self._object_url(path),
            content=content,
            headers={"Content-Type": content_type, "Cache-Control": "3600"},
        )
        logger.info(f"Uploaded {len(content)} bytes to {self.bucket}/{path}")
        return self.public_url(path)

    def create_signed_upload_url(
        self, path: str, expires_in: int = DEFAULT_SIGNED_URL_EXPIRATION
    ) -> SignedUpload:
        """Ask the storage service for a URL the client can PUT the file to directly."""
        response = self._request(
            "POST",
            f"{self.base_url}/storage/v1/object/upload/sign/{self.bucket}/{path}",
            json={"expiresIn": expires_in},
        )
        data = response.json()
        signed = data.get("url") or data.get("signedURL") or data.get("signedUrl")
        if not signed:
            raise StorageError(f"Storage service returned no signed URL: {data}")
        if signed.startswith("/"):
            signed = f"{self.base_url}/storage/v1{signed}"
        return SignedUpload(signed_url=signed, path=path, token=data.get("token"))

    def remove(self, paths: list[str]) -> None:
        """Delete objects. A no-op for an empty list."""
        if not paths:
            return
        self._request(
            "DELETE",
            f"{self.base_url}/storage/v1/object/{self.bucket}",
            json={"prefixes": paths},
        )
        logger.info(f"Removed {len(paths)} object(s) from {self.bucket}")

"""Test the /api/media and /api/steps/{id}/media endpoints."""

from unittest.mock import patch, MagicMock
from uuid import UUID

import pytest
from fastapi.testclient import TestClient
from psycopg import errors as pg_errors

from sopmaker.app.app import app
from sopmaker.app.dependencies import media_max_bytes, storage_client
from sopmaker.db.ownership import Ownership
from sopmaker.integrations.storage import SignedUpload, StorageError
from tests._factories import MediaFactory
from tests.app.conftest import OWNER_ID

_DB_MOD = "sopmaker.app.routers.media"
_OWNERSHIP = "sopmaker.app.guard.get_ownership"

SOP_ID = UUID("00000000-0000-0000-0000-00000000050a")
STEP_ID = UUID("00000000-0000-0000-0000-00000000057e")
MEDIA_ID = UUID("00000000-0000-0000-0000-0000000000ed")
STEP_PREFIX = f"users/{OWNER_ID}/sops/{SOP_ID}/steps/{STEP_ID}/"


def _ownership(is_published: bool = False) -> Ownership:
    return Ownership(sop_id=SOP_ID, owner_id=OWNER_ID, is_published=is_published)


@pytest.fixture
def mock_storage():
    storage = MagicMock()
    storage.upload.side_effect = lambda path, content, content_type: f"https://cdn/{path}"
    storage.public_url.side_effect = lambda path: f"https://cdn/{path}"
    app.dependency_overrides[storage_client] = lambda: storage
    yield storage
    app.dependency_overrides.pop(storage_client, None)


@pytest.fixture
def small_upload_limit():
    app.dependency_overrides[media_max_bytes] = lambda: 16
    yield 16
    app.dependency_overrides.pop(media_max_bytes, None)


class TestUploadMedia:
    """Test POST /api/media."""

    @patch(f"{_DB_MOD}.create_media")
    @patch(_OWNERSHIP)
    def test_upload_image(
        self,
        mock_ownership: MagicMock,
        mock_create: MagicMock,
        owner_client: TestClient,
        mock_storage: MagicMock,
        media_factory: MediaFactory,
    ):
        mock_ownership.return_value = _ownership()
        mock_create.return_value = media_factory.make()

        response = owner_client.post(
            "/api/media",
            data={"step_id": str(STEP_ID), "caption": "Tire tread"},
            files={"file": ("Tread.JPG", b"\xff\xd8\xff\xe0jpeg", "image/jpeg")},
        )

        assert response.status_code == 201
        path, content, content_type = mock_storage.upload.call_args.args
        assert path.startswith(STEP_PREFIX)
        assert path.endswith(".jpg")
        assert content == b"\xff\xd8\xff\xe0jpeg"
        assert content_type == "image/jpeg"
        kwargs = mock_create.call_args.kwargs
        assert kwargs["type"] == "image"
        assert kwargs["path"] == path
        assert kwargs["url"] == f"https://cdn/{path}"
        assert kwargs["caption"] == "Tire tread"
        assert kwargs["display_mode"] == "contain"
        assert kwargs["size_bytes"] == 8

    @patch(f"{_DB_MOD}.create_media")
    @patch(_OWNERSHIP)
    def test_disallowed_type_rejected_before_any_write(
        self,
        mock_ownership: MagicMock,
        mock_create: MagicMock,
        owner_client: TestClient,
        mock_storage: MagicMock,
    ):
        response = owner_client.post(
            "/api/media",
            data={"step_id": str(STEP_ID)},
            files={"file": ("tool.exe", b"MZ\x90\x00", "application/x-msdownload")},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid file type: application/x-msdownload"
        assert "image/jpeg" in body["details"]
        mock_storage.upload.assert_not_called()
        mock_create.assert_not_called()
        mock_ownership.assert_not_called()

    @patch(f"{_DB_MOD}.create_media")
    @patch(_OWNERSHIP)
    def test_too_large_rejected(
        self,
        mock_ownership: MagicMock,
        mock_create: MagicMock,
        owner_client: TestClient,
        mock_storage: MagicMock,
        small_upload_limit: int,
    ):
        response = owner_client.post(
            "/api/media",
            data={"step_id": str(STEP_ID)},
            files={"file": ("big.png", b"x" * 17, "image/png")},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "File too large"
        mock_storage.upload.assert_not_called()
        mock_create.assert_not_called()

    @patch(f"{_DB_MOD}.create_media")
    @patch(_OWNERSHIP)
    def test_far_oversized_rejected(
        self,
        mock_ownership: MagicMock,
        mock_create: MagicMock,
        owner_client: TestClient,
        mock_storage: MagicMock,
        small_upload_limit: int,
    ):
        response = owner_client.post(
            "/api/media",
            data={"step_id": str(STEP_ID)},
            files={"file": ("huge.png", b"x" * 64 * 1024, "image/png")},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "File too large"
        mock_storage.upload.assert_not_called()

    @patch(f"{_DB_MOD}.create_media")
    @patch(_OWNERSHIP)
    def test_file_at_limit_uploaded_whole(
        self,
        mock_ownership: MagicMock,
        mock_create: MagicMock,
        owner_client: TestClient,
        mock_storage: MagicMock,
        small_upload_limit: int,
        media_factory: MediaFactory,
    ):
        mock_ownership.return_value = _ownership()
        mock_create.return_value = media_factory.make()

        response = owner_client.post(
            "/api/media",
            data={"step_id": str(STEP_ID)},
            files={"file": ("exact.png", b"y" * small_upload_limit, "image/png")},
        )

        assert response.status_code == 201
        assert mock_storage.upload.call_args.args[1] == b"y" * small_upload_limit
        assert mock_create.call_args.kwargs["size_bytes"] == small_upload_limit

    @patch(f"{_DB_MOD}.create_media")
    @patch(_OWNERSHIP)
    def test_non_owner_forbidden(
        self,
        mock_ownership: MagicMock,
        mock_create: MagicMock,
        other_client: TestClient,
        mock_storage: MagicMock,
    ):
        mock_ownership.return_value = _ownership()

        response = other_client.post(
            "/api/media",
            data={"step_id": str(STEP_ID)},
            files={"file": ("a.pdf", b"%PDF-1.7", "application/pdf")},
        )

        assert response.status_code == 403
        mock_storage.upload.assert_not_called()
        mock_create.assert_not_called()

    @patch(f"{_DB_MOD}.create_media")
    @patch(_OWNERSHIP)
    def test_storage_failure(
        self,
        mock_ownership: MagicMock,
        mock_create: MagicMock,
        owner_client: TestClient,
        mock_storage: MagicMock,
    ):
        mock_ownership.return_value = _ownership()
        mock_storage.upload.side_effect = StorageError("bucket not found")

        response = owner_client.post(
            "/api/media",
            data={"step_id": str(STEP_ID)},
            files={"file": ("clip.mp4", b"\x00\x00\x00\x18ftyp", "video/mp4")},
        )

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to upload file"
        mock_create.assert_not_called()

    @patch(f"{_DB_MOD}.create_media")
    @patch(_OWNERSHIP)
    def test_failed_insert_removes_uploaded_object(
        self,
        mock_ownership: MagicMock,
        mock_create: MagicMock,
        owner_client: TestClient,
        mock_storage: MagicMock,
    ):
        mock_ownership.return_value = _ownership()
        mock_create.side_effect = pg_errors.CheckViolation("bad row")

        response = owner_client.post(
            "/api/media",
            data={"step_id": str(STEP_ID)},
            files={"file": ("a.gif", b"GIF89a", "image/gif")},
        )

        assert response.status_code == 500
        uploaded_path = mock_storage.upload.call_args.args[0]
        mock_storage.remove.assert_called_once_with([uploaded_path])


class TestUploadUrl:
    """Test POST /api/media/upload-url."""

    @patch(_OWNERSHIP)
    def test_signed_url(
        self,
        mock_ownership: MagicMock,
        owner_client: TestClient,
        mock_storage: MagicMock,
    ):
        mock_ownership.return_value = _ownership()
        mock_storage.create_signed_upload_url.side_effect = lambda path, expires_in: SignedUpload(
            signed_url=f"https://storage/upload/{path}?token=t", path=path, token="t"
        )

        response = owner_client.post(
            "/api/media/upload-url",
            json={
                "step_id": str(STEP_ID),
                "filename": "manual.pdf",
                "content_type": "application/pdf",
                "size_bytes": 1024,
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["method"] == "PUT"
        assert data["expires_in"] == 900
        assert data["path"].startswith(STEP_PREFIX)
        assert data["path"].endswith(".pdf")
        assert data["signed_url"].startswith("https://storage/upload/")

    @patch(_OWNERSHIP)
    def test_disallowed_type(
        self,
        mock_ownership: MagicMock,
        owner_client: TestClient,
        mock_storage: MagicMock,
    ):
        response = owner_client.post(
            "/api/media/upload-url",
            json={
                "step_id": str(STEP_ID),
                "filename": "page.html",
                "content_type": "text/html",
            },
        )

        assert response.status_code == 400
        mock_storage.create_signed_upload_url.assert_not_called()
        mock_ownership.assert_not_called()


class TestRegisterMedia:
    """Test POST /api/steps/{id}/media."""

    @patch(f"{_DB_MOD}.create_media")
    @patch(_OWNERSHIP)
    def test_register(
        self,
        mock_ownership: MagicMock,
        mock_create: MagicMock,
        owner_client: TestClient,
        mock_storage: MagicMock,
        media_factory: MediaFactory,
    ):
        mock_ownership.return_value = _ownership()
        mock_create.return_value = media_factory.make()
        path = f"{STEP_PREFIX}abc.webp"

        response = owner_client.post(
            f"/api/steps/{STEP_ID}/media",
            json={"path": path, "content_type": "image/webp", "display_mode": "cover"},
        )

        assert response.status_code == 201
        kwargs = mock_create.call_args.kwargs
        assert kwargs["path"] == path
        assert kwargs["url"] == f"https://cdn/{path}"
        assert kwargs["display_mode"] == "cover"

    @pytest.mark.parametrize(
        "path",
        [
            f"users/{UUID(int=7)}/sops/{SOP_ID}/steps/{STEP_ID}/abc.png",
            f"{STEP_PREFIX}../../other/abc.png",
        ],
    )
    @patch(f"{_DB_MOD}.create_media")
    @patch(_OWNERSHIP)
    def test_path_outside_prefix_rejected(
        self,
        mock_ownership: MagicMock,
        mock_create: MagicMock,
        path: str,
        owner_client: TestClient,
        mock_storage: MagicMock,
    ):
        mock_ownership.return_value = _ownership()

        response = owner_client.post(
            f"/api/steps/{STEP_ID}/media",
            json={"path": path, "content_type": "image/png"},
        )

        assert response.status_code == 400
        mock_create.assert_not_called()


class TestListMedia:
    """Test GET /api/media."""

    @patch(f"{_DB_MOD}.get_media_for_step")
    @patch(_OWNERSHIP)
    def test_list(
        self,
        mock_ownership: MagicMock,
        mock_list: MagicMock,
        owner_client: TestClient,
        media_factory: MediaFactory,
    ):
        mock_ownership.return_value = _ownership()
        mock_list.return_value = [media_factory.make()]

        response = owner_client.get("/api/media", params={"step_id": str(STEP_ID)})

        assert response.status_code == 200
        assert response.json()[0]["type"] == "image"
        mock_list.assert_called_once_with(STEP_ID)


class TestUpdateMedia:
    """Test PATCH /api/media/{id}."""

    @patch(f"{_DB_MOD}.update_media")
    @patch(_OWNERSHIP)
    def test_update_caption(
        self,
        mock_ownership: MagicMock,
        mock_update: MagicMock,
        owner_client: TestClient,
        media_factory: MediaFactory,
    ):
        mock_ownership.return_value = _ownership()
        mock_update.return_value = media_factory.make({"caption": "New"})

        response = owner_client.patch(f"/api/media/{MEDIA_ID}", json={"caption": "New"})

        assert response.status_code == 200
        mock_update.assert_called_once_with(MEDIA_ID, caption="New")

    def test_invalid_display_mode(self, owner_client: TestClient):
        response = owner_client.patch(
            f"/api/media/{MEDIA_ID}", json={"display_mode": "stretch"}
        )
        assert response.status_code == 400


class TestDeleteMedia:
    """Test DELETE /api/media/{id}."""

    @patch(f"{_DB_MOD}.delete_media")
    @patch(_OWNERSHIP)
    def test_delete_removes_object(
        self,
        mock_ownership: MagicMock,
        mock_delete: MagicMock,
        owner_client: TestClient,
        mock_storage: MagicMock,
        media_factory: MediaFactory,
    ):
        mock_ownership.return_value = _ownership()
        media = media_factory.make()
        mock_delete.return_value = media

        response = owner_client.delete(f"/api/media/{MEDIA_ID}")

        assert response.status_code == 200
        mock_storage.remove.assert_called_once_with([media.path])
        mock_ownership.assert_called_once_with("media", MEDIA_ID)

    @patch(f"{_DB_MOD}.delete_media")
    @patch(_OWNERSHIP)
    def test_non_owner_forbidden(
        self,
        mock_ownership: MagicMock,
        mock_delete: MagicMock,
        other_client: TestClient,
        mock_storage: MagicMock,
    ):
        mock_ownership.return_value = _ownership(is_published=True)

        response = other_client.delete(f"/api/media/{MEDIA_ID}")

        assert response.status_code == 403
        mock_delete.assert_not_called()
        mock_storage.remove.assert_not_called()

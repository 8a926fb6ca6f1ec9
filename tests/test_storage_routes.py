"""API tests for the signed-upload handshake and direct uploads."""

from urllib.parse import parse_qs, urlsplit

import pytest

from conftest import JPEG_BYTES, OTHER_TOKEN, auth_headers
from eatlock_api.core.exceptions import BadRequestError, PayloadTooLargeError
from eatlock_api.services.upload import UploadService, build_storage_key, sign_upload
from eatlock_api.models.vision import UploadKind


async def signed_upload(client, kind: str = "before", token: str | None = None) -> dict:
    headers = auth_headers(token) if token else auth_headers()
    response = await client.post("/storage/signed-upload", json={"kind": kind}, headers=headers)
    assert response.status_code == 200
    return response.json()


class TestSignedUpload:
    """Tests for POST /storage/signed-upload."""

    async def test_handshake_shape(self, client):
        data = await signed_upload(client)

        assert data["method"] == "PUT"
        assert data["headers"] == {"Content-Type": "image/jpeg"}
        assert data["expiresInSeconds"] == 600
        assert data["key"].startswith("uploads/user-1/")
        assert "_before_" in data["key"]

        url = urlsplit(data["uploadUrl"])
        assert url.path == f"/storage/upload/{data['key']}"
        query = parse_qs(url.query)
        assert set(query) == {"expires", "sig"}

    async def test_default_kind_is_before(self, client):
        response = await client.post("/storage/signed-upload", json={}, headers=auth_headers())

        assert response.status_code == 200
        assert "_before_" in response.json()["key"]

    async def test_unknown_kind_rejected(self, client):
        response = await client.post("/storage/signed-upload", json={"kind": "during"}, headers=auth_headers())

        assert response.status_code == 400

    async def test_identical_uploads_get_distinct_keys(self, client, image_store):
        """Test keys are not content-addressed."""
        first = await signed_upload(client, "after")
        second = await signed_upload(client, "after")
        assert first["key"] != second["key"]

        for handshake in (first, second):
            response = await client.put(
                handshake["uploadUrl"],
                content=JPEG_BYTES,
                headers={**auth_headers(), "Content-Type": "image/jpeg"},
            )
            assert response.status_code == 200

        assert first["key"] in image_store and second["key"] in image_store

    async def test_rate_limited(self, client, quota_engine):
        quota_engine.settings.signed_upload_user_limit = 2

        await signed_upload(client)
        await signed_upload(client)
        response = await client.post("/storage/signed-upload", json={"kind": "before"}, headers=auth_headers())

        assert response.status_code == 429
        assert response.json()["error"] == "Too many upload requests. Please wait and try again."


class TestDirectUpload:
    """Tests for PUT /storage/upload/{key}."""

    async def test_stores_jpeg(self, client, image_store):
        handshake = await signed_upload(client)

        response = await client.put(
            handshake["uploadUrl"],
            content=JPEG_BYTES,
            headers={**auth_headers(), "Content-Type": "image/jpeg"},
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "key": handshake["key"]}
        stored = await image_store.get(handshake["key"])
        assert stored.data == JPEG_BYTES
        assert stored.content_type == "image/jpeg"
        assert stored.user_id == "user-1"

    async def test_six_megabytes_rejected(self, client, image_store):
        handshake = await signed_upload(client)

        response = await client.put(
            handshake["uploadUrl"],
            content=b"\xff" * (6 * 1024 * 1024),
            headers={**auth_headers(), "Content-Type": "image/jpeg"},
        )

        assert response.status_code == 413
        assert response.json()["error"] == "Image too large (max 5MB)"
        assert handshake["key"] not in image_store

    async def test_png_rejected(self, client):
        handshake = await signed_upload(client)

        response = await client.put(
            handshake["uploadUrl"],
            content=b"\x89PNG\r\n\x1a\n",
            headers={**auth_headers(), "Content-Type": "image/png"},
        )

        assert response.status_code == 415
        assert response.json()["error"] == "Only image/jpeg uploads are allowed"

    async def test_empty_body_rejected(self, client):
        handshake = await signed_upload(client)

        response = await client.put(
            handshake["uploadUrl"],
            content=b"",
            headers={**auth_headers(), "Content-Type": "image/jpeg"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Empty body"

    async def test_other_users_key_forbidden(self, client):
        handshake = await signed_upload(client)

        response = await client.put(
            handshake["uploadUrl"],
            content=JPEG_BYTES,
            headers={**auth_headers(OTHER_TOKEN), "Content-Type": "image/jpeg"},
        )

        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden"

    async def test_signature_checks(self, client, clock):
        """Test missing, tampered and expired signatures are rejected."""
        handshake = await signed_upload(client)
        key = handshake["key"]
        query = parse_qs(urlsplit(handshake["uploadUrl"]).query)
        expires = query["expires"][0]
        headers = {**auth_headers(), "Content-Type": "image/jpeg"}

        response = await client.put(f"/storage/upload/{key}", content=JPEG_BYTES, headers=headers)
        assert response.status_code == 403
        assert response.json()["error"] == "Missing upload signature"

        response = await client.put(
            f"/storage/upload/{key}",
            params={"expires": expires, "sig": "0" * 64},
            content=JPEG_BYTES,
            headers=headers,
        )
        assert response.status_code == 403
        assert response.json()["error"] == "Invalid upload signature"

        clock.advance(601)
        response = await client.put(handshake["uploadUrl"], content=JPEG_BYTES, headers=headers)
        assert response.status_code == 403
        assert response.json()["error"] == "Upload URL expired"

    async def test_signature_is_bound_to_key(self, client):
        """Test a signature cannot be replayed for a different key."""
        handshake = await signed_upload(client)
        query = parse_qs(urlsplit(handshake["uploadUrl"]).query)
        other_key = handshake["key"].replace("_before_", "_after_")

        response = await client.put(
            f"/storage/upload/{other_key}",
            params={"expires": query["expires"][0], "sig": query["sig"][0]},
            content=JPEG_BYTES,
            headers={**auth_headers(), "Content-Type": "image/jpeg"},
        )

        assert response.status_code == 403


class TestUploadService:
    """Unit tests for header and body validation."""

    @pytest.fixture
    def service(self, image_store, settings, clock):
        return UploadService(image_store, settings, clock)

    def test_invalid_content_length(self, service):
        with pytest.raises(BadRequestError) as exc_info:
            service.check_headers("image/jpeg", "lots")
        assert exc_info.value.message == "Invalid Content-Length header"

        with pytest.raises(PayloadTooLargeError):
            service.check_headers("image/jpeg; charset=binary", str(6 * 1024 * 1024))

    async def test_streamed_body_capped_without_length(self, service):
        async def chunks():
            for _ in range(6):
                yield b"\x00" * (1024 * 1024)

        with pytest.raises(PayloadTooLargeError):
            await service.read_body(chunks())

    def test_keys_and_signatures(self):
        key = build_storage_key("user-1", UploadKind.AFTER, 1_700_000_000_000)

        assert key.startswith("uploads/user-1/1700000000000_after_")
        assert key.endswith(".jpg")
        assert sign_upload(key, 100, "s") != sign_upload(key, 101, "s")
        assert sign_upload(key, 100, "s") != sign_upload(key, 100, "t")

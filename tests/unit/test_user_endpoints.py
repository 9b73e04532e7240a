"""Unit tests for the user account API endpoints.

Uses FastAPI TestClient with the credential and media stores replaced by
in-memory fakes (see conftest), so requests exercise the real workflows,
token service, cookies and error envelopes.
"""

import pytest

PREFIX = "/api/v1/users"

REGISTRATION_FORM = {
    "fullName": "A B",
    "email": "a@b.com",
    "username": "ab",
    "password": "secret1",
}


def _files(avatar=True, cover=True):
    files = {}
    if avatar:
        files["avatar"] = ("avatar.png", b"avatar-bytes", "image/png")
    if cover:
        files["coverImage"] = ("cover.png", b"cover-bytes", "image/png")
    return files


def _login(client, email="alice@example.com", password="correct-password"):
    return client.post(f"{PREFIX}/login", json={"email": email, "password": password})


@pytest.fixture
def alice(fake_user_service):
    return fake_user_service.add_user(
        username="alice", email="alice@example.com", password="correct-password"
    )


# ---------------------------------------------------------------------------
# POST /register
# ---------------------------------------------------------------------------

class TestRegister:
    def test_register_returns_sanitized_user(self, client, fake_media_store, settings):
        response = client.post(f"{PREFIX}/register", data=REGISTRATION_FORM, files=_files())

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["statusCode"] == 200
        user = body["data"]
        assert user["username"] == "ab"
        assert user["email"] == "a@b.com"
        assert user["fullName"] == "A B"
        for hidden in ("password", "passwordHash", "password_hash", "refreshToken"):
            assert hidden not in user
        assert len(fake_media_store.uploaded) == 2

    def test_staged_files_are_removed(self, client, settings):
        from pathlib import Path

        client.post(f"{PREFIX}/register", data=REGISTRATION_FORM, files=_files())

        temp_dir = Path(settings.upload_temp_dir)
        assert not temp_dir.exists() or list(temp_dir.iterdir()) == []

    def test_missing_field(self, client, fake_media_store, fake_user_service):
        form = dict(REGISTRATION_FORM, password="")
        response = client.post(f"{PREFIX}/register", data=form, files=_files())

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"
        assert fake_media_store.uploaded == []
        assert fake_user_service.users == {}

    def test_missing_cover_image(self, client, fake_media_store, settings):
        from pathlib import Path

        response = client.post(
            f"{PREFIX}/register", data=REGISTRATION_FORM, files=_files(cover=False)
        )

        assert response.status_code == 400
        assert "cover" in response.json()["message"].lower()
        assert fake_media_store.uploaded == []
        # The staged avatar is cleaned up even though it was never uploaded
        assert list(Path(settings.upload_temp_dir).iterdir()) == []

    def test_overlong_password(self, client, fake_media_store, fake_user_service, settings):
        from pathlib import Path

        form = dict(REGISTRATION_FORM, password="p" * 80)
        response = client.post(f"{PREFIX}/register", data=form, files=_files())

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"
        assert fake_media_store.uploaded == []
        assert fake_user_service.users == {}
        assert list(Path(settings.upload_temp_dir).iterdir()) == []

    def test_duplicate_user(self, client, alice, fake_media_store):
        form = dict(REGISTRATION_FORM, username="alice")
        response = client.post(f"{PREFIX}/register", data=form, files=_files())

        assert response.status_code == 409
        assert response.json()["error"] == "Conflict"
        assert fake_media_store.uploaded == []

    def test_cover_upload_failure(self, client, fake_media_store, fake_user_service):
        # Staged names are random, so fail the second upload by position
        original_upload = fake_media_store.upload
        calls = []

        async def upload(path):
            calls.append(path)
            if len(calls) == 2:
                from account_api.services.media_service import MediaStoreError

                raise MediaStoreError("upload rejected")
            return await original_upload(path)

        fake_media_store.upload = upload

        response = client.post(f"{PREFIX}/register", data=REGISTRATION_FORM, files=_files())

        assert response.status_code == 500
        assert response.json()["error"] == "UploadError"
        assert fake_media_store.deleted == [fake_media_store.uploaded[0].public_id]
        assert fake_user_service.users == {}


# ---------------------------------------------------------------------------
# POST /login
# ---------------------------------------------------------------------------

class TestLogin:
    def test_login_sets_cookies_and_returns_tokens(self, client, alice, fake_user_service):
        response = _login(client)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["accessToken"]
        assert data["refreshToken"] == fake_user_service.users[alice.id].refresh_token
        assert "password" not in data["user"]
        assert "refreshToken" not in data["user"]
        assert response.cookies.get("accessToken") == data["accessToken"]
        assert response.cookies.get("refreshToken") == data["refreshToken"]
        assert "httponly" in response.headers.get("set-cookie", "").lower()

    def test_wrong_password_sets_no_cookies(self, client, alice):
        response = _login(client, password="wrong-password")

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "InvalidCredentials"
        assert "set-cookie" not in response.headers

    def test_unknown_user(self, client):
        response = _login(client, email="ghost@example.com")
        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"

    def test_missing_email_and_username(self, client):
        response = client.post(f"{PREFIX}/login", json={"password": "pw"})
        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"


# ---------------------------------------------------------------------------
# Gate, current user, logout
# ---------------------------------------------------------------------------

class TestGate:
    def test_current_user_with_bearer_header(self, client, alice):
        token = _login(client).json()["data"]["accessToken"]
        client.cookies.clear()

        response = client.get(
            f"{PREFIX}/current-user", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 200
        assert response.json()["data"]["username"] == "alice"

    def test_current_user_with_cookie(self, client, alice):
        _login(client)
        response = client.get(f"{PREFIX}/current-user")
        assert response.status_code == 200

    def test_missing_token(self, client):
        response = client.get(f"{PREFIX}/current-user")
        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized"

    def test_invalid_token(self, client):
        response = client.get(
            f"{PREFIX}/current-user", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    def test_refresh_token_is_not_an_access_token(self, client, alice):
        refresh = _login(client).json()["data"]["refreshToken"]
        client.cookies.clear()

        response = client.get(
            f"{PREFIX}/current-user", headers={"Authorization": f"Bearer {refresh}"}
        )
        assert response.status_code == 401

    def test_logout_clears_session(self, client, alice, fake_user_service):
        old_refresh = _login(client).json()["data"]["refreshToken"]

        response = client.post(f"{PREFIX}/logout")

        assert response.status_code == 200
        assert fake_user_service.users[alice.id].refresh_token is None
        assert client.cookies.get("accessToken") is None

        retry = client.post(f"{PREFIX}/refresh-token", json={"refreshToken": old_refresh})
        assert retry.status_code == 401

    def test_logout_requires_auth(self, client):
        assert client.post(f"{PREFIX}/logout").status_code == 401


# ---------------------------------------------------------------------------
# POST /refresh-token
# ---------------------------------------------------------------------------

class TestRefreshToken:
    def test_refresh_from_cookie_rotates(self, client, alice, fake_user_service):
        first = _login(client).json()["data"]["refreshToken"]

        response = client.post(f"{PREFIX}/refresh-token")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["accessToken"]
        assert data["refreshToken"] != first
        assert fake_user_service.users[alice.id].refresh_token == data["refreshToken"]

    def test_refresh_from_body(self, client, alice):
        first = _login(client).json()["data"]["refreshToken"]
        client.cookies.clear()

        response = client.post(f"{PREFIX}/refresh-token", json={"refreshToken": first})

        assert response.status_code == 200

    def test_stale_token_rejected(self, client, alice):
        first = _login(client).json()["data"]["refreshToken"]
        client.post(f"{PREFIX}/refresh-token")
        client.cookies.clear()

        response = client.post(f"{PREFIX}/refresh-token", json={"refreshToken": first})

        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized"

    def test_no_token(self, client):
        assert client.post(f"{PREFIX}/refresh-token").status_code == 401


# ---------------------------------------------------------------------------
# Authenticated profile changes
# ---------------------------------------------------------------------------

class TestProfileChanges:
    def test_change_password(self, client, alice):
        _login(client)

        response = client.post(
            f"{PREFIX}/change-password",
            json={"oldPassword": "correct-password", "newPassword": "brand-new"},
        )

        assert response.status_code == 200
        client.cookies.clear()
        assert _login(client, password="correct-password").status_code == 401
        assert _login(client, password="brand-new").status_code == 200

    def test_change_password_wrong_old(self, client, alice):
        _login(client)
        response = client.post(
            f"{PREFIX}/change-password",
            json={"oldPassword": "nope", "newPassword": "brand-new"},
        )
        assert response.status_code == 401
        assert response.json()["error"] == "InvalidCredentials"

    def test_change_password_overlong(self, client, alice):
        _login(client)
        response = client.post(
            f"{PREFIX}/change-password",
            json={"oldPassword": "correct-password", "newPassword": "p" * 80},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    def test_update_account(self, client, alice):
        _login(client)
        response = client.patch(
            f"{PREFIX}/update-account",
            json={"fullName": "Alice Cooper", "email": "cooper@example.com"},
        )
        assert response.status_code == 200
        assert response.json()["data"]["fullName"] == "Alice Cooper"
        assert response.json()["data"]["email"] == "cooper@example.com"

    def test_update_account_blank(self, client, alice):
        _login(client)
        response = client.patch(f"{PREFIX}/update-account", json={"fullName": "", "email": ""})
        assert response.status_code == 400

    def test_update_avatar(self, client, alice, fake_user_service):
        _login(client)
        response = client.patch(
            f"{PREFIX}/avatar", files={"avatar": ("me.png", b"bytes", "image/png")}
        )
        assert response.status_code == 200
        new_url = response.json()["data"]["avatar"]
        assert new_url.startswith("https://media.test/")
        assert fake_user_service.users[alice.id].avatar == new_url

    def test_update_cover_image_without_file(self, client, alice):
        _login(client)
        response = client.patch(f"{PREFIX}/cover-image")
        assert response.status_code == 400


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------

class TestErrorEnvelope:
    def test_development_includes_stack(self, client):
        body = client.get(f"{PREFIX}/current-user").json()
        assert body["statusCode"] == 401
        assert "stack" in body
        assert body["errors"] == []

    def test_production_hides_stack(self, client, monkeypatch):
        from account_api import main

        production = main.get_settings().model_copy(update={"environment": "production"})
        monkeypatch.setattr(main, "get_settings", lambda: production)

        body = client.get(f"{PREFIX}/current-user").json()
        assert "stack" not in body
        assert "errors" not in body
        assert body["message"]

    def test_correlation_id_header(self, client):
        response = client.get(f"{PREFIX}/current-user", headers={"X-Correlation-Id": "abc-123"})
        assert response.headers["X-Correlation-Id"] == "abc-123"


# ---------------------------------------------------------------------------
# Multipart staging
# ---------------------------------------------------------------------------

class TestStagedMedia:
    @staticmethod
    def _upload(filename, data=b"bytes", error=None):
        from unittest.mock import AsyncMock, MagicMock

        upload = MagicMock()
        upload.filename = filename
        upload.read = AsyncMock(return_value=data, side_effect=error)
        return upload

    async def test_files_removed_after_use(self, settings):
        from account_api.api.users import staged_media

        async with staged_media(
            settings, self._upload("a.PNG"), self._upload("c.jpg")
        ) as media:
            assert media.avatar.suffix == ".png"
            assert media.avatar.read_bytes() == b"bytes"
            assert media.cover_image.exists()

        assert not media.avatar.exists()
        assert not media.cover_image.exists()

    async def test_failed_second_file_removes_first(self, settings):
        from pathlib import Path

        from account_api.api.users import staged_media

        avatar = self._upload("a.png")
        cover = self._upload("c.png", error=OSError("disk full"))

        with pytest.raises(OSError):
            async with staged_media(settings, avatar, cover):
                pass

        assert list(Path(settings.upload_temp_dir).iterdir()) == []

    async def test_missing_upload_is_none(self, settings):
        from account_api.api.users import staged_media

        async with staged_media(settings, avatar=self._upload("")) as media:
            assert media.avatar is None
            assert media.cover_image is None

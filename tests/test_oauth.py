"""Google OAuth tests — the provider is faked with httpx.MockTransport."""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from conftest import PASSWORD, register_and_login
from sparklink.auth.oauth import (
    GOOGLE_TOKEN_URL,
    GOOGLE_USERINFO_URL,
    GoogleOAuthClient,
)
from sparklink.errors import OAuthProviderError


def fake_google(userinfo: dict, token_status: int = 200):
    """MockTransport handler that plays Google's token + userinfo endpoints."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url == GOOGLE_TOKEN_URL:
            if token_status != 200:
                return httpx.Response(token_status, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "ya29.fake"})
        if url == GOOGLE_USERINFO_URL:
            assert request.headers["Authorization"] == "Bearer ya29.fake"
            return httpx.Response(200, json=userinfo)
        return httpx.Response(404)

    return httpx.MockTransport(handler)


def use_provider(app, settings, transport):
    app.state.oauth_client = GoogleOAuthClient(settings, transport=transport)


# ═══════════════════════════════════════════════════════════
# Client
# ═══════════════════════════════════════════════════════════


def test_authorization_url(settings):
    url = GoogleOAuthClient(settings).authorization_url("the-state")
    query = parse_qs(urlparse(url).query)
    assert query["client_id"] == ["test-client-id"]
    assert query["state"] == ["the-state"]
    assert query["response_type"] == ["code"]
    assert query["redirect_uri"] == [settings.oauth_redirect_uri]


@pytest.mark.asyncio
async def test_fetch_profile(settings):
    client = GoogleOAuthClient(
        settings,
        transport=fake_google(
            {
                "sub": "1234567890",
                "email": "ada@example.com",
                "email_verified": True,
                "given_name": "Ada",
                "family_name": "Lovelace",
                "picture": "https://img/ada.png",
            }
        ),
    )
    profile = await client.fetch_profile("auth-code")
    assert profile.subject == "1234567890"
    assert profile.email == "ada@example.com"
    assert profile.first_name == "Ada"
    assert profile.avatar_url == "https://img/ada.png"
    assert profile.email_verified is True


@pytest.mark.asyncio
async def test_fetch_profile_provider_rejects_code(settings):
    client = GoogleOAuthClient(settings, transport=fake_google({}, token_status=400))
    with pytest.raises(OAuthProviderError):
        await client.fetch_profile("bad-code")


@pytest.mark.asyncio
async def test_fetch_profile_carries_unverified_email(settings):
    client = GoogleOAuthClient(
        settings,
        transport=fake_google(
            {"sub": "X", "email": "victim@example.com", "email_verified": False}
        ),
    )
    profile = await client.fetch_profile("auth-code")
    assert profile.email_verified is False


@pytest.mark.asyncio
async def test_fetch_profile_missing_email(settings):
    client = GoogleOAuthClient(settings, transport=fake_google({"sub": "1"}))
    with pytest.raises(OAuthProviderError):
        await client.fetch_profile("auth-code")


# ═══════════════════════════════════════════════════════════
# Routes
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_oauth_start_redirects_to_google(client, app):
    r = await client.get("/api/auth/oauth/google")
    assert r.status_code == 307
    location = r.headers["location"]
    assert location.startswith("https://accounts.google.com/")
    state = parse_qs(urlparse(location).query)["state"][0]
    app.state.tokens.verify_state(state)


@pytest.mark.asyncio
async def test_oauth_callback_creates_then_reuses_user(client, app, settings):
    use_provider(
        app, settings, fake_google(
            {"sub": "g-42", "email": "new@example.com", "email_verified": True}
        )
    )
    params = {"code": "auth-code", "state": app.state.tokens.issue_state()}

    r = await client.get("/api/auth/oauth/callback", params=params)
    assert r.status_code == 200
    first = r.json()
    assert first["created"] is True
    assert first["user"]["is_verified"] is True
    assert first["token"]

    r = await client.get("/api/auth/oauth/callback", params=params)
    assert r.status_code == 200
    second = r.json()
    assert second["created"] is False
    assert second["user"]["id"] == first["user"]["id"]


@pytest.mark.asyncio
async def test_oauth_callback_links_password_account(client, app, settings):
    user, _ = await register_and_login(client)
    use_provider(
        app,
        settings,
        fake_google({"sub": "g-7", "email": user["email"], "email_verified": True}),
    )

    r = await client.get(
        "/api/auth/oauth/callback",
        params={"code": "auth-code", "state": app.state.tokens.issue_state()},
    )
    assert r.status_code == 200
    assert r.json()["user"]["id"] == user["id"]
    assert r.json()["created"] is False

    r = await client.post(
        "/api/auth/login", json={"email": user["email"], "password": PASSWORD}
    )
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_oauth_callback_rejects_forged_state(client):
    r = await client.get(
        "/api/auth/oauth/callback", params={"code": "auth-code", "state": "forged"}
    )
    assert r.status_code == 400
    assert r.json()["error_code"] == "INVALID_TOKEN"


@pytest.mark.asyncio
async def test_oauth_callback_missing_code(client, app):
    r = await client.get(
        "/api/auth/oauth/callback", params={"state": app.state.tokens.issue_state()}
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_oauth_callback_provider_error(client):
    r = await client.get("/api/auth/oauth/callback", params={"error": "access_denied"})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_oauth_callback_provider_down(client, app, settings):
    use_provider(app, settings, fake_google({}, token_status=503))
    r = await client.get(
        "/api/auth/oauth/callback",
        params={"code": "auth-code", "state": app.state.tokens.issue_state()},
    )
    assert r.status_code == 502
    assert r.json()["error_code"] == "OAUTH_PROVIDER_ERROR"


@pytest.mark.asyncio
async def test_oauth_callback_unverified_email_cannot_take_over(client, app, settings):
    user, _ = await register_and_login(client)
    use_provider(
        app,
        settings,
        fake_google({"sub": "g-evil", "email": user["email"], "email_verified": False}),
    )

    r = await client.get(
        "/api/auth/oauth/callback",
        params={"code": "auth-code", "state": app.state.tokens.issue_state()},
    )
    assert r.status_code == 403
    assert r.json()["error_code"] == "PROVIDER_EMAIL_UNVERIFIED"
    assert "token" not in r.json()


@pytest.mark.asyncio
async def test_oauth_callback_other_google_identity_conflict(client, app, settings):
    email = "linked@example.com"
    use_provider(
        app, settings, fake_google({"sub": "g-one", "email": email, "email_verified": True})
    )
    r = await client.get(
        "/api/auth/oauth/callback",
        params={"code": "auth-code", "state": app.state.tokens.issue_state()},
    )
    assert r.status_code == 200

    use_provider(
        app, settings, fake_google({"sub": "g-two", "email": email, "email_verified": True})
    )
    r = await client.get(
        "/api/auth/oauth/callback",
        params={"code": "auth-code", "state": app.state.tokens.issue_state()},
    )
    assert r.status_code == 409
    assert r.json()["error_code"] == "OAUTH_ACCOUNT_CONFLICT"

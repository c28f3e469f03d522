try:
    from . import _bootstrap  # noqa: F401
except ImportError:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from fastapi import Request

from _fakes import (
    KID,
    PROVIDER,
    FakeAccountDatabase,
    FakeProvider,
    FakeStorage,
    jwks_for,
    make_account,
    make_id_token,
)
from app.clients.id_token import JwksCache
from app.core.config import SessionSettings, get_settings
from app.dependencies import (
    get_account_database,
    get_app_settings,
    get_jwks_cache,
    get_oidc_provider_client,
    get_provider_metadata,
    get_storage_backend,
)
from app.main import app, error_client_info

pytestmark = pytest.mark.anyio

SESSION_COOKIE = "jukebox_session"


class Deployment:
    def __init__(self, signing_key, storage: FakeStorage) -> None:
        self.signing_key = signing_key
        self.db = FakeAccountDatabase()
        self.storage = storage
        self.provider = FakeProvider(jwks_for((signing_key, KID)))
        self.jwks_cache = JwksCache()

    def install(self) -> None:
        app.dependency_overrides[get_account_database] = lambda: self.db
        app.dependency_overrides[get_storage_backend] = lambda: self.storage
        app.dependency_overrides[get_provider_metadata] = lambda: PROVIDER
        app.dependency_overrides[get_oidc_provider_client] = lambda: self.provider.client()
        app.dependency_overrides[get_jwks_cache] = lambda: self.jwks_cache

    def signed_in(self, **overrides):
        account = make_account(**overrides)
        self.db.store_account(account)
        return account

    def client(self, **kwargs) -> httpx.AsyncClient:
        transport = httpx.ASGITransport(app=app)
        return httpx.AsyncClient(transport=transport, base_url="http://testserver", **kwargs)


@pytest.fixture
def deployment(signing_key):
    deployment = Deployment(signing_key, FakeStorage())
    deployment.install()
    yield deployment
    app.dependency_overrides.clear()


@pytest.fixture
def profileless_deployment(signing_key):
    deployment = Deployment(signing_key, FakeStorage(supports_profiles=False))
    deployment.install()
    yield deployment
    app.dependency_overrides.clear()


def _set_cookies(response: httpx.Response) -> list[str]:
    return response.headers.get_list("set-cookie")


async def test_healthcheck(deployment: Deployment) -> None:
    async with deployment.client() as client:
        response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_anonymous_profile_request_is_unauthorized(deployment: Deployment) -> None:
    async with deployment.client(headers={"X-Client-UID": "browser-7"}) as client:
        response = await client.get("/api/profile/me")

    assert response.status_code == 401
    assert response.json() == {"error": "Not signed in", "client_uid": "browser-7"}
    assert response.headers["X-Client-UID"] == "browser-7"
    assert not any(cookie.startswith(f"{SESSION_COOKIE}=") for cookie in _set_cookies(response))


async def test_unknown_session_cookie_is_cleared(deployment: Deployment) -> None:
    async with deployment.client(cookies={SESSION_COOKIE: "bogus"}) as client:
        response = await client.get("/api/profile/stars")

    assert response.status_code == 401
    cleared = [c for c in _set_cookies(response) if c.startswith(f"{SESSION_COOKIE}=")]
    assert len(cleared) == 1
    assert "Max-Age=0" in cleared[0]


async def test_star_lifecycle(deployment: Deployment) -> None:
    account = deployment.signed_in()

    async with deployment.client(cookies={SESSION_COOKIE: account.session_token}) as client:
        empty = await client.get("/api/profile/me")
        assert (await client.put("/api/profile/stars/track-b")).status_code == 204
        assert (await client.put("/api/profile/stars/track-a")).status_code == 204
        assert (await client.put("/api/profile/stars/track-a")).status_code == 204
        starred = await client.get("/api/profile/stars")
        assert (await client.delete("/api/profile/stars/track-b")).status_code == 204
        assert (await client.delete("/api/profile/stars/never-starred")).status_code == 204
        profile = await client.get("/api/profile/me")

    assert empty.json() == {"stars": []}
    assert starred.json() == ["track-a", "track-b"]
    assert profile.json() == {"stars": ["track-a"]}


async def test_profiles_unsupported_by_storage(profileless_deployment: Deployment) -> None:
    account = profileless_deployment.signed_in()

    async with profileless_deployment.client(
        cookies={SESSION_COOKIE: account.session_token}
    ) as client:
        response = await client.put("/api/profile/stars/track-a")

    assert response.status_code == 501
    assert response.json()["error"] == "Configured storage method does not support storing profiles"
    assert profileless_deployment.storage.calls == []


async def test_sign_in_flow_sets_session_and_redirects(deployment: Deployment) -> None:
    deployment.provider.token_responses.append(
        httpx.Response(
            200,
            json={
                "access_token": "A",
                "refresh_token": "R",
                "id_token": make_id_token(deployment.signing_key, sub="u1"),
            },
        )
    )

    async with deployment.client() as client:
        login = await client.get("/api/profile/google/login", params={"redirect_to": "/library"})
        state = login.json()["state"]
        consent = urlsplit(login.json()["authorization_url"])
        callback = await client.get(
            "/api/profile/google_callback", params={"code": "abc", "state": state}
        )
        profile = await client.get("/api/profile/me")

    assert login.status_code == 200
    assert parse_qs(consent.query)["state"] == [state]
    assert callback.status_code == 302
    assert callback.headers["location"] == "/library"
    account = deployment.db.find_by_subject("u1")
    session_cookie = [c for c in _set_cookies(callback) if c.startswith(f"{SESSION_COOKIE}=")]
    assert len(session_cookie) == 1
    assert account.session_token in session_cookie[0]
    assert "HttpOnly" in session_cookie[0]
    assert "Path=/" in session_cookie[0]
    assert profile.status_code == 200
    assert profile.json() == {"stars": []}


async def test_sign_in_replaces_stale_cookie(deployment: Deployment) -> None:
    deployment.provider.token_responses.append(
        httpx.Response(
            200,
            json={
                "access_token": "A",
                "refresh_token": "R",
                "id_token": make_id_token(deployment.signing_key, sub="u1"),
            },
        )
    )

    async with deployment.client() as client:
        login = await client.get(
            "/api/profile/google/login", headers={"X-Client-UID": "browser-9"}
        )
        callback = await client.get(
            "/api/profile/google_callback",
            params={"code": "abc", "state": login.json()["state"]},
            headers={"X-Client-UID": "browser-9", "Cookie": f"{SESSION_COOKIE}=bogus"},
        )

    assert callback.status_code == 302

    session_cookies = [c for c in _set_cookies(callback) if c.startswith(f"{SESSION_COOKIE}=")]
    assert len(session_cookies) == 1
    assert "Max-Age=0" not in session_cookies[0]


async def test_login_redirects_browsers(deployment: Deployment) -> None:
    async with deployment.client() as client:
        response = await client.get(
            "/api/profile/google/login", headers={"Accept": "text/html"}
        )

    assert response.status_code == 307
    assert response.headers["location"].startswith(PROVIDER.authorization_endpoint)
    assert any(c.startswith("client_uid=") for c in _set_cookies(response))


async def test_login_rejects_off_site_redirect(deployment: Deployment) -> None:
    async with deployment.client() as client:
        response = await client.get(
            "/api/profile/google/login", params={"redirect_to": "https://evil.example.com"}
        )

    assert response.status_code == 400
    assert deployment.db.states == {}


async def test_callback_with_unknown_state_is_unauthorized(deployment: Deployment) -> None:
    async with deployment.client() as client:
        response = await client.get(
            "/api/profile/google_callback", params={"code": "abc", "state": "forged"}
        )

    assert response.status_code == 401
    assert deployment.provider.requests == []


async def test_callback_without_code_is_a_bad_request(deployment: Deployment) -> None:
    async with deployment.client() as client:
        login = await client.get("/api/profile/google/login")
        response = await client.get(
            "/api/profile/google_callback", params={"state": login.json()["state"]}
        )

    assert response.status_code == 400
    assert response.json()["error"] == "Missing authorization code"


async def test_callback_with_rejected_code(deployment: Deployment) -> None:
    deployment.provider.token_responses.append(
        httpx.Response(400, json={"error": "invalid_grant"})
    )

    async with deployment.client() as client:
        login = await client.get("/api/profile/google/login")
        response = await client.get(
            "/api/profile/google_callback",
            params={"code": "stale", "state": login.json()["state"]},
        )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid code"


async def test_provider_display_name_refreshes_expired_token(deployment: Deployment) -> None:
    account = deployment.signed_in()

    def userinfo(request: httpx.Request) -> httpx.Response:
        if request.headers["Authorization"] == "Bearer A2":
            return httpx.Response(200, json={"sub": "u1", "name": "Ada Lovelace"})
        return httpx.Response(401)

    deployment.provider.resource_responses.extend([userinfo, userinfo])
    deployment.provider.token_responses.append(httpx.Response(200, json={"access_token": "A2"}))

    async with deployment.client(cookies={SESSION_COOKIE: account.session_token}) as client:
        response = await client.get("/api/profile/google")

    assert response.status_code == 200
    assert response.json() == {"displayName": "Ada Lovelace"}
    assert deployment.db.get_account(account.internal_id).access_token == "A2"


async def test_provider_display_name_forbidden_when_provider_refuses(
    deployment: Deployment,
) -> None:
    account = deployment.signed_in()
    deployment.provider.resource_responses.append(httpx.Response(403))

    async with deployment.client(cookies={SESSION_COOKIE: account.session_token}) as client:
        response = await client.get("/api/profile/google")

    assert response.status_code == 403
    assert deployment.provider.token_requests == []


async def test_provider_display_name_forbidden_when_provider_times_out(
    deployment: Deployment,
) -> None:
    account = deployment.signed_in()

    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    deployment.provider.resource_responses.append(timeout)

    async with deployment.client(cookies={SESSION_COOKIE: account.session_token}) as client:
        response = await client.get("/api/profile/google")

    assert response.status_code == 403
    assert deployment.provider.token_requests == []


async def test_missing_provider_metadata_is_a_json_503(deployment: Deployment) -> None:
    account = deployment.signed_in()
    app.dependency_overrides.pop(get_provider_metadata)

    async with deployment.client(
        cookies={SESSION_COOKIE: account.session_token},
        headers={"X-Client-UID": "browser-3"},
    ) as client:
        response = await client.get("/api/profile/google")

    assert response.status_code == 503
    assert response.json() == {
        "error": "Identity provider metadata is not loaded.",
        "client_uid": "browser-3",
    }
    assert response.headers["X-Client-UID"] == "browser-3"


async def test_malformed_query_parameter_is_a_json_bad_request(deployment: Deployment) -> None:
    async with deployment.client(headers={"X-Client-UID": "browser-4"}) as client:
        response = await client.get(
            "/api/profile/google/login", params={"redirect": "sometimes"}
        )

    assert response.status_code == 400
    body = response.json()
    assert body["client_uid"] == "browser-4"
    assert "redirect" in body["error"]
    assert response.headers["X-Client-UID"] == "browser-4"
    assert deployment.db.states == {}


async def test_error_responses_follow_overridden_settings(deployment: Deployment) -> None:
    settings = get_settings().model_copy(
        update={"session": SessionSettings(SESSION_COOKIE_NAME="alt_session")}
    )
    app.dependency_overrides[get_app_settings] = lambda: settings
    request = Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/api/profile/me",
            "query_string": b"",
            "headers": [(b"cookie", b"alt_session=tok; jukebox_session=other")],
            "app": app,
        }
    )

    client = error_client_info(request)

    assert client.auth_token == "tok"

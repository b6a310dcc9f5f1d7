"""
HTTP contract of the session service.

Why:
    The web client relies on stable JSON shapes, status codes and private
    no-store caching for every session-bearing response. The app is built with
    an injected manager factory so no remote provider is involved.
"""
from __future__ import annotations

import pytest
import httpx
from httpx import ASGITransport

from session_fakes import FakeAuthGateway, FakeProfiles, FakePushService
from loopverse.identity_access.config import IdentityConfig
from loopverse.identity_access.demo import DemoIdentityProvider
from loopverse.identity_access.manager import SessionManager
from loopverse.identity_access.ports import AuthRejectedError
from loopverse.identity_access.session import RemoteUser
from loopverse.identity_access.stores import MemoryKeyValueStore
from loopverse.web.main import create_app


pytestmark = pytest.mark.anyio("asyncio")


def _factory(auth=None, config=None, profiles=None):
    async def _build(navigator, theme):
        return SessionManager(
            auth=auth or FakeAuthGateway(),
            profiles=profiles or FakeProfiles(),
            storage=MemoryKeyValueStore(),
            notifications=FakePushService(token="tok-web"),
            config=config or IdentityConfig(),
            navigator=navigator,
            identity_provider=DemoIdentityProvider(),
            theme_applier=theme,
        )

    return _build


def _client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _assert_private(resp: httpx.Response) -> None:
    cc = resp.headers.get("Cache-Control", "")
    assert "private" in cc and "no-store" in cc


@pytest.mark.anyio
async def test_app_serves_one_process_wide_session():
    app = create_app(manager_factory=_factory())
    async with _client(app) as device, _client(app) as other:
        await device.post("/auth/login", json={"email": "admin@loopverse.com", "password": "password"})
        seen = await other.get("/api/me")
        await other.post("/auth/logout")
        after = await device.get("/api/me")

    assert seen.json()["user"]["email"] == "admin@loopverse.com"
    assert after.status_code == 401


@pytest.mark.anyio
async def test_me_requires_session():
    async with _client(create_app(manager_factory=_factory())) as client:
        resp = await client.get("/api/me")
    assert resp.status_code == 401
    assert resp.json() == {"error": "unauthenticated"}
    _assert_private(resp)


@pytest.mark.anyio
async def test_demo_login_then_me_navigation_and_dashboard():
    async with _client(create_app(manager_factory=_factory())) as client:
        login = await client.post("/auth/login", json={"email": "teacher@loopverse.com", "password": "password"})
        me = await client.get("/api/me")
        nav = await client.get("/api/navigation")
        dash = await client.get("/dashboard")
        access = await client.get("/api/access", params=[("roles", "teacher"), ("roles", "admin")])
        denied = await client.get("/api/access", params={"roles": "admin"})

    assert login.status_code == 200
    body = login.json()
    assert body["success"] is True
    assert body["user"]["role"] == "teacher"
    assert body["user"]["source"] == "demo"
    assert body["redirect"] == "/dashboards/teacherDashboard"
    _assert_private(login)

    assert me.status_code == 200
    assert me.json()["user"]["email"] == "teacher@loopverse.com"
    assert me.json()["push_token"] == "tok-web"
    assert me.json()["loading"] is False

    assert nav.json()["home"] == "/dashboards/teacherDashboard"
    assert "teacher/liveSessions" in nav.json()["screens"]

    assert dash.status_code == 303
    assert dash.headers["location"] == "/dashboards/teacherDashboard"
    assert access.json() == {"allowed": True}
    assert denied.json() == {"allowed": False}


@pytest.mark.anyio
async def test_login_requires_both_fields():
    async with _client(create_app(manager_factory=_factory())) as client:
        resp = await client.post("/auth/login", json={"email": "  ", "password": "x"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "missing_credentials"}


@pytest.mark.anyio
async def test_login_failure_returns_friendly_message():
    auth = FakeAuthGateway(sign_in_result=AuthRejectedError("Invalid login credentials"))
    app = create_app(manager_factory=_factory(auth=auth, config=IdentityConfig(fallback_policy="never")))
    async with _client(app) as client:
        resp = await client.post("/auth/login", json={"email": "x@example.org", "password": "bad"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "auth_failed"
    assert resp.json()["detail"].startswith("Invalid email or password")


@pytest.mark.anyio
async def test_register_and_logout():
    auth = FakeAuthGateway(sign_up_result=RemoteUser(id="n-1", email="n@example.org"))
    async with _client(create_app(manager_factory=_factory(auth=auth))) as client:
        missing = await client.post("/auth/register", json={"email": "n@example.org", "password": "pw"})
        reg = await client.post(
            "/auth/register", json={"email": "n@example.org", "password": "pw", "name": "Nia", "role": "teacher"}
        )
        out = await client.post("/auth/logout")
        me = await client.get("/api/me")

    assert missing.status_code == 400
    assert missing.json() == {"error": "missing_fields"}
    assert reg.status_code == 200
    assert reg.json()["user"]["name"] == "Nia"
    assert reg.json()["redirect"] == "/dashboards/teacherDashboard"
    assert out.json() == {"success": True}
    assert me.status_code == 401


@pytest.mark.anyio
async def test_role_selection():
    async with _client(create_app(manager_factory=_factory())) as client:
        bad = await client.post("/auth/role", json={"role": "principal"})
        before = await client.post("/auth/role", json={"role": "Admin"})
        await client.post("/auth/login", json={"email": "student@loopverse.com", "password": "password"})
        after = await client.post("/auth/role", json={"role": "teacher"})

    assert bad.status_code == 400
    assert bad.json() == {"error": "invalid_role"}
    assert before.json() == {"role": "admin", "next": "/authChoiceScreen"}
    assert after.json() == {"role": "teacher", "next": "/dashboards/teacherDashboard"}


@pytest.mark.anyio
async def test_theme_settings_and_stylesheet():
    async with _client(create_app(manager_factory=_factory())) as client:
        initial = await client.get("/api/settings/theme")
        updated = await client.put("/api/settings/theme", json={"dark_mode": True})
        css = await client.get("/theme.css")

    assert initial.json()["dark_mode"] is False
    assert updated.json()["dark_mode"] is True
    assert updated.json()["palette"]["--background-color"] == "#1a1a1a"
    assert css.headers["content-type"].startswith("text/css")
    assert "--background-color:#1a1a1a;" in css.text
    _assert_private(css)


@pytest.mark.anyio
async def test_remote_session_bootstrap_exposes_redirect():
    auth = FakeAuthGateway(session=RemoteUser(id="u-1", email="ada@example.org"))
    profiles = FakeProfiles({"u-1": {"name": "Ada", "role": "admin"}})
    app = create_app(manager_factory=_factory(auth=auth, profiles=profiles))
    async with _client(app) as client:
        me = await client.get("/api/me")

    assert me.status_code == 200
    assert me.json()["role"] == "admin"
    assert me.json()["redirect"] == "/dashboards/adminDashboard"

"""
SessionManager sign-in: demo identities, remote success, fallback and races.

Why:
    Sign-in must always terminate: demo accounts never touch the network, a
    failing or hanging provider yields a local fallback Session (subject to the
    fallback policy), and a late remote answer must not overwrite the Session
    the user already has.
"""
from __future__ import annotations

import asyncio
import json

import pytest

from session_fakes import FailingStore, FakeAuthGateway, FakePushService
from loopverse.identity_access.config import IdentityConfig
from loopverse.identity_access.domain import ROLE_KEY, SELECTED_ROLE_KEY, USER_KEY
from loopverse.identity_access.ports import (
    AuthRejectedError,
    AuthUnavailableError,
    NotificationError,
)
from loopverse.identity_access.session import RemoteUser
from loopverse.identity_access.stores import MemoryKeyValueStore


pytestmark = pytest.mark.anyio("asyncio")


@pytest.mark.anyio
@pytest.mark.parametrize(
    "email,role,name",
    [
        ("admin@loopverse.com", "admin", "Admin User"),
        ("teacher@loopverse.com", "teacher", "Teacher User"),
        ("student@loopverse.com", "student", "Student User"),
    ],
)
async def test_demo_accounts_sign_in_without_remote(make_manager, email, role, name):
    auth = FakeAuthGateway(sign_in_result=RuntimeError("remote must not be called"))
    manager, parts = make_manager(auth=auth)
    await manager.start()

    result = await manager.sign_in(email, "password")

    assert result.success is True
    assert result.user.role == role
    assert result.user.display_name == name
    assert result.user.source == "demo"
    assert auth.called("sign_in") == 0
    assert manager.loading is False
    snap = parts["storage"].snapshot()
    assert snap[ROLE_KEY] == role
    assert json.loads(snap[USER_KEY])["email"] == email


@pytest.mark.anyio
async def test_demo_email_with_wrong_password_goes_remote(make_manager):
    auth = FakeAuthGateway(sign_in_result=AuthRejectedError("Invalid login credentials"))
    manager, _ = make_manager(auth=auth)

    result = await manager.sign_in("admin@loopverse.com", "nope")

    assert auth.called("sign_in") == 1
    # default policy masks the failure with a local session
    assert result.success is True
    assert result.user.source == "local-fallback"
    assert result.user.role == "student"
    assert result.user.display_name == "User"


@pytest.mark.anyio
async def test_remote_success_uses_selected_role_and_metadata_name(make_manager):
    auth = FakeAuthGateway(sign_in_result=RemoteUser(id="r-1", email="ada@example.org", metadata={"name": "Ada"}))
    storage = MemoryKeyValueStore({SELECTED_ROLE_KEY: "teacher"})
    manager, parts = make_manager(auth=auth, storage=storage, notifications=FakePushService(token="tok"))

    result = await manager.sign_in("  ada@example.org ", "secret")

    assert result.success is True
    assert result.user.user_id == "r-1"
    assert result.user.display_name == "Ada"
    assert result.user.role == "teacher"
    assert result.user.source == "remote"
    assert auth.calls[-1] == ("sign_in", "ada@example.org")
    assert manager.push_token == "tok"


@pytest.mark.anyio
async def test_remote_success_without_selected_role_defaults_to_student(make_manager):
    auth = FakeAuthGateway(sign_in_result=RemoteUser(id="r-2", email="b@example.org"))
    manager, _ = make_manager(auth=auth)

    result = await manager.sign_in("b@example.org", "secret")

    assert result.user.role == "student"
    assert result.user.display_name == "User"


@pytest.mark.anyio
async def test_timeout_yields_fallback_with_cached_role_and_late_result_is_ignored(make_manager):
    late_user = RemoteUser(id="late", email="slow@example.org", metadata={"name": "Late"})
    auth = FakeAuthGateway(sign_in_result=late_user)
    auth.sign_in_gate = asyncio.Event()
    storage = MemoryKeyValueStore({SELECTED_ROLE_KEY: "admin"})
    cfg = IdentityConfig(sign_in_timeout_seconds=0.05)
    manager, _ = make_manager(auth=auth, storage=storage, config=cfg)
    await manager.start()

    result = await manager.sign_in("Slow@Example.org", "secret")

    assert result.success is True
    assert result.user.source == "local-fallback"
    assert result.user.role == "admin"
    assert result.user.user_id.isdigit()
    fallback = manager.session

    # the provider eventually answers, and emits its SIGNED_IN event
    auth.sign_in_gate.set()
    await manager.drain(timeout=1.0)
    await auth.emit("SIGNED_IN", late_user)

    assert manager.session == fallback
    assert manager.loading is False


@pytest.mark.anyio
async def test_abandoned_email_only_suppresses_one_sign_in_event(make_manager):
    auth = FakeAuthGateway(sign_in_result=RemoteUser(id="late", email="slow@example.org"))
    auth.sign_in_gate = asyncio.Event()
    manager, _ = make_manager(auth=auth, config=IdentityConfig(sign_in_timeout_seconds=0.05))
    await manager.start()
    await manager.sign_in("slow@example.org", "secret")
    auth.sign_in_gate.set()
    await manager.drain(timeout=1.0)

    await auth.emit("SIGNED_IN", RemoteUser(id="late", email="slow@example.org"))
    assert manager.session.source == "local-fallback"

    await auth.emit("SIGNED_IN", RemoteUser(id="fresh", email="slow@example.org"))
    assert manager.session.user_id == "fresh"
    assert manager.session.source == "remote"


@pytest.mark.anyio
async def test_late_failure_releases_abandoned_email(make_manager):
    auth = FakeAuthGateway(sign_in_result=AuthRejectedError("Invalid login credentials"))
    auth.sign_in_gate = asyncio.Event()
    manager, _ = make_manager(auth=auth, config=IdentityConfig(sign_in_timeout_seconds=0.05))
    await manager.start()
    result = await manager.sign_in("Slow@Example.org", "secret")
    assert result.user.source == "local-fallback"

    # the timed-out call fails later, so no SIGNED_IN event belongs to it
    auth.sign_in_gate.set()
    await manager.drain(timeout=1.0)

    await auth.emit("SIGNED_IN", RemoteUser(id="real", email="slow@example.org"))
    assert manager.session.user_id == "real"
    assert manager.session.source == "remote"


@pytest.mark.anyio
async def test_late_sign_up_without_user_releases_abandoned_email(make_manager):
    auth = FakeAuthGateway(sign_up_result=None)
    auth.sign_up_gate = asyncio.Event()
    manager, _ = make_manager(auth=auth, config=IdentityConfig(sign_up_timeout_seconds=0.05))
    await manager.start()
    await manager.sign_up("pending@example.org", "secret", "Pen")

    auth.sign_up_gate.set()
    await manager.drain(timeout=1.0)

    await auth.emit("SIGNED_IN", RemoteUser(id="confirmed", email="pending@example.org"))
    assert manager.session.user_id == "confirmed"


@pytest.mark.anyio
async def test_newer_sign_in_supersedes_slower_one(make_manager):
    auth = FakeAuthGateway(sign_in_result=RemoteUser(id="slow", email="slow@example.org"))
    auth.sign_in_gate = asyncio.Event()
    manager, _ = make_manager(auth=auth, config=IdentityConfig(sign_in_timeout_seconds=5.0))

    slow = asyncio.ensure_future(manager.sign_in("slow@example.org", "secret"))
    await asyncio.sleep(0.01)
    fast = await manager.sign_in("teacher@loopverse.com", "password")
    auth.sign_in_gate.set()
    slow_result = await slow

    assert fast.success is True
    assert slow_result.success is False
    assert manager.session.email == "teacher@loopverse.com"
    assert manager.role == "teacher"


@pytest.mark.anyio
async def test_policy_unreachable_reports_rejected_credentials(make_manager):
    auth = FakeAuthGateway(sign_in_result=AuthRejectedError("Invalid login credentials"))
    cfg = IdentityConfig(fallback_policy="unreachable")
    manager, _ = make_manager(auth=auth, config=cfg, identity_provider=None)

    result = await manager.sign_in("x@example.org", "bad")

    assert result.success is False
    assert "Invalid login credentials" in result.error
    assert manager.session is None
    assert manager.loading is False


@pytest.mark.anyio
async def test_policy_unreachable_still_falls_back_when_provider_is_down(make_manager):
    auth = FakeAuthGateway(sign_in_result=AuthUnavailableError("connection refused"))
    cfg = IdentityConfig(fallback_policy="unreachable")
    manager, _ = make_manager(auth=auth, config=cfg)

    result = await manager.sign_in("x@example.org", "pw")

    assert result.success is True
    assert result.user.source == "local-fallback"


@pytest.mark.anyio
async def test_policy_never_reports_timeout(make_manager):
    auth = FakeAuthGateway(sign_in_result=RemoteUser(id="r", email="x@example.org"))
    auth.sign_in_gate = asyncio.Event()
    cfg = IdentityConfig(sign_in_timeout_seconds=0.05, fallback_policy="never")
    manager, _ = make_manager(auth=auth, config=cfg)

    result = await manager.sign_in("x@example.org", "pw")

    assert result.success is False
    assert result.error == "sign-in timeout"
    assert manager.session is None
    auth.sign_in_gate.set()
    await manager.drain(timeout=1.0)
    assert manager.session is None


@pytest.mark.anyio
async def test_storage_failure_does_not_block_sign_in(make_manager):
    manager, _ = make_manager(storage=FailingStore())

    result = await manager.sign_in("student@loopverse.com", "password")

    assert result.success is True
    assert manager.role == "student"


@pytest.mark.anyio
async def test_notification_failure_does_not_block_sign_in(make_manager, caplog):
    manager, _ = make_manager(notifications=FakePushService(error=NotificationError("denied")))

    with caplog.at_level("ERROR", logger="loopverse.identity_access"):
        result = await manager.sign_in("admin@loopverse.com", "password")

    assert result.success is True
    assert manager.push_token is None
    assert any("notification setup failed" in r.getMessage() for r in caplog.records)


@pytest.mark.anyio
async def test_sign_in_logs_never_contain_credentials(make_manager, caplog):
    auth = FakeAuthGateway(sign_in_result=AuthUnavailableError("down"))
    manager, _ = make_manager(auth=auth)

    with caplog.at_level("DEBUG"):
        await manager.sign_in("private@example.org", "hunter2")

    text = "\n".join(r.getMessage() for r in caplog.records)
    assert "hunter2" not in text
    assert "private@example.org" not in text

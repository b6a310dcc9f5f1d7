"""
Pytest configuration for the session service tests.

Why: Force AnyIO to use the asyncio backend (the manager relies on asyncio
primitives) and provide a factory fixture that wires a SessionManager from the
in-repo fakes.
"""
import sys
from pathlib import Path

import pytest

# Ensure the repo root and the tests directory are importable across tests
REPO_ROOT = Path(__file__).resolve().parents[2]
TESTS_DIR = REPO_ROOT / "loopverse" / "tests"
for p in (str(REPO_ROOT), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)

from session_fakes import (  # noqa: E402
    FakeAuthGateway,
    FakeNavigator,
    FakeProfiles,
    FakePushService,
)
from loopverse.identity_access.config import IdentityConfig  # noqa: E402
from loopverse.identity_access.demo import DemoIdentityProvider  # noqa: E402
from loopverse.identity_access.manager import SessionManager  # noqa: E402
from loopverse.identity_access.stores import MemoryKeyValueStore  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_loopverse_env(monkeypatch: pytest.MonkeyPatch):
    """Keep developer shells from leaking config into tests."""
    for name in (
        "LOOPVERSE_ENV",
        "AUTH_SIGN_IN_TIMEOUT",
        "AUTH_SIGN_UP_TIMEOUT",
        "AUTH_LOCAL_FALLBACK",
        "AUTH_DEMO_ACCOUNTS",
        "SUPABASE_URL",
        "SUPABASE_ANON_KEY",
        "PROFILES_TABLE",
        "LOOPVERSE_STORAGE_PATH",
        "PUSH_REGISTRATION_URL",
        "PUSH_DEVICE_ID",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def make_manager():
    """Return a builder `(**overrides) -> (manager, parts)`.

    Overrides: auth, profiles, storage, notifications, navigator, config,
    identity_provider (pass None to disable demo accounts), theme_applier.
    """

    def _build(**overrides):
        parts = {
            "auth": overrides.pop("auth", None) or FakeAuthGateway(),
            "profiles": overrides.pop("profiles", None) or FakeProfiles(),
            "storage": overrides.pop("storage", None) or MemoryKeyValueStore(),
            "notifications": overrides.pop("notifications", None) or FakePushService(),
            "navigator": overrides.pop("navigator", None) or FakeNavigator(),
            "config": overrides.pop("config", None) or IdentityConfig(sign_in_timeout_seconds=0.2, sign_up_timeout_seconds=0.2),
            "identity_provider": overrides.pop("identity_provider", DemoIdentityProvider()),
            "theme_applier": overrides.pop("theme_applier", None),
        }
        if overrides:
            raise TypeError(f"unexpected overrides: {sorted(overrides)}")
        manager = SessionManager(**parts)
        return manager, parts

    return _build

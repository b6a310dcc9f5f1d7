"""
Session configuration parsing and validation.

Intent:
    Provide a single place to read environment variables that control the
    remote auth timeouts, the local fallback policy, demo accounts, the Supabase
    project and the local cache location.

Why:
    Centralising configuration keeps defaults explicit and lets tests exercise
    config behaviour without constructing a SessionManager.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import math
import os
import re


FALLBACK_ALWAYS = "always"
FALLBACK_UNREACHABLE = "unreachable"
FALLBACK_NEVER = "never"
FALLBACK_POLICIES = frozenset({FALLBACK_ALWAYS, FALLBACK_UNREACHABLE, FALLBACK_NEVER})

_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


@dataclass(frozen=True)
class IdentityConfig:
    environment: str = "dev"
    sign_in_timeout_seconds: float = 8.0
    sign_up_timeout_seconds: float = 10.0
    fallback_policy: str = FALLBACK_ALWAYS
    demo_accounts_enabled: bool = True
    supabase_url: str = ""
    supabase_anon_key: str = ""
    profiles_table: str = "profiles"
    storage_path: Optional[str] = None
    push_registration_url: Optional[str] = None
    push_device_id: str = "loopverse-web"

    def __post_init__(self) -> None:
        _check_timeout("sign_in_timeout_seconds", self.sign_in_timeout_seconds)
        _check_timeout("sign_up_timeout_seconds", self.sign_up_timeout_seconds)

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)


def _check_timeout(name: str, value: float) -> None:
    # nan and inf never fire as a wait_for timeout
    if not math.isfinite(value) or value <= 0 or value > 120:
        raise ValueError(f"{name} out of range (0..120], got: {value}")


def is_prod_like(env: str | None) -> bool:
    return (env or "").strip().lower() in {"prod", "production", "stage", "staging"}


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got: {raw!r}")
    _check_timeout(name, value)
    return value


def _bool_env(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    value = raw.strip().lower()
    if value in {"1", "true", "yes"}:
        return True
    if value in {"0", "false", "no"}:
        return False
    raise ValueError(f"{name} must be true or false, got: {raw!r}")


def load_identity_config() -> IdentityConfig:
    """
    Parse and validate session configuration from environment variables.

    Behavior:
        - `AUTH_SIGN_IN_TIMEOUT` / `AUTH_SIGN_UP_TIMEOUT` in seconds (0..120].
        - `AUTH_LOCAL_FALLBACK` selects the fallback policy (default: always).
        - `AUTH_DEMO_ACCOUNTS` defaults to enabled outside production-like
          environments; enabling it in production raises ValueError.
        - `PROFILES_TABLE` must be a plain SQL identifier.
    """
    environment = (os.getenv("LOOPVERSE_ENV") or "dev").strip().lower()

    policy = (os.getenv("AUTH_LOCAL_FALLBACK") or FALLBACK_ALWAYS).strip().lower()
    if policy not in FALLBACK_POLICIES:
        raise ValueError("AUTH_LOCAL_FALLBACK must be 'always', 'unreachable' or 'never'")

    demo = _bool_env("AUTH_DEMO_ACCOUNTS")
    if demo is None:
        demo = not is_prod_like(environment)
    if demo and is_prod_like(environment):
        raise ValueError("AUTH_DEMO_ACCOUNTS=true is not allowed in production/staging environments.")

    table = (os.getenv("PROFILES_TABLE") or "profiles").strip()
    if not _TABLE_RE.match(table):
        raise ValueError("PROFILES_TABLE must be a plain identifier")

    return IdentityConfig(
        environment=environment,
        sign_in_timeout_seconds=_float_env("AUTH_SIGN_IN_TIMEOUT", 8.0),
        sign_up_timeout_seconds=_float_env("AUTH_SIGN_UP_TIMEOUT", 10.0),
        fallback_policy=policy,
        demo_accounts_enabled=demo,
        supabase_url=(os.getenv("SUPABASE_URL") or "").strip(),
        supabase_anon_key=(os.getenv("SUPABASE_ANON_KEY") or "").strip(),
        profiles_table=table,
        storage_path=(os.getenv("LOOPVERSE_STORAGE_PATH") or "").strip() or None,
        push_registration_url=(os.getenv("PUSH_REGISTRATION_URL") or "").strip() or None,
        push_device_id=(os.getenv("PUSH_DEVICE_ID") or "loopverse-web").strip(),
    )


__all__ = [
    "IdentityConfig",
    "load_identity_config",
    "is_prod_like",
    "FALLBACK_ALWAYS",
    "FALLBACK_UNREACHABLE",
    "FALLBACK_NEVER",
    "FALLBACK_POLICIES",
]

"""
Configuration and startup security checks for LoopVerse.

Why: Demo identities and the offline fallback are convenient in development
but must never ship to users by accident. This module provides a single guard
that enforces minimal production safety constraints without burdening local
development.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os

from loopverse.identity_access.config import is_prod_like


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (production/staging only):
    - Demo accounts must not be enabled.
    - SUPABASE_URL and SUPABASE_ANON_KEY must be set (no offline mode).
    - SUPABASE_URL must use https.
    - The push registration endpoint, when set, must use https.
    """
    env = os.getenv("LOOPVERSE_ENV", "dev")
    if not is_prod_like(env):
        return  # dev/test remain permissive

    if (os.getenv("AUTH_DEMO_ACCOUNTS", "false") or "").strip().lower() in {"1", "true", "yes"}:
        raise SystemExit("Refusing to start: AUTH_DEMO_ACCOUNTS must be false in production/staging.")

    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_ANON_KEY") or "").strip()
    if not url or not key:
        raise SystemExit("Refusing to start: SUPABASE_URL and SUPABASE_ANON_KEY are required in production.")

    def _must_be_https(url_value: str, var_name: str) -> None:
        if url_value and not url_value.strip().lower().startswith("https://"):
            raise SystemExit(f"Refusing to start: {var_name} must use https in production.")

    _must_be_https(url, "SUPABASE_URL")
    _must_be_https(os.getenv("PUSH_REGISTRATION_URL", ""), "PUSH_REGISTRATION_URL")

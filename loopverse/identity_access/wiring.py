"""
Wiring helper that assembles a SessionManager from configuration.

Why:
    The web app and scripts need the same composition of collaborators
    (Supabase adapters or offline stand-ins, local cache, push service, demo
    identities). Keeping it in one place avoids drift between entry points.

Security:
    Uses the Supabase anon key only. The demo identity provider is injected
    only when configuration allows demo accounts (never in production-like
    environments, see `load_identity_config`).
"""
from __future__ import annotations

from typing import Any, Optional
import logging

from loopverse.identity_access import demo
from loopverse.identity_access.config import IdentityConfig, load_identity_config
from loopverse.identity_access.manager import SessionManager, ThemeApplier
from loopverse.identity_access.ports import NavigatorProtocol
from loopverse.identity_access.stores import JsonFileKeyValueStore, MemoryKeyValueStore
from loopverse.identity_access.supabase_auth import (
    OfflineAuthGateway,
    OfflineProfileRepository,
    SupabaseAuthGateway,
    SupabaseProfileRepository,
)
from loopverse.notifications.push import HttpPushService, NullPushService


_log = logging.getLogger("loopverse.identity_access")


async def create_supabase_client(config: IdentityConfig) -> Optional[Any]:
    """Return an async Supabase client, or None when not configured/unavailable."""
    if not config.supabase_configured:
        return None
    try:
        # Lazy import keeps the optional client out of offline and test paths.
        from supabase import acreate_client  # type: ignore

        return await acreate_client(config.supabase_url, config.supabase_anon_key)
    except Exception as exc:
        _log.warning("Supabase client unavailable: %s: %s", exc.__class__.__name__, str(exc))
        return None


async def build_session_manager(
    config: Optional[IdentityConfig] = None,
    *,
    navigator: Optional[NavigatorProtocol] = None,
    theme_applier: Optional[ThemeApplier] = None,
    client: Optional[Any] = None,
) -> SessionManager:
    """Compose a SessionManager; the caller still has to `await start()`.

    Behavior:
        - Supabase adapters when a client is given or can be created from
          config; otherwise offline adapters (sign-in always falls back).
        - JSON file cache when `storage_path` is set, else in-memory.
        - HTTP push registration when `push_registration_url` is set.
        - Demo identities only when `demo_accounts_enabled`.
    """
    cfg = config or load_identity_config()
    if client is None:
        client = await create_supabase_client(cfg)
    if client is not None:
        auth: Any = SupabaseAuthGateway(client)
        profiles: Any = SupabaseProfileRepository(client, table=cfg.profiles_table)
        _log.info("remote auth wired: Supabase")
    else:
        auth = OfflineAuthGateway()
        profiles = OfflineProfileRepository()
        _log.info("remote auth not configured: offline mode")

    storage: Any = JsonFileKeyValueStore(cfg.storage_path) if cfg.storage_path else MemoryKeyValueStore()
    if cfg.push_registration_url:
        notifications: Any = HttpPushService(cfg.push_registration_url, cfg.push_device_id)
    else:
        notifications = NullPushService()

    provider = demo.build() if cfg.demo_accounts_enabled else None
    if provider is not None:
        _log.warning("demo accounts enabled (dev/test convenience only)")

    return SessionManager(
        auth=auth,
        profiles=profiles,
        storage=storage,
        notifications=notifications,
        config=cfg,
        navigator=navigator,
        identity_provider=provider,
        theme_applier=theme_applier,
    )


__all__ = ["build_session_manager", "create_supabase_client"]

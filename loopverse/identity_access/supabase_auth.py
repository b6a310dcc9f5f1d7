"""
Supabase-backed adapters for remote auth and the profiles table.

These adapters implement `AuthGatewayProtocol` and `ProfileRepositoryProtocol`
using a provided async Supabase client. They are intentionally duck-typed to
avoid a hard dependency during testing. The client is expected to expose:

- `.auth.get_session()`, `.auth.sign_in_with_password({...})`,
  `.auth.sign_up({...})`, `.auth.sign_out()` (awaitables)
- `.auth.on_auth_state_change(callback)` -> subscription with `unsubscribe()`
- `.table(name)` returning the PostgREST query builder

Security:
- The client must be initialized with the anon (publishable) key; row-level
  security on the profiles table decides which rows the user may read/insert.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Set
import asyncio
import logging

from loopverse.identity_access.ports import (
    AuthRejectedError,
    AuthStateCallback,
    AuthUnavailableError,
)
from loopverse.identity_access.session import RemoteUser


_log = logging.getLogger("loopverse.identity_access.supabase")

# Error classes raised by the auth client for client-side validation failures.
_REJECTED_ERROR_NAMES = frozenset(
    {"AuthInvalidCredentialsError", "AuthWeakPasswordError", "AuthApiError"}
)


def _attr(obj: Any, name: str, default: Any = None) -> Any:
    """Read `name` from objects or dicts (client versions differ)."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def to_remote_user(user: Any) -> Optional[RemoteUser]:
    """Convert a supabase user object/dict into a RemoteUser (None when absent)."""
    if user is None:
        return None
    user_id = _attr(user, "id")
    if not user_id:
        return None
    metadata = _attr(user, "user_metadata") or {}
    return RemoteUser(
        id=str(user_id),
        email=str(_attr(user, "email") or ""),
        metadata=dict(metadata) if isinstance(metadata, dict) else {},
    )


def translate_auth_error(exc: BaseException) -> Exception:
    """Map a provider exception onto the auth error taxonomy.

    Behavior:
        - HTTP 4xx status (except 408/429) → AuthRejectedError
        - known validation error classes without status → AuthRejectedError
        - anything else (network, 5xx, retryable) → AuthUnavailableError
    """
    message = str(exc) or type(exc).__name__
    status = getattr(exc, "status", None)
    if isinstance(status, int) and status > 0:
        if 400 <= status < 500 and status not in (408, 429):
            return AuthRejectedError(message)
        return AuthUnavailableError(message)
    if type(exc).__name__ in _REJECTED_ERROR_NAMES:
        return AuthRejectedError(message)
    return AuthUnavailableError(message)


class _Subscription:
    def __init__(self, inner: Any):
        self._inner = inner

    def unsubscribe(self) -> None:
        # Some client versions wrap the subscription as {"subscription": ...}.
        target = _attr(self._inner, "subscription", None) or self._inner
        unsubscribe = getattr(target, "unsubscribe", None)
        if callable(unsubscribe):
            unsubscribe()


class SupabaseAuthGateway:
    """Auth gateway using a supabase client for password auth and sessions."""

    def __init__(self, client: Any):
        # Duck-typed supabase client, e.g., from `supabase import acreate_client`.
        self._client = client
        self._pending: Set[asyncio.Task] = set()

    @property
    def _auth(self) -> Any:
        auth = getattr(self._client, "auth", None)
        if auth is None:
            raise RuntimeError("invalid_supabase_client")
        return auth

    async def get_session(self) -> Optional[RemoteUser]:
        session = await self._auth.get_session()
        return to_remote_user(_attr(session, "user"))

    async def sign_in_with_password(self, *, email: str, password: str) -> RemoteUser:
        try:
            res = await self._auth.sign_in_with_password({"email": email, "password": password})
        except Exception as exc:
            raise translate_auth_error(exc) from exc
        user = to_remote_user(_attr(res, "user"))
        if user is None:
            raise AuthUnavailableError("no user data returned from provider")
        return user

    async def sign_up(self, *, email: str, password: str, metadata: Dict[str, Any]) -> Optional[RemoteUser]:
        try:
            res = await self._auth.sign_up(
                {"email": email, "password": password, "options": {"data": dict(metadata)}}
            )
        except Exception as exc:
            raise translate_auth_error(exc) from exc
        return to_remote_user(_attr(res, "user"))

    async def sign_out(self) -> None:
        await self._auth.sign_out()

    def on_auth_state_change(self, callback: AuthStateCallback) -> _Subscription:
        def _listener(event: Any, session: Any) -> None:
            name = str(getattr(event, "value", event))
            user = to_remote_user(_attr(session, "user"))
            try:
                task = asyncio.get_running_loop().create_task(callback(name, user))
            except RuntimeError:
                _log.warning("auth state change %s dropped: no running event loop", name)
                return
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        return _Subscription(self._auth.on_auth_state_change(_listener))


class SupabaseProfileRepository:
    """Profile rows in a PostgREST table keyed by user id."""

    def __init__(self, client: Any, table: str = "profiles"):
        self._client = client
        self._table = table

    async def fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        res = await self._client.table(self._table).select("*").eq("id", user_id).maybe_single().execute()
        data = _attr(res, "data")
        return data if isinstance(data, dict) else None

    async def insert_profile(self, profile: Dict[str, Any]) -> None:
        await self._client.table(self._table).insert([dict(profile)]).execute()


class OfflineAuthGateway:
    """Gateway used when no Supabase project is configured.

    Reports no remote session and fails every auth call as unavailable, which
    routes sign-in/sign-up through the local fallback policy.
    """

    async def get_session(self) -> Optional[RemoteUser]:
        return None

    async def sign_in_with_password(self, *, email: str, password: str) -> RemoteUser:
        raise AuthUnavailableError("remote auth not configured")

    async def sign_up(self, *, email: str, password: str, metadata: Dict[str, Any]) -> Optional[RemoteUser]:
        raise AuthUnavailableError("remote auth not configured")

    async def sign_out(self) -> None:
        return None

    def on_auth_state_change(self, callback: AuthStateCallback) -> _Subscription:
        return _Subscription(None)


class OfflineProfileRepository:
    async def fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return None

    async def insert_profile(self, profile: Dict[str, Any]) -> None:
        raise AuthUnavailableError("remote profiles not configured")


__all__ = [
    "SupabaseAuthGateway",
    "SupabaseProfileRepository",
    "OfflineAuthGateway",
    "OfflineProfileRepository",
    "to_remote_user",
    "translate_auth_error",
]

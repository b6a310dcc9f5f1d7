"""
Ports for the session manager: protocols of external collaborators and errors.

Intent:
    Provide framework-agnostic contracts between the SessionManager and the
    black boxes it orchestrates (remote auth, profile table, local key-value
    storage, push notifications, navigation). Keeping these definitions in a
    dedicated module avoids circular imports and lets tests inject fakes.

Design:
    - Protocols: one per collaborator, all async where the collaborator does IO
    - Error taxonomy: rejected vs. unavailable (timeout is a kind of
      unavailable), plus storage and notification failures
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from loopverse.identity_access.session import RemoteUser, Session


AuthStateCallback = Callable[[str, Optional[RemoteUser]], Awaitable[None]]
NotificationListener = Callable[[Dict[str, Any]], None]

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"


# ----------------------------- Protocols ------------------------------------


class SubscriptionProtocol(Protocol):
    def unsubscribe(self) -> None:
        ...


class AuthGatewayProtocol(Protocol):
    """Remote auth provider (session lookup, password auth, state stream)."""

    async def get_session(self) -> Optional[RemoteUser]:
        ...

    async def sign_in_with_password(self, *, email: str, password: str) -> RemoteUser:
        ...

    async def sign_up(self, *, email: str, password: str, metadata: Dict[str, Any]) -> Optional[RemoteUser]:
        ...

    async def sign_out(self) -> None:
        ...

    def on_auth_state_change(self, callback: AuthStateCallback) -> SubscriptionProtocol:
        ...


class ProfileRepositoryProtocol(Protocol):
    """User-profile rows keyed by user id."""

    async def fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def insert_profile(self, profile: Dict[str, Any]) -> None:
        ...


class KeyValueStoreProtocol(Protocol):
    async def get_item(self, key: str) -> Optional[str]:
        ...

    async def set_item(self, key: str, value: str) -> None:
        ...

    async def remove_item(self, key: str) -> None:
        ...


class NotificationServiceProtocol(Protocol):
    async def register_for_push_notifications(self) -> Optional[str]:
        ...

    def add_notification_received_listener(self, listener: NotificationListener) -> SubscriptionProtocol:
        ...

    def add_notification_response_received_listener(self, listener: NotificationListener) -> SubscriptionProtocol:
        ...


class NavigatorProtocol(Protocol):
    def navigate(self, route: str) -> None:
        ...


class IdentityProviderProtocol(Protocol):
    """Local identity strategy consulted before the remote provider."""

    def authenticate(self, email: str, password: str) -> Optional[Session]:
        ...


# ------------------------------ Errors --------------------------------------


class AuthError(Exception):
    """Base class for remote auth failures."""


class AuthRejectedError(AuthError):
    """The provider refused the request (wrong credentials, validation)."""


class AuthUnavailableError(AuthError):
    """The provider could not be reached or answered unusably."""


class AuthTimeoutError(AuthUnavailableError):
    """The timer won the race against the remote call."""


class StorageError(Exception):
    """Local key-value storage failed to read or write."""


class NotificationError(Exception):
    """Push registration failed."""


__all__ = [
    # Protocols
    "SubscriptionProtocol",
    "AuthGatewayProtocol",
    "ProfileRepositoryProtocol",
    "KeyValueStoreProtocol",
    "NotificationServiceProtocol",
    "NavigatorProtocol",
    "IdentityProviderProtocol",
    "AuthStateCallback",
    "NotificationListener",
    "SIGNED_IN",
    "SIGNED_OUT",
    # Errors
    "AuthError",
    "AuthRejectedError",
    "AuthUnavailableError",
    "AuthTimeoutError",
    "StorageError",
    "NotificationError",
]

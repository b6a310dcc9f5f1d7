"""
Session manager: current identity, role, theme and push token for one process.

Why:
    The app needs a single owner for "who is signed in, with which role" that
    bootstraps from the remote provider or the local cache, follows the remote
    auth-state stream, and keeps the local cache in step. Collaborators are
    injected so the manager stays framework independent and testable.

Lifecycle:
    Construct at process start, `await start()` (or `async with`), inject the
    instance where the UI/web layer needs it, `await close()` at shutdown.

Concurrency:
    Single event loop. Remote auth calls race a timer; the losing remote call is
    not cancelled but its result is ignored. Every state-changing operation
    takes a generation number and commits only while it is still the latest,
    so a slow result can never overwrite a newer Session.

Errors:
    Remote failures and timeouts lead to a local fallback Session (subject to
    the configured fallback policy). Storage and notification failures are
    logged and never surface to the caller.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set
import asyncio
import json
import logging
import time

from loopverse.identity_access.config import (
    FALLBACK_ALWAYS,
    FALLBACK_UNREACHABLE,
    IdentityConfig,
)
from loopverse.identity_access.domain import (
    AUTH_CHOICE_ROUTE,
    DEFAULT_ROLE,
    ROLE_KEY,
    SELECTED_ROLE_KEY,
    SETTINGS_KEY,
    SIGN_OUT_KEYS,
    SOURCE_LOCAL_FALLBACK,
    SOURCE_REMOTE,
    USER_KEY,
    dashboard_route,
    normalize_role,
)
from loopverse.identity_access.ports import (
    SIGNED_IN,
    SIGNED_OUT,
    AuthGatewayProtocol,
    AuthRejectedError,
    AuthTimeoutError,
    AuthUnavailableError,
    IdentityProviderProtocol,
    KeyValueStoreProtocol,
    NavigatorProtocol,
    NotificationServiceProtocol,
    ProfileRepositoryProtocol,
    SubscriptionProtocol,
)
from loopverse.identity_access.session import AuthResult, RemoteUser, Session


_log = logging.getLogger("loopverse.identity_access")

ThemeApplier = Callable[[bool], None]


class SessionManager:
    def __init__(
        self,
        *,
        auth: AuthGatewayProtocol,
        profiles: ProfileRepositoryProtocol,
        storage: KeyValueStoreProtocol,
        notifications: NotificationServiceProtocol,
        config: Optional[IdentityConfig] = None,
        navigator: Optional[NavigatorProtocol] = None,
        identity_provider: Optional[IdentityProviderProtocol] = None,
        theme_applier: Optional[ThemeApplier] = None,
    ) -> None:
        self._auth = auth
        self._profiles = profiles
        self._storage = storage
        self._notifications = notifications
        self._config = config or IdentityConfig()
        self._navigator = navigator
        self._identity_provider = identity_provider
        self._theme_applier = theme_applier

        self._session: Optional[Session] = None
        self._loading = True
        self._dark_mode = False
        self._push_token: Optional[str] = None
        self._last_tapped: Optional[Dict[str, Any]] = None

        self._generation = 0
        self._subscription: Optional[SubscriptionProtocol] = None
        self._listener_subscriptions: List[SubscriptionProtocol] = []
        self._background: Set[asyncio.Future] = set()
        # Emails whose remote sign-in/sign-up lost the race against the timer.
        self._abandoned: Set[str] = set()

    # --- Read access -------------------------------------------------------------

    @property
    def session(self) -> Optional[Session]:
        return self._session

    user = session

    @property
    def role(self) -> Optional[str]:
        return self._session.role if self._session else None

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def dark_mode(self) -> bool:
        return self._dark_mode

    @property
    def push_token(self) -> Optional[str]:
        return self._push_token

    @property
    def last_tapped_notification(self) -> Optional[Dict[str, Any]]:
        return self._last_tapped

    @property
    def config(self) -> IdentityConfig:
        return self._config

    # --- Lifecycle -----------------------------------------------------------------

    async def start(self) -> "SessionManager":
        """Subscribe to auth-state changes, restore the session, load the theme."""
        if self._subscription is None:
            try:
                self._subscription = self._auth.on_auth_state_change(self._handle_auth_state)
            except Exception as exc:
                _log.error("auth state subscription failed: %s: %s", type(exc).__name__, exc)
        await self.bootstrap()
        await self.load_theme_preference()
        return self

    async def close(self) -> None:
        """Release the auth-state subscription and notification listeners."""
        if self._subscription is not None:
            try:
                self._subscription.unsubscribe()
            except Exception as exc:
                _log.warning("unsubscribe failed: %s", type(exc).__name__)
            self._subscription = None
        self._release_listeners()

    async def __aenter__(self) -> "SessionManager":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for background work (profile inserts, abandoned remote calls)."""
        pending = [task for task in self._background if not task.done()]
        if pending:
            await asyncio.wait(pending, timeout=timeout)

    # --- Bootstrap & auth-state stream -------------------------------------------

    async def bootstrap(self) -> None:
        """Restore the session from the remote provider or the local cache.

        Behavior:
            - Remote session found: build Session from the profile row, persist,
              register notifications and redirect to the role dashboard.
            - No remote session: restore the cached user blob and role (no
              redirect; the caller decides).
            - Any error: logged and treated as "no session".
        """
        generation = self._generation
        self._loading = True
        try:
            remote = await self._auth.get_session()
            if remote is not None:
                _log.info("found active remote session")
                session = await self._session_from_remote(remote)
                if await self._commit(session, generation):
                    await self.initialize_notifications()
                    self._redirect(session.role)
                return
            saved = await self._get_item(USER_KEY)
            if not saved:
                return
            saved_role = await self._get_item(ROLE_KEY)
            session = Session.from_blob(saved, role=saved_role)
            if generation != self._generation:
                return
            self._session = session
            _log.info("restored session from local cache (role=%s)", session.role)
            await self.initialize_notifications()
        except Exception as exc:
            _log.error("session bootstrap failed: %s: %s", type(exc).__name__, exc)
        finally:
            if generation == self._generation:
                self._loading = False

    async def _handle_auth_state(self, event: str, remote: Optional[RemoteUser]) -> None:
        _log.info("auth state changed: %s", event)
        try:
            if event == SIGNED_IN and remote is not None:
                key = (remote.email or "").strip().lower()
                if key in self._abandoned:
                    self._abandoned.discard(key)
                    _log.info("ignoring late sign-in event of an abandoned attempt")
                    return
                generation = self._generation
                session = await self._session_from_remote(remote)
                await self._commit(session, generation)
            elif event == SIGNED_OUT:
                self._session = None
                await self._remove_item(USER_KEY)
                await self._remove_item(ROLE_KEY)
        except Exception as exc:
            _log.error("auth state handling failed: %s: %s", type(exc).__name__, exc)

    async def _session_from_remote(self, remote: RemoteUser) -> Session:
        profile = await self._fetch_profile(remote.id) or {}
        name = profile.get("name") or remote.metadata.get("name") or "User"
        role = normalize_role(profile.get("role")) or DEFAULT_ROLE
        return Session(
            user_id=remote.id,
            email=remote.email,
            display_name=str(name),
            role=role,
            source=SOURCE_REMOTE,
        )

    async def _fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._profiles.fetch_profile(user_id)
        except Exception as exc:
            _log.warning("profile lookup failed: %s", type(exc).__name__)
            return None

    # --- Sign-in / sign-up / sign-out ---------------------------------------------

    async def sign_in(self, email: str, password: str) -> AuthResult:
        """Sign in via demo identity, remote provider, or local fallback.

        Both fields must be non-empty; callers validate input.
        """
        generation = self._next_generation()
        self._loading = True
        try:
            if self._identity_provider is not None:
                demo = self._identity_provider.authenticate(email, password)
                if demo is not None:
                    _log.info("demo account signed in locally (role=%s)", demo.role)
                    return await self._finish(demo, generation)

            normalized = email.strip()
            self._abandoned.discard(normalized.lower())
            try:
                remote = await self._race(
                    self._auth.sign_in_with_password(email=normalized, password=password),
                    self._config.sign_in_timeout_seconds,
                    label="sign-in",
                    email=normalized,
                )
                selected = normalize_role(await self._get_item(SELECTED_ROLE_KEY))
                session = Session(
                    user_id=remote.id,
                    email=remote.email or normalized,
                    display_name=str(remote.metadata.get("name") or "User"),
                    role=selected or DEFAULT_ROLE,
                    source=SOURCE_REMOTE,
                )
            except Exception as exc:
                _log.warning("remote sign-in failed: %s: %s", type(exc).__name__, exc)
                if not self._fallback_allowed(exc):
                    return AuthResult.failed(_message(exc))
                session = await self._fallback_session(normalized, "User")
                _log.info("local fallback session created (role=%s)", session.role)
            return await self._finish(session, generation)
        except Exception as exc:
            _log.error("sign-in failed: %s: %s", type(exc).__name__, exc)
            return AuthResult.failed(_message(exc))
        finally:
            if generation == self._generation:
                self._loading = False

    async def sign_up(self, email: str, password: str, name: str, role: Optional[str] = None) -> AuthResult:
        """Create an account remotely, falling back to a local-only account.

        Role precedence: cached selected role, then `role`, then "student".
        A profile row is inserted in the background after a remote success.
        """
        generation = self._next_generation()
        self._loading = True
        try:
            selected = (
                normalize_role(await self._get_item(SELECTED_ROLE_KEY))
                or normalize_role(role)
                or DEFAULT_ROLE
            )
            normalized = email.strip()
            display = name.strip()
            self._abandoned.discard(normalized.lower())

            remote: Optional[RemoteUser] = None
            failure: Optional[BaseException] = None
            try:
                remote = await self._race(
                    self._auth.sign_up(
                        email=normalized, password=password, metadata={"name": display, "role": selected}
                    ),
                    self._config.sign_up_timeout_seconds,
                    label="sign-up",
                    email=normalized,
                )
                if remote is None:
                    failure = AuthUnavailableError("no user data returned from provider")
            except Exception as exc:
                failure = exc

            if failure is not None or remote is None:
                _log.warning("remote sign-up failed: %s: %s", type(failure).__name__, failure)
                if not self._fallback_allowed(failure):
                    return AuthResult.failed(_message(failure))
                session = Session(
                    user_id=_timestamp_id(),
                    email=normalized,
                    display_name=display,
                    role=selected,
                    source=SOURCE_LOCAL_FALLBACK,
                )
                return await self._finish(session, generation)

            session = Session(
                user_id=remote.id,
                email=remote.email or normalized,
                display_name=display,
                role=selected,
                source=SOURCE_REMOTE,
            )
            return await self._finish(session, generation, before_notifications=self._create_profile_later)
        except Exception as exc:
            _log.error("sign-up failed: %s: %s", type(exc).__name__, exc)
            return AuthResult.failed(_message(exc))
        finally:
            if generation == self._generation:
                self._loading = False

    async def sign_out(self) -> None:
        """Sign out remotely (best effort) and clear the session unconditionally."""
        self._next_generation()
        try:
            await self._auth.sign_out()
        except Exception as exc:
            _log.warning("remote sign-out failed: %s: %s", type(exc).__name__, exc)
        self._session = None
        # superseded bootstrap/sign-in calls no longer reset the flag
        self._loading = False
        for key in SIGN_OUT_KEYS:
            await self._remove_item(key)
        _log.info("signed out")

    # --- Role handling -------------------------------------------------------------

    async def select_role(self, role: str) -> str:
        """Persist the selected role; a signed-in Session adopts it.

        Returns the next route: the role dashboard when signed in, otherwise
        the auth choice screen.

        Raises:
            ValueError: when `role` is not one of the allowed roles.
        """
        canonical = normalize_role(role)
        if canonical is None:
            raise ValueError(f"unknown role: {role!r}")
        await self._set_item(SELECTED_ROLE_KEY, canonical)
        if self._session is None:
            return AUTH_CHOICE_ROUTE
        self._session = self._session.with_role(canonical)
        await self._persist(self._session)
        return dashboard_route(canonical)

    def has_role_access(self, required_roles: Optional[Iterable[str] | str] = None) -> bool:
        """True when signed in with a role that is in `required_roles`.

        An empty or missing `required_roles` only requires some role; a single
        role may be passed as a plain string.
        """
        if self._session is None or not self._session.role:
            return False
        if isinstance(required_roles, str):
            required_roles = [required_roles]
        required = [normalize_role(r) for r in (required_roles or [])]
        if not required:
            return True
        return self._session.role in required

    def dashboard_route(self, role: Optional[str] = None) -> str:
        return dashboard_route(role if role is not None else self.role)

    # --- Theme ---------------------------------------------------------------------

    async def toggle_dark_mode(self, is_dark: bool) -> None:
        self._dark_mode = bool(is_dark)
        self._apply_theme(self._dark_mode)
        try:
            raw = await self._storage.get_item(SETTINGS_KEY)
            settings = json.loads(raw) if raw else {}
            if not isinstance(settings, dict):
                settings = {}
            settings["darkMode"] = self._dark_mode
            await self._storage.set_item(SETTINGS_KEY, json.dumps(settings))
        except Exception as exc:
            _log.error("saving theme preference failed: %s: %s", type(exc).__name__, exc)

    async def load_theme_preference(self) -> None:
        try:
            raw = await self._storage.get_item(SETTINGS_KEY)
            if not raw:
                return
            settings = json.loads(raw)
            dark = bool(settings.get("darkMode") or False) if isinstance(settings, dict) else False
            self._dark_mode = dark
            self._apply_theme(dark)
        except Exception as exc:
            _log.error("loading theme preference failed: %s: %s", type(exc).__name__, exc)

    def _apply_theme(self, is_dark: bool) -> None:
        if self._theme_applier is None:
            return
        try:
            self._theme_applier(is_dark)
        except Exception as exc:
            _log.warning("applying theme failed: %s", type(exc).__name__)

    # --- Notifications -----------------------------------------------------------

    async def initialize_notifications(self) -> None:
        """Register for a push token and (re)attach notification listeners."""
        try:
            _log.info("initializing notifications")
            token = await self._notifications.register_for_push_notifications()
            if token:
                self._push_token = token
                _log.info("notification token obtained")
            else:
                _log.info("no notification token obtained")
            self._release_listeners()
            self._listener_subscriptions = [
                self._notifications.add_notification_received_listener(self._on_notification_received),
                self._notifications.add_notification_response_received_listener(self._on_notification_response),
            ]
        except Exception as exc:
            _log.error("notification setup failed: %s: %s", type(exc).__name__, exc)

    def _release_listeners(self) -> None:
        for sub in self._listener_subscriptions:
            try:
                sub.unsubscribe()
            except Exception as exc:
                _log.warning("listener unsubscribe failed: %s", type(exc).__name__)
        self._listener_subscriptions = []

    def _on_notification_received(self, notification: Dict[str, Any]) -> None:
        _log.info("notification received while open: title=%s", notification.get("title"))

    def _on_notification_response(self, response: Dict[str, Any]) -> None:
        data = response.get("data") or {}
        kind = data.get("type")
        post_id = data.get("postId")
        _log.info("notification tapped: title=%s", response.get("title"))
        if kind and post_id:
            self._last_tapped = {"type": kind, "postId": post_id}
            _log.info("tapped %s notification for post %s", kind, post_id)

    # --- Internals -----------------------------------------------------------------

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _fallback_allowed(self, exc: BaseException) -> bool:
        policy = self._config.fallback_policy
        if policy == FALLBACK_ALWAYS:
            return True
        if policy == FALLBACK_UNREACHABLE:
            return not isinstance(exc, AuthRejectedError)
        return False

    async def _fallback_session(self, email: str, name: str) -> Session:
        role = normalize_role(await self._get_item(SELECTED_ROLE_KEY)) or DEFAULT_ROLE
        return Session(
            user_id=_timestamp_id(),
            email=email,
            display_name=name,
            role=role,
            source=SOURCE_LOCAL_FALLBACK,
        )

    async def _finish(
        self,
        session: Session,
        generation: int,
        before_notifications: Optional[Callable[[Session], None]] = None,
    ) -> AuthResult:
        if not await self._commit(session, generation):
            return AuthResult.failed("superseded by a newer request")
        if before_notifications is not None:
            before_notifications(session)
        await self.initialize_notifications()
        return AuthResult.ok(session)

    async def _commit(self, session: Session, generation: int) -> bool:
        if generation != self._generation:
            _log.info("discarding stale session result (generation %s, latest %s)", generation, self._generation)
            return False
        self._session = session
        await self._persist(session)
        return True

    async def _persist(self, session: Session) -> None:
        await self._set_item(USER_KEY, session.to_blob())
        if session.role:
            await self._set_item(ROLE_KEY, session.role)
        else:
            await self._remove_item(ROLE_KEY)

    async def _race(self, awaitable: Awaitable[Any], timeout: float, *, label: str, email: str) -> Any:
        """Await `awaitable` for at most `timeout` seconds without cancelling it."""
        task = asyncio.ensure_future(awaitable)
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            key = email.lower()
            self._abandoned.add(key)
            self._retain(task, label, key)
            raise AuthTimeoutError(f"{label} timeout") from None

    def _retain(self, task: asyncio.Future, label: str, key: str) -> None:
        """Keep the losing remote call alive; forget `key` if it never signs in."""
        self._background.add(task)

        def _done(t: asyncio.Future) -> None:
            self._background.discard(t)
            if t.cancelled():
                self._abandoned.discard(key)
                return
            exc = t.exception()
            if exc is not None:
                # no SIGNED_IN event will follow a failed call
                self._abandoned.discard(key)
                _log.info("late %s failed after timeout: %s", label, type(exc).__name__)
                return
            if t.result() is None:
                self._abandoned.discard(key)
            _log.info("late %s result discarded after timeout", label)

        task.add_done_callback(_done)

    def _create_profile_later(self, session: Session) -> None:
        task = asyncio.ensure_future(self._create_profile(session))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _create_profile(self, session: Session) -> None:
        now = datetime.now(timezone.utc).isoformat()
        profile = {
            "id": session.user_id,
            "email": session.email,
            "name": session.display_name,
            "role": session.role,
            "created_at": now,
            "updated_at": now,
        }
        try:
            await self._profiles.insert_profile(profile)
            _log.info("profile saved in background")
        except Exception as exc:
            _log.error("background profile creation failed: %s: %s", type(exc).__name__, exc)

    def _redirect(self, role: Optional[str]) -> None:
        if self._navigator is None:
            return
        try:
            self._navigator.navigate(dashboard_route(role))
        except Exception as exc:
            _log.warning("redirect failed: %s", type(exc).__name__)

    async def _get_item(self, key: str) -> Optional[str]:
        try:
            return await self._storage.get_item(key)
        except Exception as exc:
            _log.warning("storage read failed for %s: %s", key, type(exc).__name__)
            return None

    async def _set_item(self, key: str, value: str) -> None:
        try:
            await self._storage.set_item(key, value)
        except Exception as exc:
            _log.warning("storage write failed for %s: %s", key, type(exc).__name__)

    async def _remove_item(self, key: str) -> None:
        try:
            await self._storage.remove_item(key)
        except Exception as exc:
            _log.warning("storage remove failed for %s: %s", key, type(exc).__name__)


def _timestamp_id() -> str:
    return str(int(time.time() * 1000))


def _message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


__all__ = ["SessionManager", "ThemeApplier"]

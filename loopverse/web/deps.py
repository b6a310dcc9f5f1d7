"""
Request-scoped access to the process-wide SessionManager.

Why:
    Routers must not import `main` (circular) and must not create their own
    manager. The app stores one manager on `app.state`; this dependency builds
    and starts it lazily on first use so tests can inject a prepared manager.
"""
from __future__ import annotations

from fastapi import Request

from loopverse.identity_access.manager import SessionManager


class RecordingNavigator:
    """Navigator that remembers the last redirect target for the web client."""

    def __init__(self) -> None:
        self.route: str | None = None

    def navigate(self, route: str) -> None:
        self.route = route


async def get_session_manager(request: Request) -> SessionManager:
    state = request.app.state
    if state.session_manager is None:
        async with state.manager_lock:
            if state.session_manager is None:
                manager = await state.manager_factory(state.navigator, state.theme)
                await manager.start()
                state.session_manager = manager
    return state.session_manager


def private_no_store() -> dict:
    return {"Cache-Control": "private, no-store"}

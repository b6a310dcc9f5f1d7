"""
LoopVerse session service (FastAPI app).

Scope:
    A local bridge between one client (the device UI) and its SessionManager.
    The process holds exactly one Session; every caller of these routes reads
    and changes that same Session. There is no per-request authentication, so
    bind the app to localhost and do not expose it as a multi-user server.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv
from fastapi import FastAPI

from loopverse.identity_access.manager import SessionManager
from loopverse.identity_access.wiring import build_session_manager
from loopverse.web import config as _cfg
from loopverse.web.deps import RecordingNavigator
from loopverse.web.routes.auth import auth_router
from loopverse.web.routes.session import session_router
from loopverse.web.routes.settings import settings_router
from loopverse.web.theme import ThemeState


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out/opt-in via LOOPVERSE_ENABLE_DOTENV (default true
      outside pytest).
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("LOOPVERSE_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    load_dotenv()

logger = logging.getLogger("loopverse.web")

ManagerFactory = Callable[[RecordingNavigator, ThemeState], Awaitable[SessionManager]]


async def _default_manager_factory(navigator: RecordingNavigator, theme: ThemeState) -> SessionManager:
    return await build_session_manager(navigator=navigator, theme_applier=theme)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    yield
    manager: Optional[SessionManager] = app.state.session_manager
    if manager is not None:
        await manager.close()
        await manager.drain(timeout=1.0)
        logger.info("session manager closed")


def create_app(*, manager_factory: Optional[ManagerFactory] = None) -> FastAPI:
    """Build the app; the SessionManager is created lazily on first request.

    Parameters:
        manager_factory: Coroutine function `(navigator, theme) -> SessionManager`.
            Defaults to `build_session_manager` driven by environment config.
    """
    # Minimal production safety checks (fail-fast on insecure config)
    _cfg.ensure_secure_config_on_startup()

    app = FastAPI(title="LoopVerse", description="Session service for the LoopVerse learning app", version="0.1.0", lifespan=_lifespan)
    app.state.session_manager = None
    app.state.manager_factory = manager_factory or _default_manager_factory
    app.state.navigator = RecordingNavigator()
    app.state.theme = ThemeState()
    app.state.manager_lock = asyncio.Lock()

    app.include_router(auth_router)
    app.include_router(session_router)
    app.include_router(settings_router)
    return app


app = create_app()

"""
Session state routes: current user, role access, navigation and dashboard.

Why:
    The client renders role-gated screens. These endpoints expose the
    SessionManager's read-only state and its routing helpers so the client does
    not duplicate the role tables.
"""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from loopverse.identity_access.domain import screens_for
from loopverse.identity_access.manager import SessionManager
from loopverse.web.deps import get_session_manager, private_no_store


session_router = APIRouter(tags=["Session"])


@session_router.get("/api/me")
async def get_me(request: Request, manager: SessionManager = Depends(get_session_manager)):
    if manager.session is None:
        return JSONResponse({"error": "unauthenticated"}, status_code=401, headers=private_no_store())
    return JSONResponse(
        {
            "user": manager.session.to_dict(),
            "role": manager.role,
            "loading": manager.loading,
            "dark_mode": manager.dark_mode,
            "push_token": manager.push_token,
            "redirect": request.app.state.navigator.route,
        },
        headers=private_no_store(),
    )


@session_router.get("/api/access")
async def check_access(
    roles: List[str] = Query(default=[]),
    manager: SessionManager = Depends(get_session_manager),
):
    return JSONResponse({"allowed": manager.has_role_access(roles)}, headers=private_no_store())


@session_router.get("/api/navigation")
async def navigation(manager: SessionManager = Depends(get_session_manager)):
    signed_in = manager.session is not None
    home = manager.dashboard_route() if signed_in else "/"
    return JSONResponse(
        {"screens": screens_for(signed_in, manager.role), "home": home},
        headers=private_no_store(),
    )


@session_router.get("/dashboard")
async def dashboard(manager: SessionManager = Depends(get_session_manager)):
    """Redirect to the dashboard of the current role (role selection without one)."""
    return RedirectResponse(url=manager.dashboard_route(), status_code=303, headers=private_no_store())

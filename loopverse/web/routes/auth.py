"""
Authentication-related FastAPI routes (router-only module).

Why:
    Keep sign-in, sign-up, sign-out and role selection in a dedicated router.
    The routes validate input (non-empty fields) and translate the
    SessionManager's AuthResult into JSON; all session logic lives in the
    manager.
"""

from __future__ import annotations

from typing import Optional
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from loopverse.identity_access.domain import dashboard_route
from loopverse.identity_access.manager import SessionManager
from loopverse.identity_access.session import AuthResult
from loopverse.web.deps import get_session_manager, private_no_store


auth_router = APIRouter(tags=["Auth"])  # explicit paths, no prefix
logger = logging.getLogger("loopverse.web.auth")


class LoginPayload(BaseModel):
    email: str = ""
    password: str = ""


class RegisterPayload(BaseModel):
    email: str = ""
    password: str = ""
    name: str = ""
    role: Optional[str] = None


class RolePayload(BaseModel):
    role: str = ""


def friendly_auth_error(error: str | None) -> str:
    """Translate provider messages into user-facing text."""
    message = error or "Invalid credentials"
    if "Invalid login credentials" in message:
        return "Invalid email or password. Please check your credentials and try again."
    if "Email not confirmed" in message:
        return "Please check your email and confirm your account before logging in."
    if "timeout" in message.lower():
        return "Connection timeout. Please check your internet connection and try again."
    return message


def _auth_response(result: AuthResult) -> JSONResponse:
    if not result.success or result.user is None:
        return JSONResponse(
            {"error": "auth_failed", "detail": friendly_auth_error(result.error)},
            status_code=401,
            headers=private_no_store(),
        )
    user = result.user
    return JSONResponse(
        {"success": True, "user": user.to_dict(), "redirect": dashboard_route(user.role)},
        headers=private_no_store(),
    )


@auth_router.post("/auth/login")
async def login(payload: LoginPayload, manager: SessionManager = Depends(get_session_manager)):
    email = payload.email.strip()
    if not email or not payload.password:
        return JSONResponse({"error": "missing_credentials"}, status_code=400, headers=private_no_store())
    result = await manager.sign_in(email, payload.password)
    if not result.success:
        logger.info("login rejected")
    return _auth_response(result)


@auth_router.post("/auth/register")
async def register(payload: RegisterPayload, manager: SessionManager = Depends(get_session_manager)):
    email = payload.email.strip()
    name = payload.name.strip()
    if not email or not payload.password or not name:
        return JSONResponse({"error": "missing_fields"}, status_code=400, headers=private_no_store())
    result = await manager.sign_up(email, payload.password, name, role=payload.role)
    return _auth_response(result)


@auth_router.post("/auth/logout")
async def logout(manager: SessionManager = Depends(get_session_manager)):
    await manager.sign_out()
    return JSONResponse({"success": True}, headers=private_no_store())


@auth_router.post("/auth/role")
async def select_role(payload: RolePayload, manager: SessionManager = Depends(get_session_manager)):
    """Persist the chosen role and tell the client where to go next."""
    try:
        next_route = await manager.select_role(payload.role)
    except ValueError:
        return JSONResponse({"error": "invalid_role"}, status_code=400, headers=private_no_store())
    return JSONResponse({"role": manager.role or payload.role.strip().lower(), "next": next_route}, headers=private_no_store())

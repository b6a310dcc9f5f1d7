"""
Settings routes: dark-mode preference and the matching theme stylesheet.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from loopverse.identity_access.manager import SessionManager
from loopverse.web.deps import get_session_manager, private_no_store
from loopverse.web.theme import palette_for, stylesheet


settings_router = APIRouter(tags=["Settings"])


class ThemePayload(BaseModel):
    dark_mode: bool


def _theme_body(manager: SessionManager) -> dict:
    return {"dark_mode": manager.dark_mode, "palette": palette_for(manager.dark_mode)}


@settings_router.get("/api/settings/theme")
async def get_theme(manager: SessionManager = Depends(get_session_manager)):
    return JSONResponse(_theme_body(manager), headers=private_no_store())


@settings_router.put("/api/settings/theme")
async def put_theme(payload: ThemePayload, manager: SessionManager = Depends(get_session_manager)):
    await manager.toggle_dark_mode(payload.dark_mode)
    return JSONResponse(_theme_body(manager), headers=private_no_store())


@settings_router.get("/theme.css")
async def theme_css(manager: SessionManager = Depends(get_session_manager)):
    return Response(content=stylesheet(manager.dark_mode), media_type="text/css", headers=private_no_store())

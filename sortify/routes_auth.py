"""Login, OAuth callback, logout and session status routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse

from sortify.config import get_settings
from sortify.profiles import Profile, get_profile

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


@router.get("/")
async def session_status(request: Request, profile: Profile = Depends(get_profile)):
    """Current auth state; the first visit restores any stored credential."""
    await profile.auth.mount(str(request.url))
    return JSONResponse(profile.auth.snapshot())


@router.get("/login")
async def login(profile: Profile = Depends(get_profile)):
    """Start the Spotify PKCE login flow."""
    if not get_settings().spotify_client_id:
        raise HTTPException(status_code=500, detail="SPOTIFY_CLIENT_ID not set")

    url = await profile.reset().begin_login()
    return RedirectResponse(url)


@router.get("/callback")
async def callback(request: Request, profile: Profile = Depends(get_profile)):
    """Handle Spotify's redirect after the user authorizes (or declines)."""
    stripped: list[str] = []
    auth = profile.reset()
    await auth.mount(str(request.url), replace_url=stripped.append)
    logger.info("Callback handled; navigating away from %s", stripped[-1] if stripped else "/callback")
    return RedirectResponse("/", status_code=303)


@router.get("/logout")
async def logout(profile: Profile = Depends(get_profile)):
    """Forget tokens and start over with a fresh session."""
    await profile.auth.logout()
    profile.reset()
    return RedirectResponse("/")

"""Playlist selection, reorder settings and run routes (JSON)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from reorder.models import ReorderMode, ShuffleConfig, SortKey
from reorder.sort_rules import format_sort_rules, get_sort_key_label, parse_sort_rules
from sortify.config import get_settings
from sortify.profiles import Profile, get_profile
from sortify.sync import PlaylistSyncCoordinator

router = APIRouter(tags=["playlists"])


class SortRulesBody(BaseModel):
    rules: str


class ModeBody(BaseModel):
    mode: ReorderMode


async def _require_auth(request: Request, profile: Profile = Depends(get_profile)) -> Profile:
    """Return the profile if its session is authenticated, else 401."""
    await profile.auth.mount(request.url.path)
    if not profile.auth.is_authenticated:
        raise HTTPException(status_code=401, detail="Not logged in — please /login")
    return profile


def _playlists_payload(coordinator: PlaylistSyncCoordinator) -> dict:
    return {
        "playlists": [p.model_dump(mode="json") for p in coordinator.playlists],
        "processing": coordinator.processing,
        "is_loading": coordinator.is_loading,
    }


# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------

@router.get("/playlists")
async def list_playlists(profile: Profile = Depends(_require_auth)):
    """The user's own playlists with selection and last-run status."""
    coordinator = await profile.get_coordinator()
    return _playlists_payload(coordinator)


@router.post("/playlists/toggle-all")
async def toggle_all(q: str = "", profile: Profile = Depends(_require_auth)):
    coordinator = await profile.get_coordinator()
    coordinator.toggle_all(q)
    return _playlists_payload(coordinator)


@router.post("/playlists/{playlist_id}/toggle")
async def toggle_playlist(playlist_id: str, profile: Profile = Depends(_require_auth)):
    coordinator = await profile.get_coordinator()
    playlist = coordinator.toggle_selection(playlist_id)
    if playlist is None:
        raise HTTPException(status_code=404, detail=f"Unknown playlist {playlist_id}")
    return playlist.model_dump(mode="json")


@router.post("/run")
async def run(profile: Profile = Depends(_require_auth)):
    """Sort or shuffle every selected playlist, one at a time."""
    coordinator = await profile.get_coordinator()
    await coordinator.run()
    return _playlists_payload(coordinator)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@router.get("/sort-keys")
async def sort_keys():
    return {key.value: get_sort_key_label(key) for key in SortKey}


@router.get("/settings/sort-rules")
async def get_sort_rules(profile: Profile = Depends(get_profile)):
    rules = await profile.preferences.load_sort_rules(get_settings().default_sort_rules)
    return {"rules": format_sort_rules(rules)}


@router.put("/settings/sort-rules")
async def put_sort_rules(body: SortRulesBody, profile: Profile = Depends(get_profile)):
    try:
        rules = parse_sort_rules(body.rules)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    await profile.preferences.save_sort_rules(rules)
    if profile.coordinator is not None:
        profile.coordinator.set_rules(rules)
    return {"rules": format_sort_rules(rules)}


@router.get("/settings/shuffle")
async def get_shuffle_config(profile: Profile = Depends(get_profile)):
    return (await profile.preferences.load_shuffle_config()).model_dump(mode="json")


@router.put("/settings/shuffle")
async def put_shuffle_config(config: ShuffleConfig, profile: Profile = Depends(get_profile)):
    await profile.preferences.save_shuffle_config(config)
    if profile.coordinator is not None:
        profile.coordinator.set_shuffle_config(config)
    return config.model_dump(mode="json")


@router.get("/settings/mode")
async def get_mode(profile: Profile = Depends(get_profile)):
    return {"mode": (await profile.preferences.load_mode()).value}


@router.put("/settings/mode")
async def put_mode(body: ModeBody, profile: Profile = Depends(get_profile)):
    await profile.preferences.save_mode(body.mode)
    if profile.coordinator is not None:
        profile.coordinator.set_mode(body.mode)
    return {"mode": body.mode.value}

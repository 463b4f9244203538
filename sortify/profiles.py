"""Per-profile runtime objects.

A profile is one browser, identified by a random ``profile_id`` kept in
the signed session cookie.  Each profile owns its persisted rows, its
current ``AuthSession`` and, once authenticated, a playlist coordinator.
"""

from __future__ import annotations

import logging
import secrets
from typing import Dict, Optional

from fastapi import Request

from sortify.auth import AuthSession
from sortify.cancel import CancelToken
from sortify.config import get_settings
from sortify.db import get_db
from sortify.spotify_client import SpotifyAuthClient, SpotifyPlaylistStore
from sortify.storage import KeyValueStore, PreferencesStore, SqliteKeyValueStore, TokenStore
from sortify.sync import PlaylistSyncCoordinator

logger = logging.getLogger(__name__)

PROFILE_SESSION_KEY = "profile_id"


class Profile:
    """Runtime state for one browser profile."""

    def __init__(self, profile_id: str, kv: KeyValueStore):
        self.profile_id = profile_id
        self.tokens = TokenStore(kv)
        self.preferences = PreferencesStore(kv)
        self.auth = self._new_auth_session()
        self.coordinator: Optional[PlaylistSyncCoordinator] = None
        self._load_cancel = CancelToken()

    def _new_auth_session(self) -> AuthSession:
        settings = get_settings()
        return AuthSession(
            self.tokens,
            SpotifyAuthClient.from_settings(settings),
            buffer_seconds=settings.token_refresh_buffer_seconds,
        )

    def reset(self) -> AuthSession:
        """Tear down the current session (a page reload) and start a fresh one."""
        self.close()
        self.auth = self._new_auth_session()
        self.coordinator = None
        self._load_cancel = CancelToken()
        return self.auth

    async def access_token(self) -> str:
        return await self.auth.access_token()

    async def get_coordinator(self) -> PlaylistSyncCoordinator:
        """Return the coordinator, building and loading it on first use."""
        if self.coordinator is None:
            settings = get_settings()
            self.coordinator = PlaylistSyncCoordinator(
                SpotifyPlaylistStore(self.access_token, batch_size=settings.write_batch_size),
                rules=await self.preferences.load_sort_rules(settings.default_sort_rules),
                mode=await self.preferences.load_mode(),
                shuffle_config=await self.preferences.load_shuffle_config(),
            )
        if not self.coordinator.loaded and not self.coordinator.is_loading:
            await self.coordinator.load(self._load_cancel)
        return self.coordinator

    def close(self) -> None:
        self._load_cancel.cancel()
        self.auth.close()


# Key: profile_id → Profile
_profiles: Dict[str, Profile] = {}


def get_profile(request: Request) -> Profile:
    """Return the caller's profile, assigning a new profile id if needed."""
    profile_id = request.session.get(PROFILE_SESSION_KEY)
    if not profile_id:
        profile_id = secrets.token_urlsafe(16)
        request.session[PROFILE_SESSION_KEY] = profile_id

    profile = _profiles.get(profile_id)
    if profile is None:
        profile = Profile(profile_id, SqliteKeyValueStore(get_db(), profile_id))
        _profiles[profile_id] = profile
    return profile


def close_profiles() -> None:
    """Tear down every profile (application shutdown)."""
    for profile in _profiles.values():
        profile.close()
    _profiles.clear()
    logger.info("Closed all profile sessions")

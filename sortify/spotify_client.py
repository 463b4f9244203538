"""Spotify HTTP clients.

- ``SpotifyAuthClient``: the token endpoint (code exchange + refresh, PKCE, no secret)
- ``SpotifyPlaylistStore``: resilient Web API wrapper implementing the playlist store
    - 429 Retry-After with jitter
    - Exponential backoff on 5xx and transport errors
    - Configurable timeouts & limited retries
    - Sequential paging and batched writes
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, List, Optional, Sequence

import httpx
from pydantic import BaseModel, ValidationError

from reorder.models import PlaylistEntry, Track
from sortify.cancel import CancelToken
from sortify.config import SPOTIFY_API_URL, SPOTIFY_TOKEN_URL, Settings
from sortify.errors import (
    AuthError,
    ExchangeError,
    RefreshError,
    SpotifyAPIError,
    WriteBackError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

_MAX_RETRIES = 3
_CONNECT_TIMEOUT = 10.0  # seconds
_READ_TIMEOUT = 30.0
_BACKOFF_BASE = 0.5  # seconds
_BACKOFF_CAP = 30.0  # seconds
_JITTER_MAX = 0.5  # seconds

_PLAYLISTS_PAGE_SIZE = 50
_TRACKS_PAGE_SIZE = 100
_TRACK_FIELDS = (
    "items(track(id,uri,name,is_local,popularity,disc_number,track_number,"
    "artists(name),album(name,release_date))),next"
)

TokenProvider = Callable[[], Awaitable[str]]


# ---------------------------------------------------------------------------
# Token endpoint
# ---------------------------------------------------------------------------

class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None  # absent → keep the previous one
    expires_in: int = 3600


class SpotifyAuthClient:
    """Form-encoded calls to the accounts token endpoint."""

    def __init__(self, client_id: str, redirect_uri: str, *, token_url: str = SPOTIFY_TOKEN_URL):
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.token_url = token_url

    @classmethod
    def from_settings(cls, settings: Settings) -> "SpotifyAuthClient":
        return cls(settings.spotify_client_id, settings.redirect_uri)

    async def exchange_code(self, code: str, code_verifier: str) -> TokenResponse:
        """Exchange an authorization code (+ PKCE verifier) for tokens."""
        return await self._post(
            {
                "client_id": self.client_id,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "code_verifier": code_verifier,
            },
            ExchangeError,
            "Token exchange failed",
        )

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """Use the refresh_token to get a new access_token."""
        return await self._post(
            {
                "client_id": self.client_id,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            RefreshError,
            "Token refresh failed",
        )

    async def _post(
        self,
        data: dict[str, str],
        error_cls: type[AuthError],
        prefix: str,
    ) -> TokenResponse:
        try:
            async with httpx.AsyncClient(timeout=_CONNECT_TIMEOUT) as client:
                resp = await client.post(self.token_url, data=data)
        except httpx.HTTPError as exc:
            logger.warning("%s: %s", prefix, type(exc).__name__)
            raise error_cls(f"{prefix}: {exc}" if str(exc) else None) from exc

        if resp.status_code != 200:
            logger.warning("%s (%s): %s", prefix, resp.status_code, resp.text)
            raise error_cls(f"{prefix}: {resp.reason_phrase or resp.status_code}")

        try:
            return TokenResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise error_cls(f"{prefix}: malformed token response") from exc


# ---------------------------------------------------------------------------
# Playlist store
# ---------------------------------------------------------------------------

class SpotifyPlaylistStore:
    """Playlist reads and writes against the Spotify Web API.

    Every request asks *token_provider* for an access token, so expiry is
    checked (and a refresh triggered) by the session that owns it.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        *,
        base_url: str = SPOTIFY_API_URL,
        batch_size: int = 100,
    ):
        self._token_provider = token_provider
        self.base_url = base_url
        self.batch_size = batch_size

    # ── Low-level ───────────────────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Make an authenticated request with retry logic.

        *path* is relative to ``base_url`` unless it is already absolute
        (paging ``next`` links).

        Raises
        ------
        SpotifyAPIError
            After exhausting retries or unrecoverable errors.
        """
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        timeout = httpx.Timeout(_READ_TIMEOUT, connect=_CONNECT_TIMEOUT)
        last_status = 0

        for attempt in range(_MAX_RETRIES):
            access_token = await self._token_provider()
            headers = {"Authorization": f"Bearer {access_token}"}

            async with httpx.AsyncClient(timeout=timeout) as client:
                try:
                    resp = await client.request(method, url, headers=headers, **kwargs)
                except httpx.TransportError as exc:
                    logger.warning(
                        "%s on attempt %d for %s %s",
                        type(exc).__name__, attempt + 1, method, path,
                    )
                    await _backoff_sleep(attempt)
                    continue

            last_status = resp.status_code

            # ── Success ─────────────────────────────────────────────
            if resp.status_code < 400:
                return resp

            # ── 429 → Retry-After ───────────────────────────────────
            if resp.status_code == 429:
                wait = _retry_after_seconds(resp) + random.uniform(0, _JITTER_MAX)
                logger.warning("429 on %s %s — waiting %.1fs", method, path, wait)
                await asyncio.sleep(wait)
                continue

            # ── 5xx → exponential backoff ───────────────────────────
            if resp.status_code >= 500:
                logger.warning(
                    "Server error %d on %s %s (attempt %d)",
                    resp.status_code, method, path, attempt + 1,
                )
                await _backoff_sleep(attempt)
                continue

            # ── 4xx (other) → fail immediately ──────────────────────
            raise SpotifyAPIError(resp.status_code, resp.text)

        raise SpotifyAPIError(
            last_status,
            f"Max retries ({_MAX_RETRIES}) exhausted for {method} {path}",
        )

    # ── Reads ───────────────────────────────────────────────────

    async def get_current_user_id(self) -> str:
        resp = await self._request("GET", "/me")
        return resp.json()["id"]

    async def list_owned_playlists(
        self,
        cancel: Optional[CancelToken] = None,
    ) -> List[PlaylistEntry]:
        """Return the playlists the current user owns.

        Identity first, then the paged playlist list; the cancel token is
        checked after each call.
        """
        cancel = cancel or CancelToken()
        my_id = await self.get_current_user_id()
        cancel.raise_if_cancelled()

        playlists: List[PlaylistEntry] = []
        url: Optional[str] = "/me/playlists"
        params: Optional[dict] = {"limit": _PLAYLISTS_PAGE_SIZE}
        while url:
            resp = await self._request("GET", url, params=params)
            cancel.raise_if_cancelled()
            data = resp.json()
            for item in data.get("items", []):
                if not item or (item.get("owner") or {}).get("id") != my_id:
                    continue
                playlists.append(
                    PlaylistEntry(
                        id=item["id"],
                        name=item.get("name") or "",
                        href=(item.get("external_urls") or {}).get("spotify", ""),
                        track_count=(item.get("tracks") or {}).get("total", 0),
                    )
                )
            url = data.get("next")  # None when last page
            params = None  # next links carry their own query

        return playlists

    async def get_tracks(self, playlist_id: str) -> List[Track]:
        """Fetch every item of a playlist, following ``next`` links."""
        tracks: List[Track] = []
        url: Optional[str] = f"/playlists/{playlist_id}/tracks"
        params: Optional[dict] = {"limit": _TRACKS_PAGE_SIZE, "fields": _TRACK_FIELDS}
        while url:
            resp = await self._request("GET", url, params=params)
            data = resp.json()
            for item in data.get("items", []):
                track = Track.from_playlist_item(item)
                if track is not None:
                    tracks.append(track)
            url = data.get("next")
            params = None
        return tracks

    # ── Writes ──────────────────────────────────────────────────

    async def replace_tracks(self, playlist_id: str, track_uris: Sequence[str]) -> int:
        """Replace the playlist contents with *track_uris*, in order.

        The first batch replaces (PUT), later batches append (POST).
        Returns the number of API calls made.
        """
        uris = list(track_uris)
        batches = [
            uris[start : start + self.batch_size]
            for start in range(0, len(uris), self.batch_size)
        ] or [[]]
        path = f"/playlists/{playlist_id}/tracks"

        calls = 0
        try:
            for i, chunk in enumerate(batches):
                await self._request("PUT" if i == 0 else "POST", path, json={"uris": chunk})
                calls += 1
        except SpotifyAPIError as exc:
            raise WriteBackError(playlist_id, exc.detail) from exc
        return calls


async def _backoff_sleep(attempt: int) -> None:
    """Exponential backoff with jitter, capped at ``_BACKOFF_CAP``."""
    delay = min(_BACKOFF_BASE * (2 ** attempt) + random.uniform(0, _JITTER_MAX), _BACKOFF_CAP)
    logger.debug("Backoff sleep %.2fs (attempt %d)", delay, attempt + 1)
    await asyncio.sleep(delay)


def _retry_after_seconds(resp: httpx.Response) -> float:
    """Seconds from a 429 ``Retry-After`` header; 1 when absent or not a number."""
    try:
        return max(0.0, float(resp.headers.get("Retry-After", "1")))
    except ValueError:
        return 1.0

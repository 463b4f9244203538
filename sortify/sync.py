"""Sort or shuffle the selected playlists, one after another.

Per playlist: ``sorting`` → fetch tracks → reorder → write back if the
order changed → ``sorted`` / ``shuffled`` / ``unchanged`` / ``error``.
A failure is recorded on that playlist only and the run continues.
"""

from __future__ import annotations

import logging
import random
from typing import Callable, List, Optional, Protocol, Sequence

from reorder.models import (
    PlaylistEntry,
    PlaylistStatus,
    ReorderMode,
    ShuffleConfig,
    SortRule,
    Track,
)
from reorder.shuffle import shuffle_tracks
from reorder.sorting import order_changed, sort_tracks
from sortify.cancel import CancelToken, OperationCancelled
from sortify.errors import PlaylistStoreError

logger = logging.getLogger(__name__)


class PlaylistStore(Protocol):
    """Remote playlist access; paging and write batching happen behind it."""

    async def list_owned_playlists(
        self, cancel: Optional[CancelToken] = None
    ) -> List[PlaylistEntry]: ...

    async def get_tracks(self, playlist_id: str) -> List[Track]: ...

    async def replace_tracks(self, playlist_id: str, track_uris: Sequence[str]) -> int: ...


class PlaylistSyncCoordinator:
    """Holds the playlist list and drives reorder runs over the selection."""

    def __init__(
        self,
        store: PlaylistStore,
        *,
        rules: Optional[Sequence[SortRule]] = None,
        mode: ReorderMode = ReorderMode.SORT,
        shuffle_config: Optional[ShuffleConfig] = None,
        rng: Optional[random.Random] = None,
        on_status: Optional[Callable[[PlaylistEntry], None]] = None,
    ):
        self.store = store
        self.rules: List[SortRule] = list(rules or [])
        self.mode = mode
        self.shuffle_config = shuffle_config or ShuffleConfig()
        self._rng = rng
        self._on_status = on_status

        self.playlists: List[PlaylistEntry] = []
        self.processing = False
        self.is_loading = False
        self.loaded = False
        self._first_run = True

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self, cancel: Optional[CancelToken] = None) -> List[PlaylistEntry]:
        """Fetch the user's own playlists.

        If *cancel* fires before the fetch completes, neither the result nor
        an error is applied.
        """
        cancel = cancel or CancelToken()
        self.is_loading = True
        try:
            playlists = await self.store.list_owned_playlists(cancel)
            cancel.raise_if_cancelled()
            self.playlists = playlists
            self.loaded = True
        except OperationCancelled:
            logger.debug("Playlist load abandoned")
        except PlaylistStoreError as exc:
            if not cancel.cancelled:
                logger.error("Failed to load playlists: %s", exc)
                self.playlists = []
        finally:
            if not cancel.cancelled:
                self.is_loading = False
        return self.playlists

    # ------------------------------------------------------------------
    # Selection and settings
    # ------------------------------------------------------------------

    @property
    def selected_playlists(self) -> List[PlaylistEntry]:
        return [p for p in self.playlists if p.selected]

    def filter_playlists(self, search_term: str = "") -> List[PlaylistEntry]:
        if not search_term:
            return list(self.playlists)
        term = search_term.lower()
        return [p for p in self.playlists if term in p.name.lower()]

    def toggle_selection(self, playlist_id: str) -> Optional[PlaylistEntry]:
        for playlist in self.playlists:
            if playlist.id == playlist_id:
                playlist.selected = not playlist.selected
                return playlist
        return None

    def toggle_all(self, search_term: str = "") -> None:
        """Select every playlist matching *search_term*, or deselect if all already are."""
        matching = self.filter_playlists(search_term)
        select = not (matching and all(p.selected for p in matching))
        for playlist in matching:
            playlist.selected = select

    def set_rules(self, rules: Sequence[SortRule]) -> None:
        self.rules = list(rules)

    def set_shuffle_config(self, config: ShuffleConfig) -> None:
        self.shuffle_config = config

    def set_mode(self, mode: ReorderMode) -> None:
        self.mode = mode

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def _set_status(self, playlist: PlaylistEntry, status: PlaylistStatus) -> None:
        playlist.status = status
        logger.info("Playlist %s → %s", playlist.id, status.value)
        if self._on_status is not None:
            self._on_status(playlist)

    def _reorder(self, tracks: List[Track]) -> bool:
        """Reorder *tracks* in place for the current mode; True if the order changed."""
        if self.mode is ReorderMode.SORT:
            return sort_tracks(tracks, self.rules)

        shuffled = shuffle_tracks(tracks, self.shuffle_config, rng=self._rng)
        if not order_changed(tracks, shuffled):
            return False
        tracks[:] = shuffled
        return True

    async def _process(self, playlist: PlaylistEntry) -> PlaylistStatus:
        """Fetch, reorder and write back one playlist; never raises on failure.

        ``asyncio.CancelledError`` still propagates so a torn-down run stops.
        """
        try:
            tracks = await self.store.get_tracks(playlist.id)
        except PlaylistStoreError as exc:
            logger.error("Could not fetch tracks of %s: %s", playlist.id, exc)
            return PlaylistStatus.ERROR
        except Exception:
            logger.exception("Unexpected failure fetching tracks of %s", playlist.id)
            return PlaylistStatus.ERROR

        if not self._reorder(tracks):
            return PlaylistStatus.UNCHANGED

        if any(t.is_local for t in tracks):
            # Local files cannot be re-added through the Web API.
            logger.warning("Playlist %s holds local files; not rewriting it", playlist.id)
            return PlaylistStatus.ERROR

        try:
            await self.store.replace_tracks(playlist.id, [t.key for t in tracks])
        except PlaylistStoreError as exc:
            logger.error("Could not write %s: %s", playlist.id, exc)
            return PlaylistStatus.ERROR
        except Exception:
            logger.exception("Unexpected failure writing %s", playlist.id)
            return PlaylistStatus.ERROR

        if self.mode is ReorderMode.SORT:
            return PlaylistStatus.SORTED
        return PlaylistStatus.SHUFFLED

    async def run(self) -> List[PlaylistEntry]:
        """Reorder every selected playlist, strictly in sequence."""
        if self.processing:
            logger.warning("Run requested while another run is in progress")
            return self.playlists

        self.processing = True
        try:
            if self._first_run:
                self._first_run = False
            else:
                for playlist in self.playlists:
                    playlist.status = PlaylistStatus.READY

            for playlist in self.selected_playlists:
                self._set_status(playlist, PlaylistStatus.SORTING)
                self._set_status(playlist, await self._process(playlist))
        finally:
            self.processing = False
        return self.playlists

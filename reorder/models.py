"""Pydantic models shared by the sort and shuffle engines."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class SortKey(str, Enum):
    ARTIST = "artist"
    TITLE = "title"
    ALBUM = "album"
    RELEASE_DATE = "release_date"
    DISC_NUMBER = "disc_number"
    TRACK_NUMBER = "track_number"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SortRule(BaseModel):
    """One ``(key, order)`` pair; a list of rules is evaluated first to last."""

    key: SortKey
    order: SortOrder = SortOrder.ASC

    model_config = {"frozen": True}


class ShuffleWeight(str, Enum):
    POPULARITY_HIGH = "popularity-high"
    RANDOM = "random"
    POPULARITY_LOW = "popularity-low"


class SmartSeparation(BaseModel):
    artist: bool = False
    album: bool = False

    @property
    def enabled(self) -> bool:
        return self.artist or self.album


class ShuffleConfig(BaseModel):
    weighted: ShuffleWeight = ShuffleWeight.RANDOM
    smart: SmartSeparation = Field(default_factory=SmartSeparation)


class ReorderMode(str, Enum):
    SORT = "sort"
    SHUFFLE = "shuffle"


class PlaylistStatus(str, Enum):
    READY = "ready"
    SORTING = "sorting"
    SORTED = "sorted"
    SHUFFLED = "shuffled"
    UNCHANGED = "unchanged"
    ERROR = "error"


class PlaylistEntry(BaseModel):
    """A playlist owned by the current user, as shown in the selection list."""

    id: str
    name: str = ""
    href: str = ""
    track_count: int = 0
    selected: bool = False
    status: PlaylistStatus = PlaylistStatus.READY


class Track(BaseModel):
    """The fields of a playlist item the engines read.

    Everything except position is treated as read-only.
    """

    id: Optional[str] = None
    uri: str = ""  # e.g. "spotify:track:6rqhFgbbKwnb9MLmUQDhG6"
    name: str = ""
    artist: str = ""  # first credited artist
    album: str = ""
    release_date: str = ""
    disc_number: Optional[int] = None
    track_number: Optional[int] = None
    popularity: Optional[int] = None
    is_local: bool = False  # local files cannot be written back

    @property
    def key(self) -> str:
        """Identity used when comparing orders and writing back."""
        if self.uri:
            return self.uri
        return f"spotify:track:{self.id}" if self.id else ""

    @classmethod
    def from_playlist_item(cls, item: dict[str, Any]) -> Optional["Track"]:
        """Build a Track from a Spotify playlist item, or None for a removed track."""
        t = item.get("track")
        if t is None:
            return None
        album = t.get("album") or {}
        artists = t.get("artists") or []
        return cls(
            id=t.get("id"),
            uri=t.get("uri") or "",
            name=t.get("name") or "",
            artist=(artists[0].get("name") or "") if artists else "",
            album=album.get("name") or "",
            release_date=album.get("release_date") or "",
            disc_number=t.get("disc_number"),
            track_number=t.get("track_number"),
            popularity=t.get("popularity"),
            is_local=bool(item.get("is_local") or t.get("is_local")),
        )

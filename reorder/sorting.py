"""Sort engine: multi-key, stable, in-place track sorting.

Rules are evaluated in list order and the first non-zero comparison wins.
String keys compare locale-aware and case-insensitively, with empty values
pinned to the front whatever the order.  Numeric keys treat a missing
value as ``0``.
"""

from __future__ import annotations

import locale
import logging
import unicodedata
from functools import cmp_to_key
from typing import Callable, Dict, List, Optional, Sequence

from reorder.models import SortKey, SortOrder, SortRule, Track

logger = logging.getLogger(__name__)

_STRING_GETTERS: Dict[SortKey, Callable[[Track], str]] = {
    SortKey.ARTIST: lambda t: t.artist,
    SortKey.TITLE: lambda t: t.name,
    SortKey.ALBUM: lambda t: t.album,
    SortKey.RELEASE_DATE: lambda t: t.release_date,
}

_NUMBER_GETTERS: Dict[SortKey, Callable[[Track], Optional[int]]] = {
    SortKey.DISC_NUMBER: lambda t: t.disc_number,
    SortKey.TRACK_NUMBER: lambda t: t.track_number,
}


# Letters NFKD leaves whole; folded so they collate beside their base letters.
_LATIN_FOLDS = str.maketrans(
    {
        "æ": "ae",
        "œ": "oe",
        "ø": "o",
        "ß": "ss",
        "đ": "d",
        "ð": "d",
        "ł": "l",
        "þ": "th",
        "ı": "i",
    }
)


def configure_collation(name: str = "") -> bool:
    """Collate by *name*, or by the environment's ``LC_COLLATE`` when empty.

    Returns False and keeps the current collation if the locale is unavailable.
    """
    try:
        locale.setlocale(locale.LC_COLLATE, name)
    except locale.Error:
        logger.warning("Collation locale %r unavailable; using %s", name, locale.setlocale(locale.LC_COLLATE))
        return False
    return True


def collation_key(value: str) -> str:
    """Case- and accent-insensitive key, ordered by the active LC_COLLATE."""
    decomposed = unicodedata.normalize("NFKD", value.casefold())
    base = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return locale.strxfrm(base.translate(_LATIN_FOLDS))


def _sign(a, b) -> int:
    return (a > b) - (a < b)


def compare_tracks(a: Track, b: Track, rules: Sequence[SortRule]) -> int:
    """Three-way comparison of two tracks under *rules*."""
    for rule in rules:
        if rule.key in _STRING_GETTERS:
            getter = _STRING_GETTERS[rule.key]
            sa, sb = getter(a), getter(b)
            if not sa or not sb:
                if sa == sb:
                    continue
                # Empty sorts first for both orders.
                return -1 if not sa else 1
            result = _sign(collation_key(sa), collation_key(sb))
        else:
            number = _NUMBER_GETTERS[rule.key]
            result = _sign(number(a) or 0, number(b) or 0)

        if result:
            return result if rule.order is SortOrder.ASC else -result
    return 0


def order_changed(before: Sequence[Track], after: Sequence[Track]) -> bool:
    """True when the two sequences list tracks in a different order."""
    if len(before) != len(after):
        return True
    return any(x.key != y.key for x, y in zip(before, after))


def sort_tracks(tracks: List[Track], rules: Sequence[SortRule]) -> bool:
    """Sort *tracks* in place and return whether the order changed."""
    if len(tracks) < 2 or not rules:
        return False

    before = list(tracks)
    tracks.sort(key=cmp_to_key(lambda a, b: compare_tracks(a, b, rules)))
    return any(x is not y for x, y in zip(before, tracks))

"""Shuffle engine — pure business logic, no I/O.

Provides:
- Fisher–Yates shuffle (unbiased)
- Popularity-weighted sampling without replacement
- Smart separation (avoid back-to-back artist / album)
"""

from __future__ import annotations

import logging
import random
from typing import List, Optional, Sequence, Tuple, TypeVar

from reorder.models import ShuffleConfig, ShuffleWeight, SmartSeparation, Track

logger = logging.getLogger(__name__)

T = TypeVar("T")

_JITTER_MAX = 5.0
_LOW_POPULARITY_CEILING = 105.0
_MIN_WEIGHT = 1.0


# ---------------------------------------------------------------------------
# Fisher–Yates Shuffle
# ---------------------------------------------------------------------------

def fisher_yates_shuffle(
    items: List[T],
    rng: Optional[random.Random] = None,
) -> List[T]:
    """In-place unbiased Fisher–Yates (Knuth) shuffle.

    Parameters
    ----------
    items:
        List to shuffle.  Will be **mutated** in place.
    rng:
        Optional ``random.Random`` instance for deterministic testing.

    Returns
    -------
    The same list (shuffled in place) for convenience.
    """
    rng = rng or random.Random()
    n = len(items)
    for i in range(n - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


# ---------------------------------------------------------------------------
# Weighted shuffle
# ---------------------------------------------------------------------------

def track_weight(track: Track, weight: ShuffleWeight, rng: random.Random) -> float:
    """Sampling weight of *track*: popularity plus jitter, never below 1."""
    score = (track.popularity or 0) + rng.random() * _JITTER_MAX
    if weight is ShuffleWeight.POPULARITY_LOW:
        # 105 keeps a maximally popular track above zero.
        score = _LOW_POPULARITY_CEILING - score
    return max(_MIN_WEIGHT, score)


def _draw_index(weights: Sequence[float], rng: random.Random) -> int:
    remaining = rng.random() * sum(weights)
    for i, w in enumerate(weights):
        remaining -= w
        if remaining <= 0:
            return i
    # Float rounding left a sliver above zero.
    return len(weights) - 1


def weighted_shuffle(
    tracks: Sequence[Track],
    weight: ShuffleWeight,
    rng: Optional[random.Random] = None,
) -> List[Track]:
    """Return a new list ordered by weight-proportional draws without replacement.

    ``ShuffleWeight.RANDOM`` is a plain Fisher–Yates permutation.  The
    weighted draw is O(n²), which is fine at playlist scale.
    """
    rng = rng or random.Random()
    if weight is ShuffleWeight.RANDOM:
        return fisher_yates_shuffle(list(tracks), rng=rng)

    pool: List[Tuple[Track, float]] = [(t, track_weight(t, weight, rng)) for t in tracks]
    shuffled: List[Track] = []
    while pool:
        idx = _draw_index([w for _, w in pool], rng)
        shuffled.append(pool.pop(idx)[0])
    return shuffled


# ---------------------------------------------------------------------------
# Smart separation
# ---------------------------------------------------------------------------

def _conflicts(candidate: Track, previous: Track, smart: SmartSeparation) -> bool:
    if smart.artist and candidate.artist == previous.artist:
        return True
    if smart.album and candidate.album == previous.album:
        return True
    return False


def apply_smart_separation(
    tracks: Sequence[Track],
    smart: SmartSeparation,
) -> List[Track]:
    """Greedily reorder so neighbours differ in artist and/or album.

    First fit: the earliest remaining track that does not clash with the
    previously placed one is taken, which keeps the incoming order among
    equally valid candidates.  When nothing fits, the first remaining track
    is placed anyway and counted as a skip; once consecutive skips exceed
    twice the input size the rest is appended as is.
    """
    if not smart.enabled:
        return list(tracks)

    pool = list(tracks)
    result: List[Track] = []
    max_skips = len(pool) * 2
    skips = 0

    while pool:
        if skips > max_skips:
            logger.debug("Smart separation gave up with %d tracks left", len(pool))
            result.extend(pool)
            break

        index = 0
        found = True
        if result:
            previous = result[-1]
            found = False
            for i, candidate in enumerate(pool):
                if not _conflicts(candidate, previous, smart):
                    index = i
                    found = True
                    break

        result.append(pool.pop(index))
        skips = 0 if found else skips + 1

    return result


# ---------------------------------------------------------------------------
# High-level entry point
# ---------------------------------------------------------------------------

def shuffle_tracks(
    tracks: Sequence[Track],
    config: ShuffleConfig,
    *,
    rng: Optional[random.Random] = None,
) -> List[Track]:
    """Full pipeline: weighted (or uniform) shuffle → smart separation.

    Returns a **new** list holding exactly the input tracks.
    """
    shuffled = weighted_shuffle(tracks, config.weighted, rng=rng)
    if config.smart.enabled:
        return apply_smart_separation(shuffled, config.smart)
    return shuffled

"""Durable per-profile persistence for tokens, OAuth handshake and preferences.

Credential keys are always written and removed together, in one
transaction, so a reader never sees a half-updated credential.
"""

from __future__ import annotations

import abc
import logging
import time
from typing import Callable, Dict, Iterable, List, Mapping, Optional

import aiosqlite
from pydantic import BaseModel, ValidationError

from reorder.models import ReorderMode, ShuffleConfig, SmartSeparation, SortRule
from reorder.sort_rules import format_sort_rules, parse_sort_rules

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "spotify_access_token"
REFRESH_TOKEN_KEY = "spotify_refresh_token"
TOKEN_EXPIRY_KEY = "spotify_token_expiry"
CODE_VERIFIER_KEY = "code_verifier"
OAUTH_STATE_KEY = "oauth_state"
SORT_RULES_KEY = "sort_rules"
SHUFFLE_CONFIG_KEY = "shuffle_config"
REORDER_MODE_KEY = "reorder_mode"

_CREDENTIAL_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, TOKEN_EXPIRY_KEY)
_HANDSHAKE_KEYS = (CODE_VERIFIER_KEY, OAUTH_STATE_KEY)

Clock = Callable[[], float]


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class Credential(BaseModel):
    """Access/refresh token pair; ``expires_at`` is epoch milliseconds."""

    access_token: str
    refresh_token: str
    expires_at: int

    model_config = {"frozen": True}

    def lifetime_seconds(self, now: float) -> float:
        """Seconds until expiry (negative once expired); *now* is epoch seconds."""
        return self.expires_at / 1000 - now

    def is_expiring_soon(self, now: float, buffer_seconds: float) -> bool:
        return self.lifetime_seconds(now) <= buffer_seconds

    def seconds_until_refresh(self, now: float, buffer_seconds: float) -> float:
        return max(0.0, self.lifetime_seconds(now) - buffer_seconds)


class HandshakeState(BaseModel):
    code_verifier: str
    state: str


# ---------------------------------------------------------------------------
# Key-value backends
# ---------------------------------------------------------------------------

class KeyValueStore(abc.ABC):
    """String key → string value store; multi-key writes are all-or-nothing."""

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abc.abstractmethod
    async def set_many(self, values: Mapping[str, str]) -> None:
        ...

    @abc.abstractmethod
    async def delete_many(self, keys: Iterable[str]) -> None:
        ...

    async def set(self, key: str, value: str) -> None:
        await self.set_many({key: value})


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store, mainly for tests."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set_many(self, values: Mapping[str, str]) -> None:
        self.data.update(values)

    async def delete_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.data.pop(key, None)


class SqliteKeyValueStore(KeyValueStore):
    """Rows of the ``kv`` table belonging to one browser profile."""

    def __init__(self, db: aiosqlite.Connection, profile_id: str):
        self._db = db
        self.profile_id = profile_id

    async def get(self, key: str) -> Optional[str]:
        cursor = await self._db.execute(
            "SELECT value FROM kv WHERE profile_id = ? AND key = ?",
            (self.profile_id, key),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def set_many(self, values: Mapping[str, str]) -> None:
        rows = [(self.profile_id, k, v) for k, v in values.items()]
        try:
            await self._db.executemany(
                """
                INSERT INTO kv (profile_id, key, value)
                VALUES (?, ?, ?)
                ON CONFLICT(profile_id, key)
                DO UPDATE SET value      = excluded.value,
                              updated_at = datetime('now')
                """,
                rows,
            )
            await self._db.commit()
        except aiosqlite.Error:
            await self._db.rollback()
            raise

    async def delete_many(self, keys: Iterable[str]) -> None:
        rows = [(self.profile_id, k) for k in keys]
        try:
            await self._db.executemany(
                "DELETE FROM kv WHERE profile_id = ? AND key = ?", rows
            )
            await self._db.commit()
        except aiosqlite.Error:
            await self._db.rollback()
            raise


# ---------------------------------------------------------------------------
# Token persistence
# ---------------------------------------------------------------------------

class TokenStore:
    """Credential and PKCE handshake persistence on top of a KeyValueStore."""

    def __init__(self, kv: KeyValueStore, *, clock: Clock = time.time):
        self.kv = kv
        self._clock = clock

    async def save(self, credential: Credential) -> None:
        await self.kv.set_many(
            {
                ACCESS_TOKEN_KEY: credential.access_token,
                REFRESH_TOKEN_KEY: credential.refresh_token,
                TOKEN_EXPIRY_KEY: str(credential.expires_at),
            }
        )

    async def save_from_response(
        self,
        access_token: str,
        refresh_token: str,
        expires_in: int,
    ) -> Credential:
        """Persist a token endpoint response, anchoring ``expires_in`` to now."""
        credential = Credential(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=int((self._clock() + expires_in) * 1000),
        )
        await self.save(credential)
        return credential

    async def load(self) -> Optional[Credential]:
        access_token = await self.kv.get(ACCESS_TOKEN_KEY)
        refresh_token = await self.kv.get(REFRESH_TOKEN_KEY)
        expiry = await self.kv.get(TOKEN_EXPIRY_KEY)
        if not access_token or not refresh_token or not expiry:
            return None
        try:
            expires_at = int(expiry)
        except ValueError:
            logger.warning("Ignoring stored credential with malformed expiry")
            return None
        return Credential(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )

    async def clear(self) -> None:
        await self.kv.delete_many(_CREDENTIAL_KEYS)

    async def save_handshake(self, handshake: HandshakeState) -> None:
        await self.kv.set_many(
            {
                CODE_VERIFIER_KEY: handshake.code_verifier,
                OAUTH_STATE_KEY: handshake.state,
            }
        )

    async def load_handshake(self) -> Optional[HandshakeState]:
        verifier = await self.kv.get(CODE_VERIFIER_KEY)
        state = await self.kv.get(OAUTH_STATE_KEY)
        if not verifier or not state:
            return None
        return HandshakeState(code_verifier=verifier, state=state)

    async def clear_handshake(self) -> None:
        await self.kv.delete_many(_HANDSHAKE_KEYS)

    async def clear_all(self) -> None:
        """Remove the credential and any pending handshake in one write."""
        await self.kv.delete_many(_CREDENTIAL_KEYS + _HANDSHAKE_KEYS)


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------

DEFAULT_SHUFFLE_CONFIG = ShuffleConfig(smart=SmartSeparation(artist=True, album=False))


class PreferencesStore:
    """Sort rules, shuffle config and mode remembered across visits."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    async def load_sort_rules(self, default_raw: str) -> List[SortRule]:
        raw = await self.kv.get(SORT_RULES_KEY)
        if raw is None:
            raw = default_raw
        try:
            return parse_sort_rules(raw)
        except ValueError:
            return []

    async def save_sort_rules(self, rules: List[SortRule]) -> None:
        await self.kv.set(SORT_RULES_KEY, format_sort_rules(rules))

    async def load_shuffle_config(self) -> ShuffleConfig:
        raw = await self.kv.get(SHUFFLE_CONFIG_KEY)
        if raw is None:
            return DEFAULT_SHUFFLE_CONFIG.model_copy(deep=True)
        try:
            return ShuffleConfig.model_validate_json(raw)
        except ValidationError:
            logger.warning("Stored shuffle config is invalid; using defaults")
            return DEFAULT_SHUFFLE_CONFIG.model_copy(deep=True)

    async def save_shuffle_config(self, config: ShuffleConfig) -> None:
        await self.kv.set(SHUFFLE_CONFIG_KEY, config.model_dump_json())

    async def load_mode(self) -> ReorderMode:
        raw = await self.kv.get(REORDER_MODE_KEY)
        try:
            return ReorderMode(raw) if raw else ReorderMode.SORT
        except ValueError:
            return ReorderMode.SORT

    async def save_mode(self, mode: ReorderMode) -> None:
        await self.kv.set(REORDER_MODE_KEY, mode.value)

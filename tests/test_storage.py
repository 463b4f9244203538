"""Tests for token, handshake and preference persistence."""

from __future__ import annotations

import pytest

from reorder.models import ReorderMode, ShuffleConfig, ShuffleWeight, SmartSeparation, SortKey, SortOrder, SortRule
from sortify.storage import (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    SHUFFLE_CONFIG_KEY,
    SORT_RULES_KEY,
    TOKEN_EXPIRY_KEY,
    Credential,
    HandshakeState,
    MemoryKeyValueStore,
    PreferencesStore,
    TokenStore,
)

NOW = 1_700_000_000.0


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def tokens(kv):
    return TokenStore(kv, clock=lambda: NOW)


# ---------------------------------------------------------------------------
# Credential
# ---------------------------------------------------------------------------

class TestCredential:
    def test_lifetime(self):
        credential = Credential(access_token="a", refresh_token="r", expires_at=int((NOW + 600) * 1000))
        assert credential.lifetime_seconds(NOW) == 600
        assert credential.seconds_until_refresh(NOW, 300) == 300

    def test_expiring_soon_boundary(self):
        credential = Credential(access_token="a", refresh_token="r", expires_at=int((NOW + 300) * 1000))
        assert credential.is_expiring_soon(NOW, 300)
        assert not credential.is_expiring_soon(NOW - 1, 300)

    def test_expired_has_no_wait(self):
        credential = Credential(access_token="a", refresh_token="r", expires_at=int((NOW - 10) * 1000))
        assert credential.seconds_until_refresh(NOW, 300) == 0


# ---------------------------------------------------------------------------
# TokenStore
# ---------------------------------------------------------------------------

class TestTokenStore:
    @pytest.mark.asyncio
    async def test_save_from_response_anchors_expiry(self, tokens, kv):
        credential = await tokens.save_from_response("at", "rt", 3600)
        assert credential.expires_at == 1_700_003_600_000
        assert kv.data == {
            ACCESS_TOKEN_KEY: "at",
            REFRESH_TOKEN_KEY: "rt",
            TOKEN_EXPIRY_KEY: "1700003600000",
        }
        assert await tokens.load() == credential

    @pytest.mark.asyncio
    async def test_partial_credential_is_absent(self, tokens, kv):
        kv.data.update({ACCESS_TOKEN_KEY: "at", TOKEN_EXPIRY_KEY: "1"})
        assert await tokens.load() is None

    @pytest.mark.asyncio
    async def test_malformed_expiry_is_absent(self, tokens, kv):
        kv.data.update({ACCESS_TOKEN_KEY: "at", REFRESH_TOKEN_KEY: "rt", TOKEN_EXPIRY_KEY: "soon"})
        assert await tokens.load() is None

    @pytest.mark.asyncio
    async def test_clear_removes_only_credential(self, tokens, kv):
        await tokens.save_from_response("at", "rt", 3600)
        await tokens.save_handshake(HandshakeState(code_verifier="v", state="s"))
        await kv.set(SORT_RULES_KEY, "title")

        await tokens.clear()

        assert await tokens.load() is None
        assert await tokens.load_handshake() == HandshakeState(code_verifier="v", state="s")
        assert await kv.get(SORT_RULES_KEY) == "title"

    @pytest.mark.asyncio
    async def test_handshake_round_trip(self, tokens):
        assert await tokens.load_handshake() is None
        await tokens.save_handshake(HandshakeState(code_verifier="v", state="s"))
        assert (await tokens.load_handshake()).state == "s"
        await tokens.clear_handshake()
        assert await tokens.load_handshake() is None

    @pytest.mark.asyncio
    async def test_clear_all_keeps_preferences(self, tokens, kv):
        await tokens.save_from_response("at", "rt", 3600)
        await tokens.save_handshake(HandshakeState(code_verifier="v", state="s"))
        await kv.set(SORT_RULES_KEY, "title")

        await tokens.clear_all()

        assert kv.data == {SORT_RULES_KEY: "title"}


# ---------------------------------------------------------------------------
# PreferencesStore
# ---------------------------------------------------------------------------

class TestPreferencesStore:
    @pytest.mark.asyncio
    async def test_default_sort_rules(self, kv):
        rules = await PreferencesStore(kv).load_sort_rules("artist release_date/desc")
        assert rules == [
            SortRule(key=SortKey.ARTIST),
            SortRule(key=SortKey.RELEASE_DATE, order=SortOrder.DESC),
        ]

    @pytest.mark.asyncio
    async def test_sort_rules_saved_canonically(self, kv):
        prefs = PreferencesStore(kv)
        await prefs.save_sort_rules([SortRule(key=SortKey.TITLE, order=SortOrder.DESC), SortRule(key=SortKey.ALBUM)])
        assert kv.data[SORT_RULES_KEY] == "title/desc album"
        assert len(await prefs.load_sort_rules("artist")) == 2

    @pytest.mark.asyncio
    async def test_invalid_stored_rules_yield_empty(self, kv):
        kv.data[SORT_RULES_KEY] = "bogus"
        assert await PreferencesStore(kv).load_sort_rules("artist") == []

    @pytest.mark.asyncio
    async def test_shuffle_config_default_and_round_trip(self, kv):
        prefs = PreferencesStore(kv)
        default = await prefs.load_shuffle_config()
        assert default.weighted is ShuffleWeight.RANDOM
        assert default.smart == SmartSeparation(artist=True, album=False)

        config = ShuffleConfig(weighted=ShuffleWeight.POPULARITY_LOW, smart=SmartSeparation(album=True))
        await prefs.save_shuffle_config(config)
        assert await prefs.load_shuffle_config() == config

    @pytest.mark.asyncio
    async def test_invalid_shuffle_config_falls_back(self, kv):
        kv.data[SHUFFLE_CONFIG_KEY] = '{"weighted": "loudest"}'
        config = await PreferencesStore(kv).load_shuffle_config()
        assert config.smart.artist is True

    @pytest.mark.asyncio
    async def test_mode(self, kv):
        prefs = PreferencesStore(kv)
        assert await prefs.load_mode() is ReorderMode.SORT
        await prefs.save_mode(ReorderMode.SHUFFLE)
        assert await prefs.load_mode() is ReorderMode.SHUFFLE

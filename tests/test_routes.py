"""End-to-end tests for the auth and playlist routes (TestClient + temp DB)."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from reorder.models import PlaylistEntry, Track
from sortify.main import app
from sortify.spotify_client import SpotifyAuthClient, SpotifyPlaylistStore, TokenResponse


@pytest.fixture(autouse=True)
def _setup_env(monkeypatch, tmp_path):
    """Provide env vars so Settings can load."""
    monkeypatch.setenv("DB_PATH", str(tmp_path / "test.db"))
    monkeypatch.setenv("SPOTIFY_CLIENT_ID", "test_client_id")
    monkeypatch.setenv("SECRET_KEY", "test_secret")
    from sortify.config import get_settings
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def mock_exchange():
    with patch.object(
        SpotifyAuthClient,
        "exchange_code",
        new_callable=AsyncMock,
        return_value=TokenResponse(access_token="at", refresh_token="rt", expires_in=3600),
    ) as mock:
        yield mock


def _login(client) -> str:
    response = client.get("/login", follow_redirects=False)
    assert response.status_code == 307
    return parse_qs(urlsplit(response.headers["location"]).query)["state"][0]


def _log_in_fully(client) -> None:
    state = _login(client)
    response = client.get(f"/callback?code=abc&state={state}", follow_redirects=False)
    assert response.status_code == 303


# ------------------------------------------------------------------
# Auth
# ------------------------------------------------------------------

def test_root_unauthenticated(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {
        "authenticated": False,
        "auth_error": None,
        "is_loading": False,
        "state": "unauthenticated",
    }


def test_login_redirects_to_spotify(client):
    response = client.get("/login", follow_redirects=False)
    assert response.status_code == 307
    location = response.headers["location"]
    assert location.startswith("https://accounts.spotify.com/authorize")
    query = parse_qs(urlsplit(location).query)
    assert query["client_id"] == ["test_client_id"]
    assert query["code_challenge_method"] == ["S256"]
    assert "code_challenge" in query


def test_login_without_client_id(client, monkeypatch):
    monkeypatch.setenv("SPOTIFY_CLIENT_ID", "")
    from sortify.config import get_settings
    get_settings.cache_clear()

    response = client.get("/login", follow_redirects=False)
    assert response.status_code == 500


def test_callback_provider_error(client, mock_exchange):
    _login(client)
    response = client.get("/callback?error=access_denied", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/"

    status = client.get("/").json()
    assert status["authenticated"] is False
    assert status["auth_error"] == "access_denied"
    mock_exchange.assert_not_called()


def test_callback_wrong_state(client, mock_exchange):
    _login(client)
    client.get("/callback?code=abc&state=wrong", follow_redirects=False)

    status = client.get("/").json()
    assert status["auth_error"] == "state_mismatch"
    mock_exchange.assert_not_called()


def test_callback_success(client, mock_exchange):
    _log_in_fully(client)

    status = client.get("/").json()
    assert status["authenticated"] is True
    assert status["auth_error"] is None
    mock_exchange.assert_awaited_once()
    assert mock_exchange.call_args.args[0] == "abc"


def test_logout(client, mock_exchange):
    _log_in_fully(client)
    response = client.get("/logout", follow_redirects=False)
    assert response.status_code == 307

    assert client.get("/").json()["authenticated"] is False


# ------------------------------------------------------------------
# Playlists
# ------------------------------------------------------------------

def test_playlists_require_login(client):
    response = client.get("/playlists")
    assert response.status_code == 401
    assert client.post("/run").status_code == 401


def test_playlists_toggle_and_run(client, mock_exchange):
    _log_in_fully(client)
    playlists = [PlaylistEntry(id="p1", name="Road Trip"), PlaylistEntry(id="p2", name="Gym")]
    tracks = [
        Track(id="b", uri="spotify:track:b", name="B"),
        Track(id="a", uri="spotify:track:a", name="A"),
    ]

    with (
        patch.object(SpotifyPlaylistStore, "list_owned_playlists", new_callable=AsyncMock, return_value=playlists),
        patch.object(SpotifyPlaylistStore, "get_tracks", new_callable=AsyncMock, return_value=tracks),
        patch.object(SpotifyPlaylistStore, "replace_tracks", new_callable=AsyncMock, return_value=1) as mock_replace,
    ):
        data = client.get("/playlists").json()
        assert [p["id"] for p in data["playlists"]] == ["p1", "p2"]

        assert client.put("/settings/sort-rules", json={"rules": "title"}).status_code == 200
        assert client.post("/playlists/p1/toggle").json()["selected"] is True
        assert client.post("/playlists/missing/toggle").status_code == 404

        data = client.post("/run").json()

    statuses = {p["id"]: p["status"] for p in data["playlists"]}
    assert statuses == {"p1": "sorted", "p2": "ready"}
    mock_replace.assert_awaited_once_with("p1", ["spotify:track:a", "spotify:track:b"])


def test_toggle_all_with_search(client, mock_exchange):
    _log_in_fully(client)
    playlists = [PlaylistEntry(id="p1", name="Road Trip"), PlaylistEntry(id="p2", name="Gym")]

    with patch.object(SpotifyPlaylistStore, "list_owned_playlists", new_callable=AsyncMock, return_value=playlists):
        data = client.post("/playlists/toggle-all", params={"q": "road"}).json()

    assert [p["selected"] for p in data["playlists"]] == [True, False]


# ------------------------------------------------------------------
# Settings
# ------------------------------------------------------------------

def test_sort_rules_defaults_and_update(client):
    assert client.get("/settings/sort-rules").json() == {"rules": "artist release_date album title"}

    response = client.put("/settings/sort-rules", json={"rules": "title/asc artist/desc"})
    assert response.status_code == 200
    assert response.json() == {"rules": "title artist/desc"}
    assert client.get("/settings/sort-rules").json() == {"rules": "title artist/desc"}


def test_sort_rules_rejects_invalid(client):
    response = client.put("/settings/sort-rules", json={"rules": "tempo"})
    assert response.status_code == 400
    assert "Invalid sort key" in response.json()["detail"]


def test_shuffle_and_mode_settings(client):
    assert client.get("/settings/shuffle").json() == {
        "weighted": "random",
        "smart": {"artist": True, "album": False},
    }
    body = {"weighted": "popularity-high", "smart": {"artist": False, "album": True}}
    assert client.put("/settings/shuffle", json=body).json() == body
    assert client.get("/settings/shuffle").json() == body

    assert client.get("/settings/mode").json() == {"mode": "sort"}
    assert client.put("/settings/mode", json={"mode": "shuffle"}).json() == {"mode": "shuffle"}
    assert client.put("/settings/mode", json={"mode": "bounce"}).status_code == 422

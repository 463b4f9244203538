"""Exception hierarchy for authentication and playlist write-back."""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

class AuthError(Exception):
    """Base for failures that end an authentication attempt.

    ``code`` is a stable identifier; ``str(exc)`` is the readable message.
    """

    code = "auth_error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)


class ProviderError(AuthError):
    """The provider redirected back with an explicit ``error`` value."""

    def __init__(self, error: str):
        self.code = error
        super().__init__(error)


class StateMismatchError(AuthError):
    """Callback ``state`` does not match the stored handshake state (CSRF)."""

    code = "state_mismatch"


class ExchangeError(AuthError):
    code = "token_exchange_failed"


class RefreshError(AuthError):
    code = "token_refresh_failed"


class NotAuthenticatedError(AuthError):
    code = "not_authenticated"


# ---------------------------------------------------------------------------
# Playlist store
# ---------------------------------------------------------------------------

class PlaylistStoreError(Exception):
    """Base for failures reported by a playlist store."""


class SpotifyAPIError(PlaylistStoreError):
    """Raised when a Spotify API request fails after all retries."""

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Spotify API error {status_code}: {detail}")


class WriteBackError(PlaylistStoreError):
    """Writing the new order of one playlist failed."""

    def __init__(self, playlist_id: str, detail: str = ""):
        self.playlist_id = playlist_id
        self.detail = detail
        super().__init__(f"Failed to write playlist {playlist_id}: {detail}")

"""Spotify OAuth 2.0 with PKCE — no client secret needed.

Flow:
  1. ``begin_login``  → handshake (verifier + state) stored, authorize URL returned
  2. ``mount(url)``   → callback handled, or a stored credential restored
  3. Tokens stored through ``TokenStore`` (one profile's key-value rows)
  4. ``RefreshScheduler`` keeps the access token fresh until ``close``

``mount`` runs once per session.  Every state change is gated on the
session's cancel token, so a session closed mid-flight never updates
state or arms a refresh.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from enum import Enum
from typing import Any, Callable, Optional

from sortify.callback import get_callback_params, strip_callback_params
from sortify.cancel import CancelToken
from sortify.errors import (
    ExchangeError,
    NotAuthenticatedError,
    ProviderError,
    RefreshError,
    StateMismatchError,
)
from sortify.pkce import build_authorize_url, generate_pkce_data
from sortify.refresh import REFRESH_BUFFER_SECONDS, RefreshScheduler
from sortify.spotify_client import SpotifyAuthClient
from sortify.storage import Clock, Credential, HandshakeState, TokenStore

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    IDLE = "idle"
    CHECKING_CALLBACK = "checking_callback"
    PROVIDER_ERROR = "provider_error"
    EXCHANGING_CODE = "exchanging_code"
    RESTORING_TOKEN = "restoring_token"
    REFRESHING = "refreshing"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class AuthSession:
    """Authorize → callback → exchange → restore → refresh state machine."""

    def __init__(
        self,
        store: TokenStore,
        auth_client: SpotifyAuthClient,
        *,
        buffer_seconds: float = REFRESH_BUFFER_SECONDS,
        clock: Clock = time.time,
    ):
        self.store = store
        self.auth_client = auth_client
        self.buffer_seconds = buffer_seconds
        self._clock = clock

        self.state = AuthState.IDLE
        self.auth_error: Optional[str] = None
        self.is_loading = True
        self._credential: Optional[Credential] = None
        self._mounted = False
        self._cancel = CancelToken()
        self._refresh_lock = asyncio.Lock()

        self.scheduler = RefreshScheduler(
            self._refresh_credential,
            clear=store.clear,
            on_refreshed=self._on_refreshed,
            on_error=self._on_refresh_error,
            buffer_seconds=buffer_seconds,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self._credential is not None and self.state is AuthState.AUTHENTICATED

    @property
    def closed(self) -> bool:
        return self._cancel.cancelled

    def snapshot(self) -> dict[str, Any]:
        """UI-facing view; never includes tokens."""
        return {
            "authenticated": self.is_authenticated,
            "auth_error": self.auth_error,
            "is_loading": self.is_loading,
            "state": self.state.value,
        }

    def _set(self, state: AuthState, *, credential: Any = ..., error: Any = ...) -> bool:
        """Apply a transition unless the session was torn down."""
        if self._cancel.cancelled:
            logger.debug("Dropping %s transition after close", state.value)
            return False
        self.state = state
        if credential is not ...:
            self._credential = credential
        if error is not ...:
            self.auth_error = error
        logger.info("Auth state → %s", state.value)
        return True

    def _finish(self, state: AuthState, **changes: Any) -> AuthState:
        if self._set(state, **changes):
            self.is_loading = False
        return self.state

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def begin_login(self) -> str:
        """Store a fresh PKCE handshake and return the provider authorize URL."""
        pkce = generate_pkce_data()
        await self.store.save_handshake(
            HandshakeState(code_verifier=pkce.code_verifier, state=pkce.state)
        )
        return build_authorize_url(
            self.auth_client.client_id,
            self.auth_client.redirect_uri,
            pkce.code_challenge,
            pkce.state,
        )

    # ------------------------------------------------------------------
    # Mount
    # ------------------------------------------------------------------

    async def mount(
        self,
        url: str,
        replace_url: Optional[Callable[[str], None]] = None,
    ) -> AuthState:
        """Resolve the session from the current navigation *url*.

        *replace_url* receives the URL with callback parameters stripped;
        it is called exactly once when they were present, before any
        network call.
        """
        if self._mounted:
            return self.state
        self._mounted = True

        if not self._set(AuthState.CHECKING_CALLBACK):
            return self.state
        params = get_callback_params(url)
        if not params.present:
            return await self._restore()

        if replace_url is not None:
            replace_url(strip_callback_params(url))

        if params.error:
            await self.store.clear()
            logger.warning("Provider returned error: %s", params.error)
            return self._finish(
                AuthState.UNAUTHENTICATED,
                credential=None,
                error=str(ProviderError(params.error)),
            )

        return await self._handle_code(params.code, params.state)

    async def _handle_code(self, code: str, state: Optional[str]) -> AuthState:
        handshake = await self.store.load_handshake()
        await self.store.clear_handshake()

        if handshake is None or state is None or not secrets.compare_digest(state, handshake.state):
            await self.store.clear()
            logger.warning("OAuth state mismatch; refusing token exchange")
            return self._finish(
                AuthState.UNAUTHENTICATED,
                credential=None,
                error=StateMismatchError.code,
            )

        if not self._set(AuthState.EXCHANGING_CODE):
            return self.state
        try:
            response = await self.auth_client.exchange_code(code, handshake.code_verifier)
        except ExchangeError as exc:
            await self.store.clear()
            return self._finish(
                AuthState.UNAUTHENTICATED,
                credential=None,
                error=str(exc) or ExchangeError.code,
            )

        credential = await self.store.save_from_response(
            response.access_token,
            response.refresh_token or "",
            response.expires_in,
        )
        if self._set(AuthState.AUTHENTICATED, credential=credential, error=None):
            self.is_loading = False
            self.scheduler.schedule(response.expires_in)
        return self.state

    async def _restore(self) -> AuthState:
        if not self._set(AuthState.RESTORING_TOKEN):
            return self.state
        credential = await self.store.load()
        if credential is None:
            return self._finish(AuthState.UNAUTHENTICATED)

        now = self._clock()
        if not credential.is_expiring_soon(now, self.buffer_seconds):
            logger.info(
                "Restored stored credential; refresh due in %.0fs",
                credential.seconds_until_refresh(now, self.buffer_seconds),
            )
            if self._set(AuthState.AUTHENTICATED, credential=credential):
                self.is_loading = False
                self.scheduler.schedule(credential.lifetime_seconds(now))
            return self.state

        if not self._set(AuthState.REFRESHING):
            return self.state
        try:
            refreshed = await self._refresh_credential()
        except RefreshError as exc:
            logger.info("Stored credential could not be refreshed: %s", exc)
            await self.store.clear()
            return self._finish(AuthState.UNAUTHENTICATED, credential=None)

        if self._set(AuthState.AUTHENTICATED, credential=refreshed):
            self.is_loading = False
            self.scheduler.schedule(refreshed.lifetime_seconds(self._clock()))
        return self.state

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def _refresh_credential(self) -> Credential:
        """Refresh the stored credential and persist the replacement.

        Serialised by a lock; a caller that waited while another refresh
        completed gets that fresh credential instead of refreshing again.
        Raises ``RefreshError``; the stored credential is left untouched on
        failure.
        """
        async with self._refresh_lock:
            current = await self.store.load()
            if current is None:
                raise RefreshError("No refresh token — please log in")
            if not current.is_expiring_soon(self._clock(), self.buffer_seconds):
                return current
            response = await self.auth_client.refresh(current.refresh_token)
            return await self.store.save_from_response(
                response.access_token,
                response.refresh_token or current.refresh_token,
                response.expires_in,
            )

    def _on_refreshed(self, credential: Credential) -> None:
        self._set(AuthState.AUTHENTICATED, credential=credential)

    def _on_refresh_error(self, exc: Exception) -> None:
        # Silent drop to the logged-out view; no error message is surfaced.
        self._set(AuthState.UNAUTHENTICATED, credential=None)

    async def access_token(self) -> str:
        """Return a valid access token, refreshing first if close to expiry.

        Raises ``NotAuthenticatedError`` when there is no usable credential.
        """
        credential = self._credential
        if credential is None or self.closed:
            raise NotAuthenticatedError("Not logged in")

        if credential.is_expiring_soon(self._clock(), self.buffer_seconds):
            try:
                credential = await self._refresh_credential()
            except RefreshError as exc:
                self.scheduler.cancel()
                await self.store.clear()
                self._set(AuthState.UNAUTHENTICATED, credential=None)
                raise NotAuthenticatedError(str(exc)) from exc
            if not self._set(AuthState.AUTHENTICATED, credential=credential):
                raise NotAuthenticatedError("Session closed")
            self.scheduler.schedule(credential.lifetime_seconds(self._clock()))

        return credential.access_token

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def logout(self) -> None:
        """Forget the credential and any pending handshake."""
        self.scheduler.cancel()
        await self.store.clear_all()
        self._set(AuthState.UNAUTHENTICATED, credential=None, error=None)

    def close(self) -> None:
        """Tear down: later async steps become no-ops and no refresh fires."""
        self._cancel.cancel()
        self.scheduler.cancel()

"""PKCE (RFC 7636) helpers for the authorization-code flow."""

from __future__ import annotations

import hashlib
import secrets
import string
from base64 import urlsafe_b64encode
from typing import NamedTuple
from urllib.parse import urlencode

from sortify.config import SCOPES, SPOTIFY_AUTH_URL

_ALPHABET = string.ascii_letters + string.digits

VERIFIER_LENGTH = 64
STATE_LENGTH = 16


class PKCEData(NamedTuple):
    code_verifier: str
    code_challenge: str
    state: str


def generate_random_string(length: int) -> str:
    """Random ``[A-Za-z0-9]`` string from the OS CSPRNG."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def generate_code_challenge(verifier: str) -> str:
    """S256 code challenge = BASE64URL(SHA256(verifier))."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce_data() -> PKCEData:
    verifier = generate_random_string(VERIFIER_LENGTH)
    return PKCEData(
        code_verifier=verifier,
        code_challenge=generate_code_challenge(verifier),
        state=generate_random_string(STATE_LENGTH),
    )


def build_authorize_url(
    client_id: str,
    redirect_uri: str,
    code_challenge: str,
    state: str,
    *,
    scope: str = SCOPES,
    auth_url: str = SPOTIFY_AUTH_URL,
) -> str:
    params = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "code_challenge_method": "S256",
        "code_challenge": code_challenge,
        "state": state,
        "scope": scope,
    }
    return f"{auth_url}?{urlencode(params)}"

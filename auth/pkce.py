from __future__ import annotations

import base64
import hashlib
import secrets

_TOKEN_BYTES = 32


def _urlsafe_b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def generate_code_verifier() -> str:
    return _urlsafe_b64(secrets.token_bytes(_TOKEN_BYTES))


def generate_code_challenge(verifier: str) -> str:
    """S256 challenge over the verifier's string form, not its raw bytes."""
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return _urlsafe_b64(digest)


def generate_state() -> str:
    return _urlsafe_b64(secrets.token_bytes(_TOKEN_BYTES))

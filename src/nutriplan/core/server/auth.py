"""HMAC-signed bearer tokens for the plan API.

Token format: ``<user_id b64url>.<expires_at unix seconds>.<signature b64url>``
where the signature is HMAC-SHA256 over the first two segments.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import time
from typing import Callable

from starlette.requests import Request

from nutriplan.domains.nutrition.errors import AuthExpiredError


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64url_decode(data: str) -> bytes:
    pad = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode((data + pad).encode("ascii"))


class TokenSigner:
    """Issues and verifies bearer tokens.

    Usage::

        signer = TokenSigner(settings.auth_secret, ttl_seconds=3600)
        token = signer.issue_token("user-1")
        signer.verify(token)  # -> "user-1"
    """

    def __init__(
        self,
        secret: str,
        *,
        ttl_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret.encode("utf-8")
        self._ttl = ttl_seconds
        self._clock = clock

    def _sign(self, signing_input: str) -> str:
        digest = hmac.new(self._secret, signing_input.encode("ascii"), hashlib.sha256).digest()
        return _b64url_encode(digest)

    def issue_token(self, user_id: str, *, ttl_seconds: int | None = None) -> str:
        expires_at = int(self._clock()) + (self._ttl if ttl_seconds is None else ttl_seconds)
        signing_input = f"{_b64url_encode(user_id.encode('utf-8'))}.{expires_at}"
        return f"{signing_input}.{self._sign(signing_input)}"

    def verify(self, token: str) -> str:
        """Return the token's user id.

        Raises:
            AuthExpiredError: If the token is malformed, forged or expired.
        """
        parts = token.split(".")
        if len(parts) != 3 or not token.isascii():
            raise AuthExpiredError("Invalid session token. Please sign in again.")
        user_b64, expires_s, signature = parts
        expected = self._sign(f"{user_b64}.{expires_s}")
        if not hmac.compare_digest(expected, signature):
            raise AuthExpiredError("Invalid session token. Please sign in again.")
        try:
            expires_at = int(expires_s)
            user_id = _b64url_decode(user_b64).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            raise AuthExpiredError("Invalid session token. Please sign in again.") from exc
        if expires_at <= int(self._clock()):
            raise AuthExpiredError()
        return user_id


def bearer_token(request: Request) -> str | None:
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        token = auth.split(" ", 1)[1].strip()
        return token or None
    return None


def authenticate(request: Request, signer: TokenSigner) -> str:
    """Resolve the calling user's id from the Authorization header."""
    token = bearer_token(request)
    if token is None:
        raise AuthExpiredError("Not authenticated. Please sign in.")
    return signer.verify(token)

"""Tests for HMAC bearer tokens."""

from __future__ import annotations

import pytest
from starlette.requests import Request

from nutriplan.core.server.auth import TokenSigner, authenticate, bearer_token
from nutriplan.domains.nutrition.errors import AuthExpiredError


class _Clock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _request(headers: dict[str, str]) -> Request:
    raw = [(k.lower().encode(), v.encode("latin-1")) for k, v in headers.items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


@pytest.fixture
def clock() -> _Clock:
    return _Clock(1_770_000_000.0)


@pytest.fixture
def signer(clock) -> TokenSigner:
    return TokenSigner("test-secret", ttl_seconds=60, clock=clock)


class TestTokens:
    def test_issue_and_verify(self, signer):
        assert signer.verify(signer.issue_token("user-1")) == "user-1"

    def test_unicode_user_id(self, signer):
        assert signer.verify(signer.issue_token("usér/42")) == "usér/42"

    def test_expired(self, signer, clock):
        token = signer.issue_token("user-1")
        clock.now += 61
        with pytest.raises(AuthExpiredError) as excinfo:
            signer.verify(token)
        assert excinfo.value.status_code == 401

    def test_custom_ttl(self, signer, clock):
        token = signer.issue_token("user-1", ttl_seconds=600)
        clock.now += 300
        assert signer.verify(token) == "user-1"

    def test_forged_signature(self, signer):
        other = TokenSigner("another-secret")
        with pytest.raises(AuthExpiredError, match="Invalid session token"):
            signer.verify(other.issue_token("user-1"))

    def test_tampered_expiry(self, signer):
        user, expires, sig = signer.issue_token("user-1").split(".")
        with pytest.raises(AuthExpiredError):
            signer.verify(f"{user}.{int(expires) + 10_000}.{sig}")

    @pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c.d", "é.1.x"])
    def test_malformed(self, signer, token):
        with pytest.raises(AuthExpiredError):
            signer.verify(token)

    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            TokenSigner("")


class TestRequestAuth:
    def test_bearer_token_parsed(self):
        assert bearer_token(_request({"Authorization": "Bearer abc.def"})) == "abc.def"

    def test_scheme_case_insensitive(self):
        assert bearer_token(_request({"Authorization": "bearer xyz"})) == "xyz"

    def test_missing_header(self):
        assert bearer_token(_request({})) is None

    def test_other_scheme(self):
        assert bearer_token(_request({"Authorization": "Basic dXNlcjpwYXNz"})) is None

    def test_authenticate(self, signer):
        request = _request({"Authorization": f"Bearer {signer.issue_token('user-7')}"})
        assert authenticate(request, signer) == "user-7"

    def test_authenticate_without_header(self, signer):
        with pytest.raises(AuthExpiredError, match="Not authenticated"):
            authenticate(_request({}), signer)

    def test_authenticate_non_ascii_token(self, signer):
        with pytest.raises(AuthExpiredError, match="Invalid session token"):
            authenticate(_request({"Authorization": "Bearer é.1.x"}), signer)

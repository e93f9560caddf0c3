"""Unit tests for session token issuing and verification."""

import base64
import json

import pytest

from showroom.config import SESSION_TTL_EXTENDED_SECONDS
from showroom.service.tokens import Identity, TokenCodec

SECRET = "unit-test-signing-secret-that-is-long-enough"


@pytest.fixture
def identity():
    return Identity(user_id="user-1", username="admin", role="admin")


@pytest.fixture
def codec(clock):
    return TokenCodec(SECRET, default_ttl_seconds=604800, clock=clock)


def _segment(data: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")


class TestIssueAndVerify:
    def test_round_trip_returns_issued_claims(self, codec, identity, clock):
        token = codec.issue(identity)
        claims = codec.verify(token)

        assert claims is not None
        assert claims.identity == identity
        assert claims.issued_at == int(clock.now)
        assert claims.expires_at == int(clock.now) + 604800

    def test_token_valid_until_just_before_expiry(self, codec, identity, clock):
        token = codec.issue(identity)
        clock.advance(604800 - 1)
        assert codec.verify(token) is not None

    def test_token_rejected_at_expiry(self, codec, identity, clock):
        token = codec.issue(identity)
        clock.advance(604800)
        assert codec.verify(token) is None

    def test_extended_ttl(self, codec, identity, clock):
        token = codec.issue(identity, extended=True)
        claims = codec.verify(token)
        assert claims.expires_at - claims.issued_at == SESSION_TTL_EXTENDED_SECONDS

    def test_token_from_other_secret_rejected(self, identity, clock):
        other = TokenCodec("another-secret-value-of-sufficient-size", default_ttl_seconds=60, clock=clock)
        token = other.issue(identity)
        codec = TokenCodec(SECRET, default_ttl_seconds=60, clock=clock)
        assert codec.verify(token) is None

    def test_empty_secret_refused(self):
        with pytest.raises(ValueError):
            TokenCodec("", default_ttl_seconds=60)


class TestTampering:
    def test_modified_payload_rejected(self, codec, identity):
        header, _, signature = codec.issue(identity).split(".")
        forged = _segment({"sub": "user-1", "username": "admin", "role": "admin", "exp": 9999999999})
        assert codec.verify(f"{header}.{forged}.{signature}") is None

    def test_alg_none_rejected(self, codec, identity):
        _, payload, signature = codec.issue(identity).split(".")
        header = _segment({"alg": "none", "typ": "JWT"})
        assert codec.verify(f"{header}.{payload}.{signature}") is None

    @pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c.d", "!!!.???.###"])
    def test_malformed_tokens_rejected(self, codec, token):
        assert codec.verify(token) is None

    def test_non_ascii_signature_rejected(self, codec, identity):
        header, payload, _ = codec.issue(identity).split(".")
        assert codec.verify(f"{header}.{payload}.sigé") is None

    def test_missing_claims_rejected(self, codec):
        token = codec._encode({"sub": "user-1", "exp": 9999999999})
        assert codec.verify(token) is None

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from showroom.config import SESSION_TTL_EXTENDED_SECONDS, Settings
from showroom.logging import get_logger

logger = get_logger(__name__)

_ALGORITHM = "HS256"


@dataclass(frozen=True)
class Identity:
    """Verified identity handed to protected handlers."""

    user_id: str
    username: str
    role: str


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    username: str
    role: str
    issued_at: int
    expires_at: int

    @property
    def identity(self) -> Identity:
        return Identity(user_id=self.user_id, username=self.username, role=self.role)


class TokenCodec:
    """Signs and verifies HS256 session tokens.

    Tokens are self-contained: nothing is persisted server-side, so validity
    is decided by the signature and the ``exp`` claim alone.
    """

    def __init__(
        self,
        secret: str,
        *,
        default_ttl_seconds: int,
        extended_ttl_seconds: int = SESSION_TTL_EXTENDED_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("token signing secret must not be empty")
        self._secret = secret.encode()
        self.default_ttl_seconds = default_ttl_seconds
        self.extended_ttl_seconds = extended_ttl_seconds
        self._clock = clock

    @classmethod
    def from_settings(
        cls, settings: Settings, *, clock: Callable[[], float] = time.time
    ) -> "TokenCodec":
        return cls(
            settings.jwt_secret or "",
            default_ttl_seconds=settings.session_ttl_seconds,
            clock=clock,
        )

    def ttl_seconds(self, *, extended: bool = False) -> int:
        return self.extended_ttl_seconds if extended else self.default_ttl_seconds

    def issue(self, identity: Identity, *, extended: bool = False) -> str:
        now = int(self._clock())
        payload = {
            "sub": identity.user_id,
            "username": identity.username,
            "role": identity.role,
            "iat": now,
            "exp": now + self.ttl_seconds(extended=extended),
        }
        return self._encode(payload)

    def verify(self, token: str) -> Optional[SessionClaims]:
        """Return the claims of a valid, unexpired token, or None."""
        payload = self._decode(token)
        if payload is None:
            return None
        user_id = payload.get("sub")
        username = payload.get("username")
        role = payload.get("role")
        if not all(isinstance(value, str) for value in (user_id, username, role)):
            logger.warning("token_claims_invalid")
            return None
        try:
            issued_at = int(payload.get("iat", 0))
            expires_at = int(payload["exp"])
        except (KeyError, TypeError, ValueError):
            return None
        if expires_at <= self._clock():
            return None
        return SessionClaims(
            user_id=user_id,
            username=username,
            role=role,
            issued_at=issued_at,
            expires_at=expires_at,
        )

    def _encode_segment(self, data: bytes) -> str:
        return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")

    def _decode_segment(self, segment: str) -> bytes:
        padding = "=" * ((4 - len(segment) % 4) % 4)
        return base64.urlsafe_b64decode(segment + padding)

    def _sign(self, signing_input: str) -> str:
        return self._encode_segment(
            hmac.new(self._secret, signing_input.encode(), hashlib.sha256).digest()
        )

    def _encode(self, payload: dict[str, Any]) -> str:
        header = {"alg": _ALGORITHM, "typ": "JWT"}
        header_enc = self._encode_segment(
            json.dumps(header, separators=(",", ":")).encode()
        )
        payload_enc = self._encode_segment(
            json.dumps(payload, separators=(",", ":")).encode()
        )
        signing_input = f"{header_enc}.{payload_enc}"
        return f"{signing_input}.{self._sign(signing_input)}"

    def _decode(self, token: str) -> Optional[dict[str, Any]]:
        if not isinstance(token, str):
            return None
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            return None

        # Reject anything but HS256 to rule out algorithm confusion
        try:
            header = json.loads(self._decode_segment(header_b64))
        except (ValueError, UnicodeDecodeError):
            logger.warning("token_header_decode_failed")
            return None
        if not isinstance(header, dict) or header.get("alg") != _ALGORITHM:
            logger.warning(
                "token_invalid_algorithm",
                alg=header.get("alg") if isinstance(header, dict) else None,
            )
            return None

        expected_sig = self._sign(f"{header_b64}.{payload_b64}")
        if not hmac.compare_digest(expected_sig.encode(), sig_b64.encode()):
            return None
        try:
            payload = json.loads(self._decode_segment(payload_b64))
        except (ValueError, UnicodeDecodeError) as exc:
            logger.warning("token_payload_decode_failed", error=str(exc))
            return None
        if not isinstance(payload, dict):
            return None
        return payload

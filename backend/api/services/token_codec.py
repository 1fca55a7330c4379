"""Overlay capability tokens (HS256 JWT)"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import jwt
from jwt.utils import base64url_decode, base64url_encode

from core.exceptions import BadSignature, Expired, MalformedToken

logger = logging.getLogger(__name__)

MIN_TTL_SECONDS = 60


@dataclass(frozen=True)
class TokenClaims:
    """The only fields a verified token is trusted for."""

    subject: str
    issued_at: int
    expires_at: int


class TokenCodec:
    """Issue and verify stateless overlay tokens.

    A token is ``header.payload.signature`` signed with the server secret.
    Nothing is stored server-side: verification only needs the token bytes,
    the secret and the clock.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        clock: Callable[[], float] = time.time,
    ):
        if not secret_key:
            raise ValueError("Overlay secret cannot be empty")

        self.secret_key = secret_key
        self.algorithm = algorithm
        self._clock = clock

    def issue(self, subject: str, ttl_seconds: int) -> str:
        """Create a token for ``subject`` valid for ``ttl_seconds``"""
        if not subject:
            raise ValueError("Token subject cannot be empty")
        if ttl_seconds < MIN_TTL_SECONDS:
            raise ValueError(f"Token TTL must be at least {MIN_TTL_SECONDS}s")

        now = int(self._clock())
        payload = {
            "sub": subject,
            "iat": now,
            "exp": now + ttl_seconds,
        }

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        logger.debug(f"Overlay token issued for {subject} (ttl={ttl_seconds}s)")
        return token

    def verify(self, token: str) -> TokenClaims:
        """Verify signature then expiry; raise an ``Unauthorized`` subclass on failure"""
        parts = token.split(".") if token else []
        if len(parts) != 3 or not all(parts):
            raise MalformedToken("Token must have three non-empty parts")

        try:
            # Expiry is checked below against the injected clock
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_iat": False, "verify_nbf": False},
            )
        except jwt.InvalidSignatureError:
            raise BadSignature("Signature mismatch") from None
        except jwt.InvalidTokenError as e:
            # A three-part token whose segments do not decode was tampered with
            logger.debug(f"Undecodable token: {e}")
            raise BadSignature("Token segments do not decode") from None

        # Decoders ignore the spare bits of the last base64 char; require the canonical form
        signature = parts[2].encode("ascii", "replace")
        if base64url_encode(base64url_decode(signature)) != signature:
            raise BadSignature("Non-canonical signature encoding")

        exp = payload.get("exp")
        if not isinstance(exp, int | float) or exp < self._clock():
            raise Expired("Token expired")

        return TokenClaims(
            subject=str(payload.get("sub") or ""),
            issued_at=int(payload.get("iat") or 0),
            expires_at=int(exp),
        )

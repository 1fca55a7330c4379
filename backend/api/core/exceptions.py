"""Overlay service exceptions.

Routers translate these into coarse HTTP responses; none of their
messages are shown to overlay viewers.
"""


class OverlayError(Exception):
    """Base exception for the overlay service"""

    pass


# ============================================
# Authorization
# ============================================


class Unauthorized(OverlayError):
    """Missing, malformed, forged or expired capability token"""

    reason = "invalid"


class TokenMissing(Unauthorized):
    reason = "missing"


class MalformedToken(Unauthorized):
    reason = "format"


class BadSignature(Unauthorized):
    reason = "signature"


class Expired(Unauthorized):
    reason = "expired"


# ============================================
# Request limits
# ============================================


class RateLimited(OverlayError):
    """Too many requests for a channel in the current window"""

    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(f"Rate limited, retry after {retry_after}s")


# ============================================
# Collaborators
# ============================================


class GenerationUnavailable(OverlayError):
    """Text generation provider failed, timed out or returned nothing"""

    pass


class StoreUnavailable(OverlayError):
    """Keyed store could not serve the operation"""

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        super().__init__(message)

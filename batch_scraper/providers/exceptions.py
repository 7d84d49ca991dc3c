"""Fetcher exceptions."""

from enum import Enum
from typing import Optional


class FetchErrorKind(str, Enum):
    """Classification of a failed product fetch."""

    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    AUTH_FAILURE = "auth_failure"
    NETWORK = "network"
    PARSE = "parse"


# Kinds that are worth another attempt in a later batch
DEFAULT_RETRYABLE = frozenset({FetchErrorKind.RATE_LIMITED, FetchErrorKind.NETWORK})

# Kinds that are not specific to one ASIN and abort the whole job
SYSTEMIC_KINDS = frozenset({FetchErrorKind.AUTH_FAILURE})


class FetchError(Exception):
    """Raised by a Fetcher when one ASIN cannot be resolved.

    Attributes:
        kind: Failure classification.
        retryable: Whether a later attempt may succeed.
        systemic: Whether the failure affects every item (credentials,
            missing upstream configuration) rather than this ASIN alone.
    """

    def __init__(
        self,
        kind: FetchErrorKind,
        message: str = "",
        retryable: Optional[bool] = None,
        systemic: Optional[bool] = None,
    ):
        self.kind = kind
        self.systemic = kind in SYSTEMIC_KINDS if systemic is None else systemic
        if retryable is None:
            retryable = kind in DEFAULT_RETRYABLE
        # Systemic failures are never retried per item
        self.retryable = retryable and not self.systemic
        super().__init__(message or kind.value)

    def __repr__(self) -> str:
        return f"FetchError(kind={self.kind.value!r}, message={str(self)!r})"


class NotFoundError(FetchError):
    """Raised when the product page does not exist."""

    def __init__(self, message: str = "Product not found"):
        super().__init__(FetchErrorKind.NOT_FOUND, message)


class RateLimitedError(FetchError):
    """Raised when the upstream throttles or serves a bot check."""

    def __init__(self, message: str = "Rate limited"):
        super().__init__(FetchErrorKind.RATE_LIMITED, message)


class AuthFailureError(FetchError):
    """Raised when credentials or upstream configuration are invalid."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(FetchErrorKind.AUTH_FAILURE, message)


class NetworkError(FetchError):
    """Raised on transport failures and timeouts."""

    def __init__(self, message: str = "Network error"):
        super().__init__(FetchErrorKind.NETWORK, message)


class ParseError(FetchError):
    """Raised when a page was fetched but could not be understood."""

    def __init__(self, message: str = "Could not parse product page"):
        super().__init__(FetchErrorKind.PARSE, message)

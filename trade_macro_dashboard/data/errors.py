"""Classified errors and their presentation mapping.

Every failure the pipeline surfaces is a ``ClassifiedError`` carrying one
``ErrorKind``. Callers branch on ``err.kind``, never on exception class.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of failure kinds."""
    NETWORK = "NETWORK"  # offline or timed out
    CORS_BLOCKED = "CORS"
    RATE_LIMIT = "RATE_LIMIT"
    SERVER_ERROR = "SERVER_ERROR"
    CLIENT_ERROR = "CLIENT_ERROR"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    SCHEMA_DRIFT = "SCHEMA_DRIFT"
    QUERY_LIMIT_EXCEEDED = "QUERY_LIMIT"
    SINGULAR_MATRIX = "SINGULAR_MATRIX"


@dataclass(frozen=True)
class KindPolicy:
    """Recovery flags and presentation for one error kind."""

    recoverable: bool
    retryable: bool
    level: str  # info | warn | error
    template: str
    dismissible: bool = True


POLICIES: dict[ErrorKind, KindPolicy] = {
    ErrorKind.NETWORK: KindPolicy(
        True, True, "error",
        "You appear to be offline. Showing pre-fetched data.",
    ),
    ErrorKind.CORS_BLOCKED: KindPolicy(
        True, False, "warn",
        "Live refresh unavailable (CORS) for {source}. Displaying pre-fetched data.",
    ),
    ErrorKind.RATE_LIMIT: KindPolicy(
        True, True, "info",
        "Rate limited by {source}. Retrying...",
        dismissible=False,
    ),
    ErrorKind.SERVER_ERROR: KindPolicy(
        True, True, "warn",
        "Server error from {source}. Retrying...",
    ),
    ErrorKind.CLIENT_ERROR: KindPolicy(
        False, False, "error",
        "Request rejected by {source}. Check the query parameters.",
    ),
    ErrorKind.PAYLOAD_TOO_LARGE: KindPolicy(
        True, False, "info",
        "Request to {source} returned too much data. Auto-chunking...",
    ),
    ErrorKind.SCHEMA_DRIFT: KindPolicy(
        True, False, "warn",
        "Data schema changed for {source}. Raw data stored; display may be limited.",
    ),
    ErrorKind.QUERY_LIMIT_EXCEEDED: KindPolicy(
        True, False, "error",
        "Query to {source} is too broad and could not be split into legal requests.",
    ),
    ErrorKind.SINGULAR_MATRIX: KindPolicy(
        False, False, "error",
        "Regression failed (singular matrix).",
    ),
}


class ClassifiedError(Exception):
    """A failure tagged with its kind and recovery metadata."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        source: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.source = source
        self.details = dict(details or {})
        self.timestamp = datetime.now(timezone.utc).isoformat()

    @property
    def policy(self) -> KindPolicy:
        return POLICIES[self.kind]

    @property
    def recoverable(self) -> bool:
        return self.policy.recoverable

    @property
    def retryable(self) -> bool:
        return self.policy.retryable

    @property
    def ui_message(self) -> str:
        return self.policy.template.format(source=self.source or "upstream")

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "source": self.source,
            "recoverable": self.recoverable,
            "retryable": self.retryable,
            "details": dict(self.details),
            "timestamp": self.timestamp,
        }

    def __reduce__(self):
        # Keeps copy/pickle working across the forecast worker boundary
        return (self.__class__, (self.kind, self.message, self.source, self.details))

    def __repr__(self) -> str:
        return f"ClassifiedError({self.kind.value}, {self.message!r})"

    # =========================================================================
    # Constructors for the common kinds
    # =========================================================================

    @classmethod
    def rate_limit(cls, source: str, retry_after: float | None) -> "ClassifiedError":
        return cls(
            ErrorKind.RATE_LIMIT,
            f"Rate limited by {source}",
            source,
            {"retry_after": retry_after},
        )

    @classmethod
    def server_error(cls, source: str, status: int) -> "ClassifiedError":
        return cls(
            ErrorKind.SERVER_ERROR,
            f"Server error {status} from {source}",
            source,
            {"status": status},
        )

    @classmethod
    def client_error(cls, source: str, status: int, url: str) -> "ClassifiedError":
        return cls(
            ErrorKind.CLIENT_ERROR,
            f"HTTP {status} from {url}",
            source,
            {"status": status, "url": url},
        )

    @classmethod
    def schema_drift(cls, dataset: str, details: dict[str, Any]) -> "ClassifiedError":
        return cls(
            ErrorKind.SCHEMA_DRIFT,
            f"Schema validation failed for {dataset}",
            dataset,
            details,
        )


@dataclass(frozen=True)
class Banner:
    """Notification descriptor consumed by the presentation layer."""

    level: str
    text: str
    dismissible: bool = True
    kind: str = field(default="")


def error_to_banner(err: BaseException) -> Banner:
    """Map an error to exactly one banner severity and message."""
    if isinstance(err, ClassifiedError):
        policy = err.policy
        return Banner(
            level=policy.level,
            text=err.ui_message,
            dismissible=policy.dismissible,
            kind=err.kind.value,
        )
    return Banner(level="error", text=str(err) or "An unexpected error occurred.")

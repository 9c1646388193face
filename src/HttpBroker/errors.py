# === NAVMAP v1 ===
# {
#   "module": "HttpBroker.errors",
#   "purpose": "Error code catalog and exception taxonomy for outbound HTTP requests.",
#   "sections": [
#     {
#       "id": "errorcode",
#       "name": "ErrorCode",
#       "anchor": "class-errorcode",
#       "kind": "class"
#     },
#     {
#       "id": "error-code",
#       "name": "error_code",
#       "anchor": "function-error-code",
#       "kind": "function"
#     },
#     {
#       "id": "httpbrokererror",
#       "name": "HttpBrokerError",
#       "anchor": "class-httpbrokererror",
#       "kind": "class"
#     },
#     {
#       "id": "artifacterror",
#       "name": "ArtifactError",
#       "anchor": "class-artifacterror",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Error code catalog and exception taxonomy for outbound HTTP requests.

Responsibilities
----------------
- Define :class:`ErrorCode`, the fixed catalog of normalized failure codes a
  request can end with. Codes are small integers; the externally reported
  value is the base value plus a configurable offset.
- Provide lookup helpers (:func:`error_code`, :func:`error_code_range`,
  :func:`error_codes`) mirroring how callers translate names to reported codes.
- Define the exception taxonomy used inside the broker. Exceptions never escape
  :meth:`HttpBroker.orchestrator.RequestOrchestrator.execute`; they exist so
  collaborators can signal a categorised failure and so log records carry a
  trace.

Design Notes
------------
- Four families: local (caller misuse, configuration, internal defects),
  transport (faults reported by the adapter), remote-status (HTTP status read
  as failure) and contract (response failed rule-set validation).
- ``ErrorCode.NONE`` is zero so ``if code:`` reads naturally.
"""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:  # pragma: no cover
    from .envelope import ResponseEnvelope

__all__ = (
    "DEFAULT_ERROR_CODE_OFFSET",
    "ErrorCode",
    "error_code",
    "error_code_range",
    "error_codes",
    "HttpBrokerError",
    "HttpConfigurationError",
    "HttpLogicError",
    "HttpRequestError",
    "HttpResponseError",
    "HttpResponseValidationError",
    "HttpForwardableResponseError",
    "ArtifactError",
    "ArtifactNotFoundError",
    "ArtifactDuplicateError",
    "ArtifactParseError",
)

# Reported codes occupy offset .. offset + 999.
DEFAULT_ERROR_CODE_OFFSET = 1900


class ErrorCode(IntEnum):
    """Normalized failure codes, base values before offset."""

    NONE = 0
    UNKNOWN = 1

    LOCAL_UNKNOWN = 10
    LOCAL_ALGO = 11
    LOCAL_USE = 12
    LOCAL_CONFIGURATION = 13
    LOCAL_OPTION = 14
    LOCAL_INIT = 15

    HOST_UNAVAILABLE = 20
    SERVICE_UNAVAILABLE = 21
    TOO_MANY_REDIRECTS = 23
    # Transport timed out.
    TIMEOUT = 30
    # Remote said 504.
    TIMEOUT_PROPAGATED = 31
    RESPONSE_NONE = 40
    # Remote said 500.
    REMOTE = 50
    # Remote said 502.
    REMOTE_PROPAGATED = 51
    # Unsupported 5xx.
    MALIGN_STATUS_UNEXPECTED = 59

    # 404 and not JSON; no such endpoint.
    ENDPOINT_NOT_FOUND = 60
    # Unexpected 204, or 404 and JSON; no such resource.
    RESOURCE_NOT_FOUND = 61
    UNAUTHENTICATED = 65
    UNAUTHORIZED = 66

    REMOTE_VALIDATION_BAD = 70
    REMOTE_VALIDATION_FAILED = 71
    REMOTE_CONFLICT = 72
    RESPONSE_TYPE = 81
    RESPONSE_FORMAT = 82
    # Unsupported non-5xx.
    BENIGN_STATUS_UNEXPECTED = 89

    HEADER_MISSING = 90
    RESPONSE_VALIDATION = 95

    @property
    def slug(self) -> str:
        """Hyphenated name, e.g. ``"host-unavailable"``."""
        return self.name.lower().replace("_", "-")

    @classmethod
    def from_slug(cls, slug: str) -> "ErrorCode":
        """Return the code named ``slug``; unknown names map to :attr:`UNKNOWN`."""
        try:
            return cls[slug.strip().upper().replace("-", "_")]
        except KeyError:
            return cls.UNKNOWN

    def reported(self, offset: int = DEFAULT_ERROR_CODE_OFFSET) -> int:
        """Externally reported numeric value; ``NONE`` stays zero."""
        return int(self) + offset if self else 0


def error_code(name: str, *, offset: int = DEFAULT_ERROR_CODE_OFFSET) -> int:
    """Reported code for ``name``, falling back to ``unknown``."""

    return ErrorCode.from_slug(name).reported(offset)


def error_code_range(*, offset: int = DEFAULT_ERROR_CODE_OFFSET) -> tuple[int, int]:
    """First and last reported code reserved for the broker."""

    return offset, offset + 999


def error_codes(*, offset: int = DEFAULT_ERROR_CODE_OFFSET) -> dict[str, int]:
    """Mapping of every code slug to its reported value."""

    return {code.slug: code.reported(offset) for code in ErrorCode if code}


# ============================================================================
# Exceptions
# ============================================================================


class HttpBrokerError(Exception):
    """Base class of every exception raised inside the broker."""

    default_code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = ErrorCode(code) if code is not None else self.default_code
        self.details = dict(details or {})


class HttpConfigurationError(HttpBrokerError):
    """Unresolved or invalid configuration; never the remote's fault."""

    default_code = ErrorCode.LOCAL_CONFIGURATION


class HttpLogicError(HttpBrokerError):
    """Internal invariant violated; a defect in the broker itself."""

    default_code = ErrorCode.LOCAL_ALGO


class HttpRequestError(HttpBrokerError):
    """Caller misuse detected before the request was sent."""

    default_code = ErrorCode.LOCAL_USE


class HttpResponseError(HttpBrokerError):
    """Response evaluated to a failure (transport fault or status)."""


class HttpResponseValidationError(HttpResponseError):
    """Response failed every declared rule set."""

    default_code = ErrorCode.RESPONSE_VALIDATION

    def __init__(
        self,
        message: str,
        *,
        records: Mapping[str, list[str]] | None = None,
        code: ErrorCode | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.records = dict(records or {})


class HttpForwardableResponseError(HttpBrokerError):
    """Carries a finished envelope so deep framework code can forward it as is."""

    def __init__(
        self,
        message: str,
        envelope: "ResponseEnvelope",
        *,
        code: ErrorCode | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.envelope = envelope


class ArtifactError(HttpConfigurationError):
    """A JSON artifact (rule set or mock) could not be produced."""

    def __init__(self, message: str, *, filename: str, details: Mapping[str, Any] | None = None):
        super().__init__(message, details=details)
        self.filename = filename


class ArtifactNotFoundError(ArtifactError):
    """No file of the required name below any artifact path."""


class ArtifactDuplicateError(ArtifactError):
    """The same filename exists more than once below an artifact path."""


class ArtifactParseError(ArtifactError):
    """The artifact file is not parsable, or does not have the expected shape."""

"""Response envelope returned to, and cached for, the caller.

Every outcome of a request (success, transport fault, unexpected status,
failed validation, configuration error) ends up as one
:class:`ResponseEnvelope`. The envelope is mutated only while the orchestrator
evaluates it; callers receive a finished value. Cached envelopes travel through
stores in their mapping form (:meth:`ResponseEnvelope.to_dict` /
:meth:`ResponseEnvelope.from_mapping`), so a stored envelope can never be
altered through a reference held elsewhere.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from .errors import DEFAULT_ERROR_CODE_OFFSET, ErrorCode, HttpForwardableResponseError

__all__ = (
    "HEADER_ORIGINAL_STATUS",
    "HEADER_FINAL_STATUS",
    "HEADER_MOCK_RESPONSE",
    "SUCCESS_STATUSES",
    "ValidationState",
    "ResponseBody",
    "ResponseEnvelope",
)

HEADER_ORIGINAL_STATUS = "X-HttpBroker-Original-Status"
HEADER_FINAL_STATUS = "X-HttpBroker-Final-Status"
HEADER_MOCK_RESPONSE = "X-HttpBroker-Mock-Response"

# 204 and 404 only when the respective not-found options are off.
SUCCESS_STATUSES = frozenset({200, 201, 202, 204, 304, 404})


class ValidationState(str, Enum):
    """Whether the response was checked against rule sets, and the verdict."""

    NOT_ATTEMPTED = "not-attempted"
    FAILED = "failed"
    PASSED = "passed"


@dataclass
class ResponseBody:
    """Body consumed by the ultimate caller.

    ``status`` mirrors the actual status, which may differ from the envelope
    status when the broker forces 502. ``message`` is always user-safe.
    """

    success: bool = False
    status: int = 500
    data: Any = None
    message: str | None = None
    code: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status,
            "data": copy.deepcopy(self.data),
            "message": self.message,
            "code": self.code,
        }


@dataclass
class ResponseEnvelope:
    """Status, outbound headers, remote headers, validation flag and body."""

    status: int = 500
    headers: dict[str, Any] = field(default_factory=dict)
    body: ResponseBody = field(default_factory=ResponseBody)
    # Received from the remote; never forwarded to the original caller.
    original_headers: dict[str, str] = field(default_factory=dict)
    validated: ValidationState = ValidationState.NOT_ATTEMPTED

    @property
    def is_consistent(self) -> bool:
        """A successful body requires code zero and an accepted status."""
        if not self.body.success:
            return True
        return self.body.code == 0 and self.body.status in SUCCESS_STATUSES

    def to_dict(self, *, public: bool = False) -> dict[str, Any]:
        """Mapping form; ``public`` drops the remote headers."""
        data: dict[str, Any] = {
            "status": self.status,
            "headers": dict(self.headers),
            "body": self.body.to_dict(),
            "validated": self.validated.value,
        }
        if not public:
            data["original_headers"] = dict(self.original_headers)
        return data

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ResponseEnvelope":
        """Cast a mapping (cache entry, mock JSON) into an envelope.

        Raises:
            TypeError: ``data`` or one of its buckets has the wrong type.
            ValueError: ``status`` or ``validated`` has an invalid value.
        """
        if not isinstance(data, Mapping):
            raise TypeError(f"envelope must be a mapping, not {type(data).__name__}")
        status = data.get("status", 200)
        if isinstance(status, bool) or not isinstance(status, int) or not 100 <= status <= 599:
            raise ValueError(f"envelope status[{status!r}] is not an HTTP status")
        headers = data.get("headers") or {}
        original_headers = data.get("original_headers") or {}
        body = data.get("body") or {}
        for name, bucket in (
            ("headers", headers),
            ("original_headers", original_headers),
            ("body", body),
        ):
            if not isinstance(bucket, Mapping):
                raise TypeError(f"envelope {name} must be a mapping")
        body_status = body.get("status", status)
        if isinstance(body_status, bool) or not isinstance(body_status, int):
            raise ValueError(f"envelope body status[{body_status!r}] is not an integer")
        return cls(
            status=status,
            headers=dict(headers),
            body=ResponseBody(
                success=bool(body.get("success", False)),
                status=body_status,
                data=copy.deepcopy(body.get("data")),
                message=body.get("message"),
                code=int(body.get("code") or 0),
            ),
            original_headers={str(k): str(v) for k, v in original_headers.items()},
            validated=ValidationState(data.get("validated", ValidationState.NOT_ATTEMPTED.value)),
        )

    def copy(self) -> "ResponseEnvelope":
        return copy.deepcopy(self)

    def raise_for_failure(self, *, offset: int = DEFAULT_ERROR_CODE_OFFSET) -> None:
        """Raise :class:`HttpForwardableResponseError` unless the body succeeded."""
        if self.body.success:
            return
        base = self.body.code - offset if self.body.code >= offset else self.body.code
        try:
            code = ErrorCode(base) or ErrorCode.UNKNOWN
        except ValueError:
            code = ErrorCode.UNKNOWN
        raise HttpForwardableResponseError(
            f"Response failed, status[{self.status}] code[{self.body.code}].",
            self,
            code=code,
        )

# === NAVMAP v1 ===
# {
#   "module": "HttpBroker.classifier",
#   "purpose": "Decision table mapping transport outcomes and HTTP status to error codes.",
#   "sections": [
#     {
#       "id": "faultkind",
#       "name": "FaultKind",
#       "anchor": "class-faultkind",
#       "kind": "class"
#     },
#     {
#       "id": "verdict",
#       "name": "Verdict",
#       "anchor": "class-verdict",
#       "kind": "class"
#     },
#     {
#       "id": "statusrule",
#       "name": "StatusRule",
#       "anchor": "class-statusrule",
#       "kind": "class"
#     },
#     {
#       "id": "outcomeclassifier",
#       "name": "OutcomeClassifier",
#       "anchor": "class-outcomeclassifier",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Decision table mapping transport outcomes and HTTP status to error codes.

Responsibilities
----------------
- Turn a :class:`~HttpBroker.transport.TransportOutcome` into a
  :class:`~HttpBroker.envelope.ResponseEnvelope` plus exactly one
  :class:`~HttpBroker.errors.ErrorCode` (``NONE`` for success).
- Evaluate an envelope that did not come from the network (a mock) against the
  same status rules.
- Enforce ``require_response_headers`` when nothing else failed.

Design Notes
------------
- A fault outranks the status. Fault names are grouped into
  :class:`FaultKind`; each kind is one row of :data:`FAULT_TABLE`, except
  ``SERVER_ERROR`` which branches on status in :data:`SERVER_ERROR_TABLE`.
- Without a fault, :data:`STATUS_RULES` is scanned top to bottom and the first
  row whose status and predicate match wins; :data:`UNEXPECTED_STATUS` covers
  the rest. Adding a case is adding one row.
- The classifier is pure apart from the envelope it builds; logging, user
  messages, validation and caching belong to the orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping, Optional, Tuple

from .envelope import HEADER_FINAL_STATUS, HEADER_ORIGINAL_STATUS, ResponseBody, ResponseEnvelope
from .errors import DEFAULT_ERROR_CODE_OFFSET, ErrorCode
from .options import RequestOptions
from .transport import FaultName, TransportFault, TransportOutcome, is_json_content_type

__all__ = (
    "FaultKind",
    "FAULT_KINDS",
    "Verdict",
    "StatusRule",
    "FAULT_TABLE",
    "SERVER_ERROR_TABLE",
    "STATUS_RULES",
    "UNEXPECTED_STATUS",
    "REMOTE_STATUS_CODES",
    "fault_kind",
    "OutcomeClassifier",
)


class FaultKind(Enum):
    SERVER_ERROR = "server-error"
    TIMED_OUT = "timed-out"
    HOST_UNREACHABLE = "host-unreachable"
    NO_RESPONSE_DATA = "no-response-data"
    CONTENT_TYPE_MISMATCH = "content-type-mismatch"
    PARSE_ERROR = "parse-error"
    TOO_MANY_REDIRECTS = "too-many-redirects"
    MALFORMED_TARGET = "malformed-target"
    UNCLASSIFIED = "unclassified"


FAULT_KINDS: Mapping[str, FaultKind] = {
    FaultName.RESPONSE_ERROR.value: FaultKind.SERVER_ERROR,
    FaultName.REQUEST_TIMED_OUT.value: FaultKind.TIMED_OUT,
    FaultName.HOST_NOT_FOUND.value: FaultKind.HOST_UNREACHABLE,
    FaultName.CONNECTION_FAILED.value: FaultKind.HOST_UNREACHABLE,
    FaultName.RESPONSE_FALSE.value: FaultKind.NO_RESPONSE_DATA,
    FaultName.CONTENT_TYPE_MISMATCH.value: FaultKind.CONTENT_TYPE_MISMATCH,
    FaultName.RESPONSE_PARSE.value: FaultKind.PARSE_ERROR,
    FaultName.TOO_MANY_REDIRECTS.value: FaultKind.TOO_MANY_REDIRECTS,
    FaultName.URL_MALFORMED.value: FaultKind.MALFORMED_TARGET,
}


def fault_kind(fault: TransportFault) -> FaultKind:
    return FAULT_KINDS.get(fault.name, FaultKind.UNCLASSIFIED)


@dataclass(frozen=True)
class Verdict:
    """One row's outcome.

    Attributes:
        code: Error code; ``NONE`` leaves the envelope successful.
        final_status: Status reported to the caller; ``None`` keeps it.
        body_status: Also write ``final_status`` to the body status. When
            false, the body keeps the original status.
        rewrite_original: Record ``final_status`` as the original status too,
            for faults where the remote never produced one.
    """

    code: ErrorCode
    final_status: Optional[int] = None
    body_status: bool = True
    rewrite_original: bool = False

    @property
    def success(self) -> bool:
        return self.code is ErrorCode.NONE


PASS = Verdict(ErrorCode.NONE)


def _fail(code: ErrorCode) -> Verdict:
    # Keep status, flag failure on the body.
    return Verdict(code)


FAULT_TABLE: Mapping[FaultKind, Verdict] = {
    FaultKind.TIMED_OUT: Verdict(ErrorCode.TIMEOUT, 504, rewrite_original=True),
    FaultKind.HOST_UNREACHABLE: Verdict(ErrorCode.HOST_UNAVAILABLE, 502, rewrite_original=True),
    FaultKind.NO_RESPONSE_DATA: Verdict(ErrorCode.RESPONSE_NONE, 502),
    FaultKind.CONTENT_TYPE_MISMATCH: Verdict(ErrorCode.RESPONSE_TYPE, 502),
    FaultKind.PARSE_ERROR: Verdict(ErrorCode.RESPONSE_FORMAT, 502),
    FaultKind.TOO_MANY_REDIRECTS: Verdict(ErrorCode.TOO_MANY_REDIRECTS, 502),
    FaultKind.MALFORMED_TARGET: Verdict(ErrorCode.LOCAL_USE, 500),
    FaultKind.UNCLASSIFIED: Verdict(ErrorCode.UNKNOWN, 500),
}

# Server error faults branch on the remote status.
SERVER_ERROR_TABLE: Mapping[int, Verdict] = {
    # Not our fault; Bad Gateway.
    500: Verdict(ErrorCode.REMOTE, 502),
    502: Verdict(ErrorCode.REMOTE_PROPAGATED),
    # Caller may retry later.
    503: Verdict(ErrorCode.SERVICE_UNAVAILABLE),
    504: Verdict(ErrorCode.TIMEOUT_PROPAGATED),
}
SERVER_ERROR_UNEXPECTED = Verdict(ErrorCode.MALIGN_STATUS_UNEXPECTED, 502, body_status=False)

Predicate = Callable[[RequestOptions, str], bool]


def _always(options: RequestOptions, content_type: str) -> bool:
    return True


def _resource_flag(options: RequestOptions, content_type: str) -> bool:
    return options.err_on_resource_not_found


def _endpoint_flag_and_not_json(options: RequestOptions, content_type: str) -> bool:
    return options.err_on_endpoint_not_found and not is_json_content_type(content_type)


@dataclass(frozen=True)
class StatusRule:
    statuses: Tuple[int, ...]
    verdict: Verdict
    when: Predicate = _always

    def matches(self, status: int, options: RequestOptions, content_type: str) -> bool:
        return status in self.statuses and self.when(options, content_type)


STATUS_RULES: Tuple[StatusRule, ...] = (
    StatusRule((200, 201, 202, 304), PASS),
    StatusRule((204,), _fail(ErrorCode.RESOURCE_NOT_FOUND), _resource_flag),
    StatusRule((204,), PASS),
    StatusRule((400,), _fail(ErrorCode.REMOTE_VALIDATION_BAD)),
    StatusRule((401,), _fail(ErrorCode.UNAUTHENTICATED)),
    StatusRule((403,), _fail(ErrorCode.UNAUTHORIZED)),
    StatusRule((404,), _fail(ErrorCode.ENDPOINT_NOT_FOUND), _endpoint_flag_and_not_json),
    StatusRule((404,), _fail(ErrorCode.RESOURCE_NOT_FOUND), _resource_flag),
    StatusRule((404,), PASS),
    StatusRule((409,), _fail(ErrorCode.REMOTE_CONFLICT)),
    StatusRule((412, 422), _fail(ErrorCode.REMOTE_VALIDATION_FAILED)),
)
# Any other status: Bad Gateway, original kept on the body.
UNEXPECTED_STATUS = Verdict(ErrorCode.BENIGN_STATUS_UNEXPECTED, 502, body_status=False)

HEADER_MISSING = Verdict(ErrorCode.HEADER_MISSING, 502, body_status=False)

# Codes read off the remote status; only these honour log_warning_on_status.
REMOTE_STATUS_CODES = frozenset(
    verdict.code
    for verdict in (
        *SERVER_ERROR_TABLE.values(),
        SERVER_ERROR_UNEXPECTED,
        *(rule.verdict for rule in STATUS_RULES),
        UNEXPECTED_STATUS,
    )
    if not verdict.success
)


class OutcomeClassifier:
    """Classifies transport outcomes into envelopes and error codes."""

    def __init__(self, *, error_code_offset: int = DEFAULT_ERROR_CODE_OFFSET) -> None:
        self.error_code_offset = error_code_offset

    # ------------------------------------------------------------------
    # Table lookups
    # ------------------------------------------------------------------

    @staticmethod
    def fault_verdict(fault: TransportFault, status: int) -> Verdict:
        kind = fault_kind(fault)
        if kind is FaultKind.SERVER_ERROR:
            return SERVER_ERROR_TABLE.get(status, SERVER_ERROR_UNEXPECTED)
        return FAULT_TABLE[kind]

    @staticmethod
    def status_verdict(status: int, options: RequestOptions, content_type: str) -> Verdict:
        for rule in STATUS_RULES:
            if rule.matches(status, options, content_type):
                return rule.verdict
        return UNEXPECTED_STATUS

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify(
        self, outcome: TransportOutcome, options: RequestOptions
    ) -> tuple[ResponseEnvelope, ErrorCode]:
        """Build the envelope of ``outcome`` and classify it."""
        original_headers = dict(outcome.headers) if options.get_headers else {}
        if outcome.fault is None:
            envelope = ResponseEnvelope(
                status=outcome.status,
                headers={
                    HEADER_ORIGINAL_STATUS: outcome.status,
                    # May be overridden below.
                    HEADER_FINAL_STATUS: outcome.status,
                },
                body=ResponseBody(True, outcome.status, outcome.data),
                original_headers=original_headers,
            )
        else:
            # Zero when no connection was established. A server error fault
            # without a status is read as a plain 500: remote, Bad Gateway.
            status = outcome.status or 500
            envelope = ResponseEnvelope(
                status=status,
                headers={HEADER_ORIGINAL_STATUS: outcome.status} if outcome.status else {},
                # Upstream error pages stay out of the body.
                body=ResponseBody(False, status, None),
                original_headers=original_headers,
            )
        code = self.evaluate(
            envelope,
            options,
            fault=outcome.fault,
            content_type=outcome.content_type,
            received_headers=outcome.headers if outcome.headers_recorded else None,
        )
        return envelope, code

    def evaluate(
        self,
        envelope: ResponseEnvelope,
        options: RequestOptions,
        *,
        fault: Optional[TransportFault] = None,
        content_type: str = "",
        received_headers: Optional[Mapping[str, str]] = None,
    ) -> ErrorCode:
        """Classify ``envelope`` in place and return its error code.

        ``received_headers`` are the remote's headers used for the
        required-header check; ``None`` means they were not recorded, in
        which case the envelope's own remote headers are used.
        """
        body = envelope.body
        original_status = envelope.status
        if fault is not None:
            verdict = self.fault_verdict(fault, original_status)
        else:
            verdict = self.status_verdict(original_status, options, content_type)

        code = self._apply(envelope, verdict)

        if code is ErrorCode.NONE and options.require_response_headers:
            present = {
                name.lower()
                for name in (
                    received_headers if received_headers is not None else envelope.original_headers
                )
            }
            for header in options.require_response_headers:
                if header.lower() not in present:
                    code = self._apply(envelope, HEADER_MISSING)
                    break

        if fault is not None or code is not ErrorCode.NONE:
            envelope.headers[HEADER_FINAL_STATUS] = envelope.status
            body.success = False
        body.code = code.reported(self.error_code_offset)
        return code

    @staticmethod
    def _apply(envelope: ResponseEnvelope, verdict: Verdict) -> ErrorCode:
        if verdict.final_status is not None:
            envelope.status = verdict.final_status
            if verdict.body_status:
                envelope.body.status = verdict.final_status
            if verdict.rewrite_original:
                envelope.headers[HEADER_ORIGINAL_STATUS] = verdict.final_status
        if not verdict.success:
            envelope.body.success = False
        return verdict.code

# === NAVMAP v1 ===
# {
#   "module": "HttpBroker.orchestrator",
#   "purpose": "Request lifecycle: mock, cache, transport with retry, classification, validation.",
#   "sections": [
#     {
#       "id": "requestorchestrator",
#       "name": "RequestOrchestrator",
#       "anchor": "class-requestorchestrator",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Request lifecycle controller.

Responsibilities
----------------
- Pick the path of a request: mock, cached envelope, or network.
- Send through the transport adapter with at most one retry, classify the
  outcome, validate the data, write the cache.
- Log failures through :class:`~HttpBroker.logger.HttpLogger` and give every
  failed envelope a user-safe message.

Design Notes
------------
- :meth:`RequestOrchestrator.execute` never raises. Collaborator failures
  (stores, artifacts) become ``local-unknown`` or ``local-configuration``
  envelopes; anything else escaping the pass becomes ``local-algo``.
- The ``log_warning_on_status`` warn-list lowers remote-status failures to
  warning; local, transport and contract failures always log at error.
- A cached envelope is returned verbatim; it was classified and validated
  before it was written.
- Mocks never touch the response cache.
- The orchestrator holds no per-request state; one instance may serve many
  threads as long as its stores do.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from .classifier import REMOTE_STATUS_CODES, OutcomeClassifier
from .envelope import (
    HEADER_FINAL_STATUS,
    HEADER_ORIGINAL_STATUS,
    ResponseBody,
    ResponseEnvelope,
    ValidationState,
)
from .errors import (
    ErrorCode,
    HttpBrokerError,
    HttpConfigurationError,
    HttpLogicError,
    HttpRequestError,
    HttpResponseError,
    HttpResponseValidationError,
)
from .logger import HttpLogger
from .mocks import MOCK_SUFFIX, MockResolver
from .options import (
    MockPolicy,
    RequestArguments,
    RequestOptions,
    ValidationPolicy,
    normalize_arguments,
)
from .retry import send_with_retry
from .settings import BrokerSettings
from .stores import (
    STORE_MOCK,
    STORE_RESPONSE,
    STORE_RULE_SET,
    ArtifactLocator,
    ResponseCache,
    open_store,
)
from .text import MESSAGE_KEY_USER_REPORT, CatalogTextResolver, TextResolver, message_key
from .transport import (
    FaultName,
    HttpxTransportAdapter,
    TransportAdapter,
    TransportFault,
    TransportOutcome,
)
from .validation import RULE_SET_SUFFIX, ValidationEngine

__all__ = ("RequestOrchestrator",)

LOGGER = logging.getLogger(__name__)

AdapterFactory = Callable[[RequestOptions], TransportAdapter]

# No user report suffix; a gateway timeout is nothing the user can report.
_NO_REPORT_SUFFIX = frozenset({ErrorCode.TIMEOUT, ErrorCode.TIMEOUT_PROPAGATED})


class RequestOrchestrator:
    """Executes resolved requests and always returns a finished envelope.

    Args:
        response_cache: Envelope cache.
        validation_engine: Rule-set validation.
        mock_resolver: Canned responses.
        text_resolver: User message texts; English catalog by default.
        settings: Offset, default TTL, log type, application title.
        adapter_factory: Builds the transport adapter of a request.
        sleep: Used for the retry delay.
    """

    def __init__(
        self,
        *,
        response_cache: ResponseCache,
        validation_engine: ValidationEngine,
        mock_resolver: MockResolver,
        text_resolver: Optional[TextResolver] = None,
        settings: Optional[BrokerSettings] = None,
        adapter_factory: Optional[AdapterFactory] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or BrokerSettings()
        self.response_cache = response_cache
        self.validation_engine = validation_engine
        self.mock_resolver = mock_resolver
        self.text_resolver = text_resolver or CatalogTextResolver()
        self.adapter_factory: AdapterFactory = adapter_factory or HttpxTransportAdapter
        self.sleep = sleep
        self.classifier = OutcomeClassifier(error_code_offset=self.settings.error_code_offset)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[BrokerSettings] = None,
        *,
        text_resolver: Optional[TextResolver] = None,
        adapter_factory: Optional[AdapterFactory] = None,
    ) -> "RequestOrchestrator":
        """Orchestrator with stores and artifact paths taken from ``settings``."""
        settings = settings or BrokerSettings()
        cache_dir = settings.cache_dir
        return cls(
            response_cache=ResponseCache(
                open_store(STORE_RESPONSE, cache_dir),
                ttl_default=settings.cacheable_time_to_live,
            ),
            validation_engine=ValidationEngine(
                open_store(STORE_RULE_SET, cache_dir),
                ArtifactLocator(
                    settings.rule_set_paths, settings.rule_set_legacy_path, RULE_SET_SUFFIX
                ),
            ),
            mock_resolver=MockResolver(
                open_store(STORE_MOCK, cache_dir),
                ArtifactLocator(settings.mock_paths, settings.mock_legacy_path, MOCK_SUFFIX),
            ),
            text_resolver=text_resolver,
            settings=settings,
            adapter_factory=adapter_factory,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def execute(
        self,
        options: RequestOptions,
        arguments: Any = None,
        *,
        abort_code: ErrorCode = ErrorCode.NONE,
    ) -> ResponseEnvelope:
        """Run one request to completion.

        Args:
            options: Resolved options.
            arguments: Path, query and body, in any shape
                :func:`~HttpBroker.options.normalize_arguments` accepts.
            abort_code: Non-zero when the caller already found the request
                unsendable; produces a 500 envelope carrying that code.
        """
        if abort_code:
            return self.aborted(options.operation, abort_code, log_type=options.log_type)
        try:
            request_arguments = normalize_arguments(arguments)
        except HttpRequestError as exc:
            return self.aborted(options.operation, ErrorCode.LOCAL_USE, exc, options.log_type)

        http_logger = self._logger(options.operation, options.log_type)
        try:
            return self._execute(options, request_arguments, http_logger)
        except Exception as exc:  # noqa: BLE001
            fault = HttpLogicError(
                f"Request evaluation failed unexpectedly: {type(exc).__name__}: {exc}"
            )
            fault.__cause__ = exc
            fault.__traceback__ = exc.__traceback__
            return self._synthetic(ErrorCode.LOCAL_ALGO, http_logger, fault)

    def aborted(
        self,
        operation: str,
        code: ErrorCode,
        fault: Optional[BaseException] = None,
        log_type: Optional[str] = None,
    ) -> ResponseEnvelope:
        """Fixed 500 envelope of a request that was never sent."""
        if fault is None:
            fault = HttpBrokerError("Request aborted.", code=code)
        return self._synthetic(code, self._logger(operation, log_type), fault, preface="Http request aborted,")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _execute(
        self, options: RequestOptions, arguments: RequestArguments, http_logger: HttpLogger
    ) -> ResponseEnvelope:
        if options.debug_dump:
            http_logger.debug(
                "Http request ▷",
                variables={"options": options.model_dump(mode="json"), "arguments": arguments},
            )

        mock_policy = options.mock_response
        if mock_policy is not None:
            return self._mocked(options, mock_policy, http_logger)

        cache_policy = options.cacheable
        if cache_policy is not None and not cache_policy.refresh:
            try:
                cached = self.response_cache.get(cache_policy.key(options.operation))
            except Exception as exc:  # noqa: BLE001
                return self._collaborator_failed("Http response cache read failed,", exc, http_logger)
            if cached is not None:
                if options.debug_dump:
                    http_logger.debug("Http cached response ◀", variables=cached.to_dict())
                return cached

        outcome = self._send(options, arguments, http_logger)
        envelope, code = self.classifier.classify(outcome, options)
        return self._finish(envelope, code, options, http_logger, outcome.fault)

    def _send(
        self, options: RequestOptions, arguments: RequestArguments, http_logger: HttpLogger
    ) -> TransportOutcome:
        adapter = self.adapter_factory(options)
        try:
            return send_with_retry(
                adapter,
                options.method,
                arguments,
                retry_delay_ms=options.retry_on_unavailable,
                sleep=self.sleep,
            )
        except Exception as exc:  # noqa: BLE001
            # Adapters should report, not raise; classify as unknown fault.
            http_logger.debug("Http transport raised,", fault=exc)
            return TransportOutcome(
                status=0,
                fault=TransportFault(FaultName.TRANSPORT_ERROR.value, f"{type(exc).__name__}: {exc}"),
            )
        finally:
            close = getattr(adapter, "close", None)
            if callable(close):
                close()

    def _mocked(
        self, options: RequestOptions, policy: MockPolicy, http_logger: HttpLogger
    ) -> ResponseEnvelope:
        try:
            envelope = self.mock_resolver.resolve(
                options.operation, policy.variant, no_cache=policy.no_cache_mock
            )
        except HttpConfigurationError as exc:
            # A failed mock is not evaluated.
            return self._synthetic(ErrorCode.LOCAL_CONFIGURATION, http_logger, exc, preface="Http mock response,")
        except Exception as exc:  # noqa: BLE001
            return self._collaborator_failed("Http mock response,", exc, http_logger)

        envelope.headers.setdefault(HEADER_ORIGINAL_STATUS, envelope.status)
        envelope.headers[HEADER_FINAL_STATUS] = envelope.status
        envelope.body.success = True
        code = self.classifier.evaluate(envelope, options, content_type="application/json")
        return self._finish(envelope, code, options, http_logger, mocked=True)

    def _finish(
        self,
        envelope: ResponseEnvelope,
        code: ErrorCode,
        options: RequestOptions,
        http_logger: HttpLogger,
        fault: Optional[TransportFault] = None,
        *,
        mocked: bool = False,
    ) -> ResponseEnvelope:
        if code:
            # Only remote-status codes may be lowered to warning.
            warn = code in REMOTE_STATUS_CODES and envelope.status in options.log_warning_on_status
            severity = "warning" if warn else "error"
            detail = f" fault[{fault.name}] {fault.message}" if fault is not None else ""
            http_logger.log(
                severity,
                "Http response evaluation,",
                HttpResponseError(
                    f"Response evaluates to error[{code.slug}], status[{envelope.status}].{detail}",
                    code=code,
                ),
                context={
                    "final status": envelope.status,
                    "original status": envelope.headers.get(HEADER_ORIGINAL_STATUS),
                },
            )
            envelope.body.message = self._message(code)
            return envelope

        validation_policy = options.validate_response
        if validation_policy is not None:
            code = self._validate(envelope, options.operation, validation_policy, http_logger)
            if code:
                return envelope

        cache_policy = options.cacheable
        if cache_policy is not None and not mocked:
            ttl = cache_policy.ttl or self.settings.cacheable_time_to_live
            try:
                self.response_cache.set(cache_policy.key(options.operation), envelope, ttl)
            except Exception as exc:  # noqa: BLE001
                return self._collaborator_failed("Http response cache write failed,", exc, http_logger)

        if options.debug_dump:
            http_logger.debug(
                "Http mocked response ◀" if mocked else "Http response ◀",
                variables=envelope.to_dict(),
            )
        return envelope

    def _validate(
        self,
        envelope: ResponseEnvelope,
        operation: str,
        policy: ValidationPolicy,
        http_logger: HttpLogger,
    ) -> ErrorCode:
        fault: HttpBrokerError
        try:
            result = self.validation_engine.validate(
                envelope.body.data,
                policy.rule_set_variants,
                operation=operation,
                no_cache=policy.no_cache_rules,
            )
        except HttpConfigurationError as exc:
            code, status, fault = ErrorCode.LOCAL_CONFIGURATION, 500, exc
        except Exception as exc:  # noqa: BLE001
            # Rule-set store failure.
            code, status, fault = ErrorCode.LOCAL_UNKNOWN, 500, self._collaborator_fault(exc)
        else:
            if result.passed:
                envelope.validated = ValidationState.PASSED
                return ErrorCode.NONE
            code, status = ErrorCode.RESPONSE_VALIDATION, 502
            fault = HttpResponseValidationError("Response failed validation.", records=result.records)

        http_logger.error("Http validate response,", fault=fault)
        envelope.validated = ValidationState.FAILED
        envelope.status = envelope.body.status = status
        envelope.headers[HEADER_FINAL_STATUS] = status
        body = envelope.body
        body.success = False
        body.data = None
        body.code = code.reported(self.settings.error_code_offset)
        body.message = self._message(code)
        return code

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _logger(self, operation: str, log_type: Optional[str]) -> HttpLogger:
        return HttpLogger(log_type or self.settings.log_type, operation)

    def _message(self, code: ErrorCode) -> str:
        variables = {
            "error": f"{code.reported(self.settings.error_code_offset)}:http:{code.slug}",
            "application-title": self.settings.application_title,
        }
        message = self.text_resolver.resolve(message_key(code), variables)
        if code not in _NO_REPORT_SUFFIX:
            message += "\n" + self.text_resolver.resolve(MESSAGE_KEY_USER_REPORT, variables)
        return message

    @staticmethod
    def _collaborator_fault(exc: Exception) -> HttpBrokerError:
        fault = HttpBrokerError(f"{type(exc).__name__}: {exc}", code=ErrorCode.LOCAL_UNKNOWN)
        fault.__cause__ = exc
        fault.__traceback__ = exc.__traceback__
        return fault

    def _collaborator_failed(
        self, preface: str, exc: Exception, http_logger: HttpLogger
    ) -> ResponseEnvelope:
        fault = self._collaborator_fault(exc)
        return self._synthetic(ErrorCode.LOCAL_UNKNOWN, http_logger, fault, preface=preface)

    def _synthetic(
        self,
        code: ErrorCode,
        http_logger: HttpLogger,
        fault: BaseException,
        *,
        preface: str = "Http request failed,",
    ) -> ResponseEnvelope:
        """500 envelope carrying ``code``, logged at error with ``fault``."""
        http_logger.error(preface, fault=fault)
        return ResponseEnvelope(
            status=500,
            headers={HEADER_FINAL_STATUS: 500},
            body=ResponseBody(
                success=False,
                status=500,
                code=code.reported(self.settings.error_code_offset),
                message=self._message(code),
            ),
        )

"""HttpBroker: outbound HTTP requests with normalized outcomes.

Every request ends in one :class:`ResponseEnvelope`, whether it was served
from a mock, from the response cache, or from the network, and whatever went
wrong on the way. Failures carry a numeric code from :class:`ErrorCode` and a
user-safe message.
"""

from .client import ClientRegistry, HttpClient
from .config import ConfigResolver
from .envelope import ResponseBody, ResponseEnvelope, ValidationState
from .errors import (
    ErrorCode,
    HttpBrokerError,
    HttpConfigurationError,
    HttpForwardableResponseError,
    HttpLogicError,
    HttpRequestError,
    HttpResponseError,
    HttpResponseValidationError,
    error_code,
    error_code_range,
    error_codes,
)
from .logger import HttpLogger, setup_logging
from .options import RequestArguments, RequestOptions
from .orchestrator import RequestOrchestrator
from .settings import BrokerSettings

__all__ = [
    "BrokerSettings",
    "ClientRegistry",
    "ConfigResolver",
    "ErrorCode",
    "HttpBrokerError",
    "HttpClient",
    "HttpConfigurationError",
    "HttpForwardableResponseError",
    "HttpLogger",
    "HttpLogicError",
    "HttpRequestError",
    "HttpResponseError",
    "HttpResponseValidationError",
    "RequestArguments",
    "RequestOptions",
    "RequestOrchestrator",
    "ResponseBody",
    "ResponseEnvelope",
    "ValidationState",
    "error_code",
    "error_code_range",
    "error_codes",
    "setup_logging",
]

__version__ = "0.1.0"

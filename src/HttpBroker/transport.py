"""
Transport adapter: one network attempt, reported as a structured outcome.

The adapter never raises for network trouble. Every attempt ends as a
:class:`TransportOutcome` carrying the status (``0`` when no connection was
established), the parsed payload, and optionally a :class:`TransportFault`
naming what went wrong. Classification of that outcome is not the adapter's
business; see :mod:`HttpBroker.classifier`.

:class:`HttpxTransportAdapter` is the production adapter. Tests inject an
:class:`httpx.MockTransport` through the ``transport`` argument.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Protocol, Sequence

import httpx

from .options import RequestArguments, RequestOptions

__all__ = (
    "FaultName",
    "TransportFault",
    "TransportOutcome",
    "TransportAdapter",
    "HttpxTransportAdapter",
    "is_json_content_type",
)

LOGGER = logging.getLogger(__name__)


class FaultName(str, Enum):
    """Fault names an adapter may report."""

    # Status >= 500.
    RESPONSE_ERROR = "response_error"
    REQUEST_TIMED_OUT = "request_timed_out"
    HOST_NOT_FOUND = "host_not_found"
    CONNECTION_FAILED = "connection_failed"
    # Connection closed without a response.
    RESPONSE_FALSE = "response_false"
    CONTENT_TYPE_MISMATCH = "content_type_mismatch"
    RESPONSE_PARSE = "response_parse"
    TOO_MANY_REDIRECTS = "too_many_redirects"
    URL_MALFORMED = "url_malformed"
    # Catch-all for everything else the adapter trips on (TLS, proxy ...).
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class TransportFault:
    """What went wrong in a transport attempt."""

    name: str
    message: str = ""
    code: int = 0


@dataclass(frozen=True)
class TransportOutcome:
    """Result of one transport attempt."""

    status: int = 0
    data: Any = None
    fault: Optional[TransportFault] = None
    content_type: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    headers_recorded: bool = False

    @property
    def ok(self) -> bool:
        return self.fault is None


class TransportAdapter(Protocol):
    """Performs the network call of a request."""

    def send(
        self,
        method: str,
        path: Sequence[str],
        query: Mapping[str, Any],
        body: Any,
    ) -> TransportOutcome: ...

    def reset(self) -> None: ...


def is_json_content_type(content_type: Optional[str]) -> bool:
    return bool(content_type) and "json" in content_type.lower()


# Substrings of resolver errors across platforms.
_NAME_RESOLUTION_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated with hostname",
    "name resolution",
)


def _connect_fault(exc: httpx.ConnectError) -> TransportFault:
    text = str(exc)
    lowered = text.lower()
    if any(marker in lowered for marker in _NAME_RESOLUTION_MARKERS):
        return TransportFault(FaultName.HOST_NOT_FOUND.value, text)
    return TransportFault(FaultName.CONNECTION_FAILED.value, text)


def fault_from_exception(exc: Exception) -> TransportFault:
    """Map an httpx exception to a named fault."""

    if isinstance(exc, (httpx.InvalidURL, httpx.UnsupportedProtocol)):
        return TransportFault(FaultName.URL_MALFORMED.value, str(exc))
    if isinstance(exc, httpx.TimeoutException):
        return TransportFault(FaultName.REQUEST_TIMED_OUT.value, str(exc))
    if isinstance(exc, httpx.ConnectError):
        return _connect_fault(exc)
    if isinstance(exc, httpx.TooManyRedirects):
        return TransportFault(FaultName.TOO_MANY_REDIRECTS.value, str(exc))
    if isinstance(exc, httpx.RemoteProtocolError):
        return TransportFault(FaultName.RESPONSE_FALSE.value, str(exc))
    return TransportFault(FaultName.TRANSPORT_ERROR.value, f"{type(exc).__name__}: {exc}")


class HttpxTransportAdapter:
    """Sends requests with an :class:`httpx.Client` built from request options.

    Args:
        options: Resolved options of the request.
        transport: Optional transport, e.g. :class:`httpx.MockTransport`.
        client: Optional externally owned client; never closed by the adapter.
    """

    def __init__(
        self,
        options: RequestOptions,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.options = options
        self._transport = transport
        self._external_client = client
        self._client: Optional[httpx.Client] = None

    def _build_client(self) -> httpx.Client:
        opts = self.options
        return httpx.Client(
            transport=self._transport,
            timeout=httpx.Timeout(opts.request_timeout, connect=opts.connect_timeout),
            verify=opts.ssl_verify,
            follow_redirects=opts.max_redirects > 0,
            max_redirects=opts.max_redirects,
            headers={"Accept": opts.accept, **opts.headers},
        )

    @property
    def client(self) -> httpx.Client:
        if self._external_client is not None:
            return self._external_client
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def reset(self) -> None:
        """Drop the owned client so the next send starts on fresh connections."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def close(self) -> None:
        self.reset()

    @property
    def _record_headers(self) -> bool:
        return self.options.get_headers or bool(self.options.require_response_headers)

    def send(
        self,
        method: str,
        path: Sequence[str],
        query: Mapping[str, Any],
        body: Any,
    ) -> TransportOutcome:
        arguments = RequestArguments(path=tuple(path), query=dict(query), body=body)
        url = arguments.url(self.options.endpoint_url)
        kwargs: dict[str, Any] = {"params": dict(query) if query else None}
        if body is not None and method not in ("GET", "HEAD"):
            kwargs["json"] = body
        try:
            response = self.client.request(method, url, **kwargs)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            fault = fault_from_exception(exc)
            LOGGER.debug("Transport fault %s for %s %s: %s", fault.name, method, url, fault.message)
            return TransportOutcome(status=0, fault=fault)
        return self._outcome(method, response)

    def _outcome(self, method: str, response: httpx.Response) -> TransportOutcome:
        status = response.status_code
        content_type = response.headers.get("Content-Type", "")
        headers: Mapping[str, str] = dict(response.headers) if self._record_headers else {}
        common = {
            "status": status,
            "content_type": content_type,
            "headers": headers,
            "headers_recorded": self._record_headers,
        }
        text = response.text if method != "HEAD" else ""

        if status >= 500:
            if text:
                LOGGER.debug("Response status %d for %s %s: %.500s", status, method, response.url, text)
            return TransportOutcome(
                data=None,
                fault=TransportFault(FaultName.RESPONSE_ERROR.value, f"Response status {status}."),
                **common,
            )
        if not text.strip():
            return TransportOutcome(data=None, **common)
        if is_json_content_type(content_type):
            try:
                data = json.loads(text)
            except ValueError as exc:
                return TransportOutcome(
                    data=None,
                    fault=TransportFault(FaultName.RESPONSE_PARSE.value, str(exc)),
                    **common,
                )
            return TransportOutcome(data=data, **common)
        if 200 <= status < 300 and is_json_content_type(self.options.accept):
            return TransportOutcome(
                data=None,
                fault=TransportFault(
                    FaultName.CONTENT_TYPE_MISMATCH.value,
                    f"Content-Type[{content_type}] does not match Accept[{self.options.accept}].",
                ),
                **common,
            )
        # Opaque, typically an HTML error page.
        return TransportOutcome(data=text, **common)

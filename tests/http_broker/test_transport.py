"""Tests for the httpx transport adapter using ``httpx.MockTransport``."""

from __future__ import annotations

import json

import httpx
import pytest

from broker_fakes import make_options
from HttpBroker.transport import FaultName, HttpxTransportAdapter, fault_from_exception


def adapter_for(handler, **options) -> HttpxTransportAdapter:
    return HttpxTransportAdapter(make_options(**options), transport=httpx.MockTransport(handler))


def json_response(status: int, payload, **kwargs) -> httpx.Response:
    return httpx.Response(status, json=payload, **kwargs)


def test_builds_url_query_and_json_body() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        seen["accept"] = request.headers["Accept"]
        return json_response(201, {"id": 9})

    adapter = adapter_for(handler, method="POST", service_path="v1")
    result = adapter.send("POST", ["team a"], {"dry": "1"}, {"name": "x"})

    assert seen == {
        "url": "https://api.example.com/v1/users/team%20a?dry=1",
        "method": "POST",
        "body": {"name": "x"},
        "accept": "application/json",
    }
    assert result.ok
    assert result.status == 201
    assert result.data == {"id": 9}
    assert result.headers == {}
    assert result.headers_recorded is False


def test_records_headers_when_requested() -> None:
    adapter = adapter_for(
        lambda request: json_response(200, {}, headers={"X-Request-Id": "r1"}),
        get_headers=True,
    )
    result = adapter.send("GET", [], {}, None)
    assert result.headers_recorded is True
    assert result.headers["x-request-id"] == "r1"


def test_required_headers_imply_recording() -> None:
    adapter = adapter_for(lambda request: json_response(200, {}), require_response_headers=["ETag"])
    assert adapter.send("GET", [], {}, None).headers_recorded is True


def test_server_error_is_a_fault_with_status() -> None:
    adapter = adapter_for(lambda request: httpx.Response(503, text="down"))
    result = adapter.send("GET", [], {}, None)
    assert result.status == 503
    assert result.fault.name == FaultName.RESPONSE_ERROR.value
    assert result.data is None


def test_empty_body_is_no_data() -> None:
    result = adapter_for(lambda request: httpx.Response(204)).send("DELETE", ["1"], {}, None)
    assert result.ok
    assert result.data is None


def test_invalid_json_is_parse_fault() -> None:
    adapter = adapter_for(
        lambda request: httpx.Response(
            200, content=b"{oops", headers={"Content-Type": "application/json"}
        )
    )
    result = adapter.send("GET", [], {}, None)
    assert result.fault.name == FaultName.RESPONSE_PARSE.value
    assert result.status == 200


def test_html_success_is_content_type_mismatch() -> None:
    adapter = adapter_for(lambda request: httpx.Response(200, html="<p>hi</p>"))
    result = adapter.send("GET", [], {}, None)
    assert result.fault.name == FaultName.CONTENT_TYPE_MISMATCH.value


def test_html_not_found_is_opaque_text() -> None:
    adapter = adapter_for(lambda request: httpx.Response(404, html="<h1>Not Found</h1>"))
    result = adapter.send("GET", [], {}, None)
    assert result.ok
    assert result.data == "<h1>Not Found</h1>"
    assert "html" in result.content_type


@pytest.mark.parametrize(
    "exc,fault",
    [
        (httpx.ConnectTimeout("timed out"), FaultName.REQUEST_TIMED_OUT),
        (httpx.ReadTimeout("timed out"), FaultName.REQUEST_TIMED_OUT),
        (httpx.ConnectError("[Errno -2] Name or service not known"), FaultName.HOST_NOT_FOUND),
        (httpx.ConnectError("[Errno 111] Connection refused"), FaultName.CONNECTION_FAILED),
        (httpx.RemoteProtocolError("Server disconnected"), FaultName.RESPONSE_FALSE),
        (httpx.ProxyError("proxy says no"), FaultName.TRANSPORT_ERROR),
    ],
)
def test_exceptions_become_faults(exc: Exception, fault: FaultName) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc

    result = adapter_for(handler).send("GET", [], {}, None)
    assert result.status == 0
    assert result.fault.name == fault.value


def test_too_many_redirects() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(302, headers={"Location": str(request.url)})

    result = adapter_for(handler, max_redirects=2).send("GET", [], {}, None)
    assert result.fault.name == FaultName.TOO_MANY_REDIRECTS.value


def test_malformed_url() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.UnsupportedProtocol("Request URL has an unsupported protocol 'ftp://'.")

    result = adapter_for(handler).send("GET", [], {}, None)
    assert result.fault.name == FaultName.URL_MALFORMED.value


def test_fault_from_unknown_exception() -> None:
    fault = fault_from_exception(RuntimeError("boom"))
    assert fault.name == FaultName.TRANSPORT_ERROR.value
    assert "RuntimeError" in fault.message


def test_reset_drops_owned_client() -> None:
    adapter = adapter_for(lambda request: json_response(200, {}))
    first = adapter.client
    adapter.reset()
    assert adapter.client is not first
    adapter.close()

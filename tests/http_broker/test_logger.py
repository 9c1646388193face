"""Tests for request logging, masking and the message catalog."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from HttpBroker.errors import (
    ErrorCode,
    HttpConfigurationError,
    HttpResponseError,
    HttpResponseValidationError,
)
from HttpBroker.logger import HttpLogger, JSONFormatter, mask_sensitive_data, setup_logging
from HttpBroker.text import MESSAGE_KEY_USER_REPORT, CatalogTextResolver, message_key


class TestMasking:
    def test_masks_nested_credentials(self) -> None:
        payload = {
            "headers": {"Authorization": "Bearer abc", "Accept": "application/json"},
            "query": {"api_key": "k", "q": "x"},
            "items": [{"password": "p"}],
            "note": "bearer xyz",
        }
        masked = mask_sensitive_data(payload)
        assert masked["headers"] == {"Authorization": "***masked***", "Accept": "application/json"}
        assert masked["query"] == {"api_key": "***masked***", "q": "x"}
        assert masked["items"] == [{"password": "***masked***"}]
        assert masked["note"] == "***masked***"
        assert payload["query"]["api_key"] == "k"

    def test_formatter_emits_masked_json(self) -> None:
        record = logging.LogRecord("HttpBroker.request", logging.ERROR, __file__, 1, "failed", None, None)
        record.extra_fields = {"operation": "a.b.c.GET", "variables": {"token": "t"}}
        payload = json.loads(JSONFormatter().format(record))
        assert payload["level"] == "ERROR"
        assert payload["message"] == "failed"
        assert payload["operation"] == "a.b.c.GET"
        assert payload["variables"] == {"token": "***masked***"}
        assert payload["timestamp"].endswith("Z")


class TestHttpLogger:
    def test_record_fields(self, caplog) -> None:
        fault = HttpResponseError("status 503", code=ErrorCode.SERVICE_UNAVAILABLE)
        with caplog.at_level(logging.DEBUG, logger="HttpBroker"):
            HttpLogger("billing", "a.b.c.GET").warning(
                "Http response evaluation,", fault=fault, context={"final_status": 503}
            )
        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.getMessage() == "Http response evaluation, a.b.c.GET"
        assert record.exc_info[1] is fault
        assert record.extra_fields == {
            "log_type": "billing",
            "operation": "a.b.c.GET",
            "error_code": "service-unavailable",
            "context": {"final_status": 503},
        }

    def test_validation_records_in_message(self, caplog) -> None:
        fault = HttpResponseValidationError(
            "invalid", records={"default": ["(root): 'id' is a required property"]}
        )
        with caplog.at_level(logging.ERROR, logger="HttpBroker"):
            HttpLogger("http-client", "a.b.c.GET").error("Http validate response,", fault=fault)
        message = caplog.records[-1].getMessage()
        assert "Discrepancies recorded vs. rule set(s):" in message
        assert "  (root): 'id' is a required property" in message

    def test_disabled_level_is_skipped(self, caplog) -> None:
        with caplog.at_level(logging.ERROR, logger="HttpBroker"):
            HttpLogger("http-client", "a.b.c.GET").debug("Http request ▷")
        assert caplog.records == []

    def test_unknown_severity(self) -> None:
        with pytest.raises(ValueError):
            HttpLogger("http-client", "a.b.c.GET").log("loud", "x")


def test_setup_logging_writes_json_lines(tmp_path: Path) -> None:
    logger = setup_logging(level="DEBUG", log_dir=tmp_path)
    setup_logging(level="DEBUG", log_dir=tmp_path)
    assert len([h for h in logger.handlers if getattr(h, "_httpbroker_managed", False)]) == 2

    HttpLogger("http-client", "a.b.c.GET").error("Http request failed,")
    for handler in logger.handlers:
        handler.flush()

    (log_file,) = tmp_path.glob("httpbroker-*.jsonl")
    entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
    assert entry["message"] == "Http request failed, a.b.c.GET"
    assert entry["logger"] == "HttpBroker.request"


class TestTextResolver:
    def test_placeholders(self) -> None:
        text = CatalogTextResolver().resolve(
            MESSAGE_KEY_USER_REPORT, {"error": "1930:http:timeout", "application-title": "Shop"}
        )
        assert text == "Please report this error (1930:http:timeout) to the support of Shop."

    def test_every_code_has_text(self) -> None:
        resolver = CatalogTextResolver()
        for code in ErrorCode:
            if code is ErrorCode.NONE:
                continue
            assert message_key(code) in resolver.messages, code.slug

    def test_fallbacks(self) -> None:
        resolver = CatalogTextResolver({"http:error:remote": "Remote down."})
        assert resolver.resolve("http:error:remote", {}) == "Remote down."
        assert resolver.resolve("http:error:no-such", {"application-title": "Shop"}) == (
            "Sorry, Shop failed to communicate with a remote service."
        )
        assert resolver.resolve("other:key", {}) == "other:key"

    def test_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "messages.yaml"
        path.write_text('"http:error:timeout": "Too slow."\n', encoding="utf-8")
        assert CatalogTextResolver.from_file(path).resolve("http:error:timeout", {}) == "Too slow."

    @pytest.mark.parametrize("content", ["- a\n- b\n", "a: [unclosed"])
    def test_from_bad_file(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "messages.yaml"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(HttpConfigurationError):
            CatalogTextResolver.from_file(path)

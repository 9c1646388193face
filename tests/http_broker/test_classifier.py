"""Unit and property tests for the outcome decision table.

Test Coverage:
- Every fault kind row: error code, final status, original-status header
- Server-error branching on the remote status
- Status rules incl. 204/404 disambiguation via option flags
- Required-header check only when nothing else failed, case-insensitive
- Exhaustiveness: every declared fault name and any status yields one code
"""

from __future__ import annotations

import pytest
from hypothesis import given, settings, strategies as st

from broker_fakes import make_options, outcome
from HttpBroker.classifier import (
    FAULT_KINDS,
    FAULT_TABLE,
    FaultKind,
    OutcomeClassifier,
    REMOTE_STATUS_CODES,
    STATUS_RULES,
    fault_kind,
)
from HttpBroker.envelope import HEADER_FINAL_STATUS, HEADER_ORIGINAL_STATUS, SUCCESS_STATUSES
from HttpBroker.errors import ErrorCode
from HttpBroker.transport import FaultName, TransportFault

CLASSIFIER = OutcomeClassifier(error_code_offset=1900)


def classify(result, **options):
    return CLASSIFIER.classify(result, make_options(**options))


class TestSuccess:
    @pytest.mark.parametrize("status", [200, 201, 202, 304])
    def test_plain_success_statuses(self, status: int) -> None:
        envelope, code = classify(outcome(status, {"id": 1}))
        assert code is ErrorCode.NONE
        assert envelope.status == status
        assert envelope.body.success is True
        assert envelope.body.code == 0
        assert envelope.body.data == {"id": 1}
        assert envelope.headers[HEADER_ORIGINAL_STATUS] == status
        assert envelope.headers[HEADER_FINAL_STATUS] == status

    def test_204_passes_without_resource_flag(self) -> None:
        envelope, code = classify(outcome(204))
        assert code is ErrorCode.NONE
        assert envelope.body.success is True

    def test_204_with_resource_flag_is_not_found(self) -> None:
        envelope, code = classify(outcome(204), err_on_resource_not_found=True)
        assert code is ErrorCode.RESOURCE_NOT_FOUND
        assert envelope.status == 204
        assert envelope.body.success is False
        assert envelope.body.code == 1961


class TestNotFound:
    def test_404_resource_flag(self) -> None:
        envelope, code = classify(
            outcome(404, {"error": "no such user"}),
            err_on_resource_not_found=True,
            err_on_endpoint_not_found=False,
        )
        assert code is ErrorCode.RESOURCE_NOT_FOUND
        assert envelope.status == 404
        assert envelope.body.status == 404
        assert envelope.body.success is False

    def test_404_html_with_endpoint_flag(self) -> None:
        envelope, code = classify(
            outcome(404, "<html>Not Found</html>", content_type="text/html"),
            err_on_endpoint_not_found=True,
            err_on_resource_not_found=True,
        )
        assert code is ErrorCode.ENDPOINT_NOT_FOUND
        assert envelope.status == 404

    def test_404_json_with_endpoint_flag_falls_to_resource(self) -> None:
        _, code = classify(
            outcome(404, {"error": "no such user"}),
            err_on_endpoint_not_found=True,
            err_on_resource_not_found=True,
        )
        assert code is ErrorCode.RESOURCE_NOT_FOUND

    def test_404_without_flags_passes(self) -> None:
        envelope, code = classify(outcome(404, {"error": "no such user"}))
        assert code is ErrorCode.NONE
        assert envelope.body.success is True


class TestRemoteStatus:
    @pytest.mark.parametrize(
        "status,expected",
        [
            (400, ErrorCode.REMOTE_VALIDATION_BAD),
            (401, ErrorCode.UNAUTHENTICATED),
            (403, ErrorCode.UNAUTHORIZED),
            (409, ErrorCode.REMOTE_CONFLICT),
            (412, ErrorCode.REMOTE_VALIDATION_FAILED),
            (422, ErrorCode.REMOTE_VALIDATION_FAILED),
        ],
    )
    def test_status_keeps_value_and_fails_body(self, status: int, expected: ErrorCode) -> None:
        envelope, code = classify(outcome(status, {"error": "x"}))
        assert code is expected
        assert envelope.status == status
        assert envelope.body.success is False
        assert envelope.headers[HEADER_FINAL_STATUS] == status

    @pytest.mark.parametrize("status", [203, 206, 302, 418, 429])
    def test_unexpected_status_forced_to_bad_gateway(self, status: int) -> None:
        envelope, code = classify(outcome(status, None))
        assert code is ErrorCode.BENIGN_STATUS_UNEXPECTED
        assert envelope.status == 502
        assert envelope.body.status == status
        assert envelope.headers[HEADER_ORIGINAL_STATUS] == status
        assert envelope.headers[HEADER_FINAL_STATUS] == 502


class TestFaults:
    def test_server_error_500_becomes_bad_gateway(self) -> None:
        envelope, code = classify(outcome(500, "boom", fault=FaultName.RESPONSE_ERROR.value))
        assert code is ErrorCode.REMOTE
        assert envelope.status == 502
        assert envelope.body.status == 502
        assert envelope.body.code == 1950
        assert envelope.headers[HEADER_ORIGINAL_STATUS] == 500
        assert envelope.headers[HEADER_FINAL_STATUS] == 502

    @pytest.mark.parametrize(
        "status,expected",
        [
            (502, ErrorCode.REMOTE_PROPAGATED),
            (503, ErrorCode.SERVICE_UNAVAILABLE),
            (504, ErrorCode.TIMEOUT_PROPAGATED),
        ],
    )
    def test_server_error_status_kept(self, status: int, expected: ErrorCode) -> None:
        envelope, code = classify(outcome(status, fault=FaultName.RESPONSE_ERROR.value))
        assert code is expected
        assert envelope.status == status
        assert envelope.body.success is False

    def test_server_error_other_status_is_malign(self) -> None:
        envelope, code = classify(outcome(507, fault=FaultName.RESPONSE_ERROR.value))
        assert code is ErrorCode.MALIGN_STATUS_UNEXPECTED
        assert envelope.status == 502
        assert envelope.body.status == 507

    def test_timeout_rewrites_original_status(self) -> None:
        envelope, code = classify(outcome(0, fault=FaultName.REQUEST_TIMED_OUT.value))
        assert code is ErrorCode.TIMEOUT
        assert envelope.status == 504
        assert envelope.headers[HEADER_ORIGINAL_STATUS] == 504
        assert envelope.headers[HEADER_FINAL_STATUS] == 504

    @pytest.mark.parametrize(
        "fault", [FaultName.HOST_NOT_FOUND.value, FaultName.CONNECTION_FAILED.value]
    )
    def test_unreachable_host(self, fault: str) -> None:
        envelope, code = classify(outcome(0, fault=fault))
        assert code is ErrorCode.HOST_UNAVAILABLE
        assert envelope.status == 502
        assert envelope.headers[HEADER_ORIGINAL_STATUS] == 502

    @pytest.mark.parametrize(
        "fault,expected,status",
        [
            (FaultName.RESPONSE_FALSE.value, ErrorCode.RESPONSE_NONE, 502),
            (FaultName.CONTENT_TYPE_MISMATCH.value, ErrorCode.RESPONSE_TYPE, 502),
            (FaultName.RESPONSE_PARSE.value, ErrorCode.RESPONSE_FORMAT, 502),
            (FaultName.TOO_MANY_REDIRECTS.value, ErrorCode.TOO_MANY_REDIRECTS, 502),
            (FaultName.URL_MALFORMED.value, ErrorCode.LOCAL_USE, 500),
            (FaultName.TRANSPORT_ERROR.value, ErrorCode.UNKNOWN, 500),
            ("something_new", ErrorCode.UNKNOWN, 500),
        ],
    )
    def test_fault_rows(self, fault: str, expected: ErrorCode, status: int) -> None:
        envelope, code = classify(outcome(0, fault=fault))
        assert code is expected
        assert envelope.status == status
        assert envelope.body.success is False

    def test_status_zero_without_rewrite_has_no_original_header(self) -> None:
        envelope, _ = classify(outcome(0, fault=FaultName.URL_MALFORMED.value))
        assert HEADER_ORIGINAL_STATUS not in envelope.headers

    def test_server_error_without_status_reads_as_500(self) -> None:
        envelope, code = classify(outcome(0, fault=FaultName.RESPONSE_ERROR.value))
        assert code is ErrorCode.REMOTE
        assert envelope.status == 502
        assert HEADER_ORIGINAL_STATUS not in envelope.headers

    @pytest.mark.parametrize("fault", [FaultName.RESPONSE_ERROR.value, FaultName.RESPONSE_PARSE.value])
    def test_fault_payload_is_dropped(self, fault: str) -> None:
        envelope, _ = classify(outcome(500, "<html>Traceback: password=x</html>", fault=fault))
        assert envelope.body.data is None


class TestRequiredHeaders:
    def test_missing_header_forces_bad_gateway(self) -> None:
        envelope, code = classify(
            outcome(200, {"id": 1}, headers={"X-Other": "1"}, headers_recorded=True),
            require_response_headers=["X-Request-Id"],
        )
        assert code is ErrorCode.HEADER_MISSING
        assert envelope.status == 502
        assert envelope.body.status == 200
        assert envelope.body.success is False

    def test_header_match_is_case_insensitive(self) -> None:
        _, code = classify(
            outcome(200, {"id": 1}, headers={"x-request-id": "abc"}, headers_recorded=True),
            require_response_headers="X-Request-Id",
        )
        assert code is ErrorCode.NONE

    def test_earlier_code_is_not_overridden(self) -> None:
        _, code = classify(
            outcome(404, {}, headers={}, headers_recorded=True),
            require_response_headers=["X-Request-Id"],
            err_on_resource_not_found=True,
        )
        assert code is ErrorCode.RESOURCE_NOT_FOUND

    def test_recorded_headers_kept_only_with_get_headers(self) -> None:
        result = outcome(200, {}, headers={"ETag": "v1"}, headers_recorded=True)
        without, _ = classify(result)
        with_headers, _ = classify(result, get_headers=True)
        assert without.original_headers == {}
        assert with_headers.original_headers == {"ETag": "v1"}


class TestTables:
    def test_every_fault_name_has_a_kind(self) -> None:
        for name in FaultName:
            if name is FaultName.TRANSPORT_ERROR:
                assert fault_kind(TransportFault(name.value)) is FaultKind.UNCLASSIFIED
            else:
                assert name.value in FAULT_KINDS

    def test_every_kind_but_server_error_has_a_row(self) -> None:
        assert set(FAULT_TABLE) == set(FaultKind) - {FaultKind.SERVER_ERROR}

    def test_status_rules_only_pass_accepted_statuses(self) -> None:
        for rule in STATUS_RULES:
            if rule.verdict.success:
                assert set(rule.statuses) <= SUCCESS_STATUSES

    def test_remote_status_codes_exclude_faults_and_headers(self) -> None:
        assert ErrorCode.SERVICE_UNAVAILABLE in REMOTE_STATUS_CODES
        assert ErrorCode.BENIGN_STATUS_UNEXPECTED in REMOTE_STATUS_CODES
        assert ErrorCode.HEADER_MISSING not in REMOTE_STATUS_CODES
        for verdict in FAULT_TABLE.values():
            assert verdict.code not in REMOTE_STATUS_CODES


@settings(max_examples=300, deadline=None)
@given(
    fault=st.one_of(st.none(), st.sampled_from([name.value for name in FaultName])),
    status=st.integers(min_value=0, max_value=599),
    endpoint_flag=st.booleans(),
    resource_flag=st.booleans(),
    content_type=st.sampled_from(["application/json", "text/html", ""]),
)
def test_every_outcome_maps_to_exactly_one_consistent_code(
    fault, status, endpoint_flag, resource_flag, content_type
) -> None:
    if fault is None and status < 100:
        status += 200
    envelope, code = classify(
        outcome(status, None, fault=fault, content_type=content_type),
        err_on_endpoint_not_found=endpoint_flag,
        err_on_resource_not_found=resource_flag,
    )
    assert isinstance(code, ErrorCode)
    assert envelope.body.code == code.reported(1900)
    assert envelope.body.success is (code is ErrorCode.NONE)
    assert envelope.is_consistent
    assert 100 <= envelope.status <= 599
    if fault is not None:
        assert code is not ErrorCode.NONE
        assert envelope.headers[HEADER_FINAL_STATUS] == envelope.status
    if code is ErrorCode.NONE:
        assert status in SUCCESS_STATUSES

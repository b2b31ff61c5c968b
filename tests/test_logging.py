"""
Tests for the structured logging module.
"""

import json
import logging

from browza.errors import StoreUnavailableError
from browza.logging import (
    AdmissionLog,
    JSONFormatter,
    LogContext,
    StructuredLogger,
    TransitionLog,
    generate_request_id,
    timed,
)


class TestLogContext:
    def test_with_update(self):
        ctx = LogContext(request_id="r1", host="www.example.com")
        updated = ctx.with_update(operation="admit", extra={"k": "v"})

        assert updated.request_id == "r1"
        assert updated.operation == "admit"
        assert updated.to_dict()["k"] == "v"
        assert ctx.operation is None


class TestStructuredLogger:
    def test_request_context_nests_under_existing_id(self):
        logger = StructuredLogger("browza.tests.ctx")

        with logger.request_context() as outer:
            with logger.request_context(operation="admit") as inner:
                assert inner == outer
                assert logger.context.operation == "admit"
        assert logger.context.request_id is None

    def test_records_are_json(self, caplog):
        logger = StructuredLogger("browza.tests.json")

        with caplog.at_level(logging.INFO, logger="browza.tests.json"):
            with logger.request_context(request_id="req_fixed"):
                logger.log_admission(AdmissionLog(request_id="req_fixed", outcome="path_blocked"))
                logger.log_transition(TransitionLog(job_id="job_1", previous_status="queued", status="running"))

        first, second = [json.loads(r.getMessage()) for r in caplog.records]
        assert first["message"] == "Job rejected: path_blocked"
        assert first["request_id"] == "req_fixed"
        assert second["message"] == "Job job_1 queued -> running"

    def test_info_carries_keyword_fields(self, caplog):
        logger = StructuredLogger("browza.tests.info")

        with caplog.at_level(logging.INFO, logger="browza.tests.info"):
            logger.info("Allow-list host added", host="www.example.com")

        payload = json.loads(caplog.records[-1].getMessage())
        assert payload["message"] == "Allow-list host added"
        assert payload["host"] == "www.example.com"
        assert not hasattr(logger, "debug")

    def test_log_error_includes_code(self, caplog):
        logger = StructuredLogger("browza.tests.err")

        with caplog.at_level(logging.INFO, logger="browza.tests.err"):
            logger.log_error(StoreUnavailableError("down"), "lookup failed")

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert json.loads(record.getMessage())["error_code"] == "store_unavailable"


def test_json_formatter_merges_payload():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, json.dumps({"message": "hi", "a": 1}), None, None)
    out = json.loads(JSONFormatter().format(record))

    assert out["message"] == "hi"
    assert out["a"] == 1
    assert out["level"] == "INFO"


def test_generate_request_id():
    assert generate_request_id().startswith("req_")
    assert generate_request_id() != generate_request_id()


def test_timed():
    with timed() as timer:
        pass
    assert timer.elapsed_ms >= 0

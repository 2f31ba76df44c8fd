"""Tests for ghardaar/logging/audit.py — JSON audit logging."""

import json
import logging
import sys
from contextvars import copy_context

import pytest

from ghardaar.logging.audit import (
    MASK,
    JSONFormatter,
    RequestTimer,
    bind_request,
    generate_request_id,
    get_audit_logger,
    mask_sensitive,
    request_id_var,
    setup_logging,
)


class TestJSONFormatter:

    def test_output_is_valid_json(self):
        formatter = JSONFormatter()
        record = logging.LogRecord(
            name="test", level=logging.INFO, pathname="",
            lineno=0, msg="hello", args=(), exc_info=None,
        )
        output = formatter.format(record)
        parsed = json.loads(output)
        assert parsed["message"] == "hello"
        assert parsed["level"] == "INFO"
        assert "timestamp" in parsed

    def test_includes_request_id(self):
        token = request_id_var.set("req-abc123")
        try:
            formatter = JSONFormatter()
            record = logging.LogRecord(
                name="test", level=logging.INFO, pathname="",
                lineno=0, msg="test", args=(), exc_info=None,
            )
            output = formatter.format(record)
            parsed = json.loads(output)
            assert parsed["request_id"] == "req-abc123"
        finally:
            request_id_var.reset(token)

    def test_includes_audit_data(self):
        formatter = JSONFormatter()
        record = logging.LogRecord(
            name="test", level=logging.INFO, pathname="",
            lineno=0, msg="test", args=(), exc_info=None,
        )
        record.audit_data = {"route": "log-to-sheets", "client_ip": "1.2.3.4"}
        output = formatter.format(record)
        parsed = json.loads(output)
        assert parsed["route"] == "log-to-sheets"
        assert parsed["client_ip"] == "1.2.3.4"

    def test_empty_request_id_default(self):
        formatter = JSONFormatter()
        record = logging.LogRecord(
            name="test", level=logging.INFO, pathname="",
            lineno=0, msg="test", args=(), exc_info=None,
        )
        output = formatter.format(record)
        parsed = json.loads(output)
        assert parsed["request_id"] == ""


class TestGenerateRequestId:

    def test_length(self):
        rid = generate_request_id()
        assert len(rid) == 12

    def test_uniqueness(self):
        ids = {generate_request_id() for _ in range(100)}
        assert len(ids) == 100

    def test_hex_chars_only(self):
        rid = generate_request_id()
        assert all(c in "0123456789abcdef" for c in rid)


class TestRequestTimer:

    def test_measures_elapsed(self):
        with RequestTimer() as timer:
            # Do a tiny computation
            _ = sum(range(1000))
        assert timer.elapsed_ms > 0
        assert isinstance(timer.elapsed_ms, float)


class TestSetupLogging:

    def test_creates_stdout_handler(self, override_settings):
        override_settings(AUDIT_LOG_FILE="")
        setup_logging()
        logger = get_audit_logger()
        assert len(logger.handlers) >= 1
        assert any(isinstance(h, logging.StreamHandler) for h in logger.handlers)

    def test_logger_does_not_propagate(self, override_settings):
        override_settings(AUDIT_LOG_FILE="")
        setup_logging()
        assert get_audit_logger().name == "ghardaar.audit"
        assert get_audit_logger().propagate is False

    def test_file_handler_when_configured(self, override_settings, tmp_path):
        path = tmp_path / "audit.log"
        override_settings(AUDIT_LOG_FILE=str(path))
        setup_logging()
        logger = get_audit_logger()
        assert any(isinstance(h, logging.FileHandler) for h in logger.handlers)
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()


class TestExceptionFormatting:

    def test_exception_included(self):
        formatter = JSONFormatter()
        try:
            raise RuntimeError("sheet append failed")
        except RuntimeError:
            record = logging.LogRecord(
                name="test", level=logging.ERROR, pathname="",
                lineno=0, msg="failed", args=(), exc_info=sys.exc_info(),
            )
        parsed = json.loads(formatter.format(record))
        assert "sheet append failed" in parsed["exception"]


def _record(**audit_data) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test", level=logging.INFO, pathname="",
        lineno=0, msg="test", args=(), exc_info=None,
    )
    if audit_data:
        record.audit_data = audit_data
    return record


class TestRequestBinding:

    def test_bind_sets_id_and_route(self):
        def handle():
            rid = bind_request("PATCH", "/api/staff/crm/clients/c1")
            return rid, json.loads(JSONFormatter().format(_record()))

        rid, parsed = copy_context().run(handle)
        assert len(rid) == 12
        assert parsed["request_id"] == rid
        assert parsed["route"] == "PATCH /api/staff/crm/clients/c1"

    def test_no_route_outside_a_request(self):
        parsed = json.loads(JSONFormatter().format(_record()))
        assert "route" not in parsed

    async def test_middleware_stamps_lines_logged_by_routes(self, app_client, fake_backend, admin_headers):
        lines: list[str] = []
        handler = logging.Handler()
        handler.emit = lambda record: lines.append(JSONFormatter().format(record))
        logger = get_audit_logger()
        logger.addHandler(handler)
        old_level = logger.level
        logger.setLevel(logging.DEBUG)
        try:
            resp = await app_client.post("/api/delete-staff", headers=admin_headers, json={"staffId": "staff-1"})
        finally:
            logger.removeHandler(handler)
            logger.setLevel(old_level)

        entries = [json.loads(line) for line in lines]
        assert entries
        assert {e["route"] for e in entries} == {"POST /api/delete-staff"}
        assert {e["request_id"] for e in entries} == {resp.headers["x-request-id"]}


class TestMasking:

    def test_credential_keys_masked(self):
        parsed = json.loads(JSONFormatter().format(_record(
            email="nina@ghardaar.in", password="hunter22", access_token="t", gemini_api_key="k",
        )))
        assert parsed["email"] == "nina@ghardaar.in"
        assert parsed["password"] == MASK
        assert parsed["access_token"] == MASK
        assert parsed["gemini_api_key"] == MASK

    def test_nested_and_lookalike_keys(self):
        masked = mask_sensitive({"body": {"Authorization": "Bearer x", "name": "Nina"}, "keyword": "2bhk"})
        assert masked == {"body": {"Authorization": MASK, "name": "Nina"}, "keyword": "2bhk"}

    def test_input_not_mutated(self):
        data = {"password": "hunter22"}
        mask_sensitive(data)
        assert data == {"password": "hunter22"}

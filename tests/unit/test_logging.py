"""Unit tests for the structured logging configuration.

Verifies that ``configure_logging()`` produces well-formed JSON, that the
``request_id_var`` context variable is propagated, and that device ids and
client addresses never reach the rendered output.
"""

from __future__ import annotations

import json
import logging
from io import StringIO

from echo_garden.core.logging_config import configure_logging, request_id_var


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _capture_log_output(log_level: str, message: str, **extra) -> str:
    """Emit a single log record and capture the raw text written to stdout."""
    configure_logging(log_level)

    buffer = StringIO()
    root = logging.getLogger()
    original_streams = []
    for handler in root.handlers:
        if hasattr(handler, "stream"):
            original_streams.append((handler, handler.stream))
            handler.stream = buffer

    logger = logging.getLogger("test.logging_config")
    logger.info(message, extra=extra if extra else {})

    for handler, stream in original_streams:
        handler.flush()
        handler.stream = stream

    return buffer.getvalue()


def _record(output: str, event: str) -> dict:
    records = [json.loads(line) for line in output.strip().splitlines() if line.strip()]
    target = next((r for r in records if r.get("event") == event), None)
    assert target is not None, f"No record with event={event!r} in {output!r}"
    return target


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestConfigureLoggingJson:
    def test_every_line_is_json(self) -> None:
        output = _capture_log_output("INFO", "feed_assembled")
        lines = [line for line in output.strip().splitlines() if line.strip()]
        assert lines
        for line in lines:
            assert isinstance(json.loads(line), dict)

    def test_required_fields_present(self) -> None:
        record = _record(_capture_log_output("INFO", "required_fields_test"), "required_fields_test")
        assert {"timestamp", "level", "logger"} <= record.keys()
        assert record["level"] == "info"
        assert record["logger"] == "test.logging_config"

    def test_extra_fields_rendered(self) -> None:
        output = _capture_log_output("INFO", "trending_recompute_complete", updated=12)
        assert _record(output, "trending_recompute_complete")["updated"] == 12

    def test_unknown_level_falls_back_to_info(self) -> None:
        configure_logging("chatty")
        assert logging.getLogger().level == logging.INFO


class TestIdentifierMasking:
    def test_device_id_masked(self) -> None:
        output = _capture_log_output("INFO", "viewer_resolved", device_id="d3v1c3-abc")
        assert _record(output, "viewer_resolved")["device_id"] == "[REDACTED]"
        assert "d3v1c3-abc" not in output

    def test_ip_address_masked(self) -> None:
        output = _capture_log_output("INFO", "upload_checked", ip_address="203.0.113.5")
        assert "203.0.113.5" not in output

    def test_nested_header_masked(self) -> None:
        output = _capture_log_output(
            "INFO",
            "request_headers",
            headers={"X-Device-ID": "secret-device", "accept": "application/json"},
        )
        headers = _record(output, "request_headers")["headers"]
        assert headers["X-Device-ID"] == "[REDACTED]"
        assert headers["accept"] == "application/json"

    def test_ordinary_ids_untouched(self) -> None:
        output = _capture_log_output("INFO", "clip_status_changed", clip_id="c-1")
        assert _record(output, "clip_status_changed")["clip_id"] == "c-1"


class TestRequestIdContextVar:
    def test_request_id_appears_in_json_output(self) -> None:
        token = request_id_var.set("test-req-1234")
        try:
            output = _capture_log_output("INFO", "request_id_propagation_test")
        finally:
            request_id_var.reset(token)

        assert _record(output, "request_id_propagation_test")["request_id"] == "test-req-1234"

    def test_no_request_id_when_var_unset(self) -> None:
        request_id_var.set(None)
        output = _capture_log_output("INFO", "no_request_id_test")
        assert _record(output, "no_request_id_test").get("request_id") is None


class TestConfigureLoggingIdempotent:
    def test_calling_twice_does_not_duplicate_handlers(self) -> None:
        configure_logging("INFO")
        configure_logging("INFO")
        assert len(logging.getLogger().handlers) == 1

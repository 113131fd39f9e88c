"""Unit tests for the JSON line log formatter"""
import json
import logging

from core.logging import JsonFormatter


def _record(**extra):
    record = logging.LogRecord("service.job_adapter", logging.INFO, __file__, 1, "v2data completed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:

    def test_structured_fields(self):
        line = JsonFormatter().format(_record(trace_id="t1", job_key="v2data", batch=1, latency_ms=42))
        payload = json.loads(line)

        assert payload["msg"] == "v2data completed"
        assert payload["level"] == "INFO"
        assert payload["job_key"] == "v2data"
        assert payload["batch"] == 1
        assert payload["latency_ms"] == 42
        assert payload["ts"].endswith("Z")

    def test_unknown_extras_are_dropped(self):
        payload = json.loads(JsonFormatter().format(_record(access_token="secret")))
        assert "access_token" not in payload

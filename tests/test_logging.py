"""Tests for the JSON log formatter."""

import json
import logging

from src.shared.infrastructure.logging import CustomJsonFormatter, log_latency


def format_record(**extra) -> dict:
    formatter = CustomJsonFormatter("%(name)s %(levelname)s %(message)s", environment="test")
    record = logging.LogRecord("guardrails", logging.INFO, __file__, 1, "Guarded query received", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(formatter.format(record))


def test_adds_timestamp_environment_and_correlation_id():
    payload = format_record(correlation_id="abc-123")

    assert payload["message"] == "Guarded query received"
    assert payload["environment"] == "test"
    assert payload["correlation_id"] == "abc-123"
    assert payload["timestamp"]


def test_redacts_secret_looking_fields():
    payload = format_record(
        api_key="sk-live",
        auth_token="t0k3n",
        prompt_tokens=120,
        token_count="42",
        document_id="doc-1",
    )

    assert payload["api_key"] == "***REDACTED***"
    assert payload["auth_token"] == "***REDACTED***"
    assert payload["prompt_tokens"] == 120
    assert payload["token_count"] == "42"
    assert payload["document_id"] == "doc-1"


def test_log_latency_records_operation(caplog):
    logger = logging.getLogger("tests.latency")

    with caplog.at_level(logging.INFO, logger="tests.latency"):
        with log_latency(logger, "store_chunk", document_id="doc-1"):
            pass

    record = caplog.records[-1]
    assert record.getMessage() == "store_chunk completed"
    assert record.operation == "store_chunk"
    assert record.document_id == "doc-1"
    assert record.latency_ms >= 0

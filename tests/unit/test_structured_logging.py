"""Tests for structlog configuration and trace-id correlation."""
from __future__ import annotations

import io
import json
import logging

import pytest

from grouper_trace.observability.logging import (
    configure_logging,
    get_logger,
    request_id_ctx,
    trace_id_ctx,
)
from grouper_trace.tracing.resolver import trace
from tests.stubs.directory import StubDirectory


@pytest.fixture
def log_stream():
    stream = io.StringIO()
    configure_logging(level="DEBUG", json_output=True, stream=stream, force=True)
    yield stream
    logging.getLogger().handlers.clear()


def _records(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


def test_json_output_has_required_fields(log_stream):
    get_logger("grouper_trace.test").info("hello", group_name="org:x")

    record = _records(log_stream)[-1]
    assert record["event"] == "hello"
    assert record["level"] == "info"
    assert record["logger"] == "grouper_trace.test"
    assert record["group_name"] == "org:x"
    assert "timestamp" in record


def test_request_id_injected(log_stream):
    token = request_id_ctx.set("req-12345678")
    try:
        get_logger("grouper_trace.test").info("with_request")
    finally:
        request_id_ctx.reset(token)

    assert _records(log_stream)[-1]["request_id"] == "req-12345678"


def test_stdlib_logger_records_are_structured(log_stream):
    logging.getLogger("grouper_trace.stdlib").warning("plain %s", "message")

    record = _records(log_stream)[-1]
    assert record["event"] == "plain message"
    assert record["level"] == "warning"


def test_stdlib_extra_fields_reach_output(log_stream):
    logging.getLogger("grouper_trace.stdlib").info(
        "Cycle detected at %s", "org:x", extra={"group_name": "org:x", "depth": 2},
    )

    record = _records(log_stream)[-1]
    assert record["event"] == "Cycle detected at org:x"
    assert record["group_name"] == "org:x"
    assert record["depth"] == 2


@pytest.mark.asyncio
async def test_trace_logs_carry_trace_id(log_stream):
    directory = StubDirectory(subject_id="S1")
    directory.set_membership("X", "effective")
    directory.add_group_member("X", "X")

    await trace(directory, "S1", "X")

    records = [r for r in _records(log_stream) if r["logger"] == "grouper_trace.tracing.resolver"]
    assert any("Cycle detected" in r["event"] for r in records)
    trace_ids = {r.get("trace_id") for r in records}
    assert len(trace_ids) == 1
    assert None not in trace_ids
    assert trace_id_ctx.get() is None

"""Tests for structured logging: audit events, tracing and formatters."""

import asyncio
import json
import logging

import pytest

from qrforge.logging import AUDIT, JsonFormatter, audit, get_logger, setup_logging, trace


@pytest.fixture
def records():
    captured = []

    class Collector(logging.Handler):
        def emit(self, record):
            captured.append(record)

    root = logging.getLogger("qrforge")
    handler = Collector(level=logging.DEBUG)
    old_level = root.level
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    yield captured
    root.removeHandler(handler)
    root.setLevel(old_level)


def test_audit_event(records):
    audit("render.completed", logger=get_logger("renderer"), canvas=512)
    record = records[-1]
    assert record.levelno == AUDIT
    assert record.event == "render.completed"
    assert record.ctx == {"canvas": 512}


def test_trace_sync(records):
    @trace
    def double(x):
        return x * 2

    assert double(4) == 8
    assert [r.event for r in records[-2:]] == ["double.enter", "double.done"]
    assert records[-1].ctx == {"result": "8"}


def test_trace_async_and_errors(records):
    @trace
    async def fail():
        raise ValueError("nope")

    with pytest.raises(ValueError):
        asyncio.run(fail())
    assert records[-1].event == "fail.error"
    assert records[-1].levelno == logging.ERROR


def test_json_formatter(records):
    audit("batch.loaded", logger=get_logger("batch"), rows=3)
    entry = json.loads(JsonFormatter().format(records[-1]))
    assert entry["event"] == "batch.loaded"
    assert entry["level"] == "AUDIT"
    assert entry["ctx"] == {"rows": 3}


def test_setup_logging_writes_json_file(tmp_path):
    log_file = tmp_path / "run.jsonl"
    setup_logging(level="INFO", log_file=str(log_file))
    audit("cli.start", command="test")
    for handler in logging.getLogger("qrforge").handlers:
        handler.flush()
    line = log_file.read_text().strip().splitlines()[-1]
    assert json.loads(line)["event"] == "cli.start"

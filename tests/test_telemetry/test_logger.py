"""Tests for structured logging configuration."""

import json
import logging
import pathlib

import pytest
import structlog

import project_assistant.telemetry.logger as logger_module
from project_assistant.telemetry.logger import configure_logging, get_logger, request_log_context


@pytest.fixture
def log_dir(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> pathlib.Path:
    """Reconfigure logging to write JSON lines under a temporary directory."""
    directory = tmp_path / "logs"
    monkeypatch.setattr(logger_module, "_get_log_dir", lambda: directory)
    monkeypatch.setattr(logger_module, "_get_log_level", lambda: "DEBUG")
    structlog.reset_defaults()
    logging.root.handlers.clear()
    configure_logging()
    yield directory
    structlog.reset_defaults()
    logging.root.handlers.clear()


def last_entry(log_dir: pathlib.Path) -> dict:
    lines = (log_dir / "current.jsonl").read_text(encoding="utf-8").splitlines()
    return json.loads(lines[-1])


def test_get_logger_configures_on_first_call() -> None:
    structlog.reset_defaults()

    log = get_logger("test.module")

    assert structlog.is_configured()
    assert hasattr(log, "info")


def test_logger_emits_structured_json(log_dir) -> None:
    log = get_logger("project_assistant.tools.executor")
    log.info("tool_call_completed", tool_name="getMilestones", latency_ms=12, trace_id="trace-123")

    entry = last_entry(log_dir)
    assert entry["event"] == "tool_call_completed"
    assert entry["tool_name"] == "getMilestones"
    assert entry["latency_ms"] == 12
    assert entry["trace_id"] == "trace-123"
    assert entry["component"] == "executor"
    assert "timestamp" in entry


def test_explicit_component_wins(log_dir) -> None:
    get_logger("project_assistant.service.app").info("service_ready", component="service")

    assert last_entry(log_dir)["component"] == "service"


def test_log_directory_created(log_dir) -> None:
    assert log_dir.exists()


def test_request_context_fields_are_attached(log_dir) -> None:
    log = get_logger("project_assistant.orchestrator.orchestrator")

    with request_log_context(trace_id="t-9", tenant_id="T1", project_id=None):
        log.info("reply_ready")
    log.info("service_stopped")

    lines = (log_dir / "current.jsonl").read_text(encoding="utf-8").splitlines()
    inside, outside = json.loads(lines[-2]), json.loads(lines[-1])
    assert inside["trace_id"] == "t-9"
    assert inside["tenant_id"] == "T1"
    assert "project_id" not in inside
    assert "tenant_id" not in outside

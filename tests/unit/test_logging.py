"""JSON log lines carry the run's correlation fields."""

import json
import logging

from manuscript_observability import current_context, log_context
from manuscript_observability.logging import REDACTED, ContextFilter, JsonFormatter


def _render(message: str, **extra) -> dict:
    record = logging.makeLogRecord({"name": "tests", "levelname": "INFO", "msg": message, **extra})
    ContextFilter("analysis-worker").filter(record)
    return json.loads(JsonFormatter().format(record))


def test_bound_fields_lead_each_line() -> None:
    with log_context(report_id="deadbeef", stage="line-editing"):
        line = _render("Executing stage", attempt=2)

    assert list(line)[:3] == ["service", "report_id", "stage"]
    assert line["service"] == "analysis-worker"
    assert line["report_id"] == "deadbeef"
    assert line["attempt"] == 2
    assert line["message"] == "Executing stage"


def test_explicit_extra_wins_and_none_unbinds() -> None:
    with log_context(report_id="deadbeef", stage="assets"):
        with log_context(stage=None):
            assert current_context() == {"report_id": "deadbeef"}
            line = _render("Artifact written", report_id="cafef00d")

    assert line["report_id"] == "cafef00d"
    assert "stage" not in line
    assert current_context() == {}


def test_secret_fields_are_redacted() -> None:
    line = _render("Session created", session_id="abc123", api_key="sk-live", payload={"n": 1}, handle=object())

    assert line["session_id"] == REDACTED
    assert line["api_key"] == REDACTED
    assert line["payload"] == {"n": 1}
    assert line["handle"].startswith("<object")

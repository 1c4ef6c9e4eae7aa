"""Logging formatter, request timing and workflow counter tests."""

import json
import logging

import pytest

from osflow.middleware.logging_config import ConsoleFormatter, JsonLineFormatter, build_logging_config
from osflow.middleware.timing import get_recent_metrics, reset_metrics
from osflow.services import metrics


def _record(**extra):
    record = logging.LogRecord("osflow.test", logging.INFO, __file__, 10, "Order advanced %s", ("AUDIO",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
def test_json_line_promotes_workflow_fields():
    out = json.loads(JsonLineFormatter().format(_record(order_id="abc", stage="AUDIO", unrelated="x")))

    assert out["message"] == "Order advanced AUDIO"
    assert out["level"] == "INFO"
    assert out["order_id"] == "abc"
    assert out["stage"] == "AUDIO"
    assert "unrelated" not in out


@pytest.mark.unit
def test_console_line_tags_order_and_job():
    record = _record(order_id="1a2b3c4d-5e6f", stage="EDICAO", job_name="sla_sweep", duration_ms=12.4)

    line = ConsoleFormatter().format(record)

    assert "osflow.test [os=1a2b3c4d stage=EDICAO job=sla_sweep] Order advanced AUDIO (12ms)" in line
    assert "\033[" not in line


@pytest.mark.unit
def test_console_line_without_context():
    line = ConsoleFormatter().format(_record())

    assert line.endswith("osflow.test Order advanced AUDIO")


@pytest.mark.unit
@pytest.mark.parametrize("json_output, formatter", [(True, JsonLineFormatter), (False, ConsoleFormatter)])
def test_logging_config_picks_formatter(json_output, formatter):
    config = build_logging_config("INFO", json_output=json_output)

    assert config["formatters"]["default"]["()"] is formatter
    assert config["root"] == {"level": "INFO", "handlers": ["stderr"]}
    assert config["loggers"]["sqlalchemy.engine"] == {"level": "WARNING"}


@pytest.mark.unit
def test_counters_snapshot_is_zero_filled():
    metrics.increment("transitions", 2)

    snap = metrics.snapshot()

    assert snap["transitions"] == 2
    assert snap["audit_write_failures"] == 0
    metrics.reset()
    assert metrics.get("transitions") == 0


@pytest.mark.integration
def test_requests_are_timed(client):
    reset_metrics()

    res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "req-42"})

    assert res.headers["X-Request-ID"] == "req-42"
    assert "X-Request-Duration-Ms" in res.headers
    assert [m["path"] for m in get_recent_metrics(seconds=60)] == ["/api/v1/health/ready"]

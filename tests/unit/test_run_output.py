"""Tests for the run summary printed by ``healthprobe run``."""

from __future__ import annotations

import io

import pytest
from rich.console import Console

from healthprobe.cli import run as run_module
from healthprobe.metrics.models import MetricSnapshot, RunResult


@pytest.fixture
def output(monkeypatch: pytest.MonkeyPatch) -> io.StringIO:
    buffer = io.StringIO()
    monkeypatch.setattr(run_module, "console", Console(file=buffer, width=120))
    return buffer


def _result(summary: MetricSnapshot) -> RunResult:
    return RunResult(
        scenario_name="Health Check Endpoints",
        start_time=0.0,
        end_time=3.0,
        duration_seconds=3.0,
        pattern_description="Stages: 1s -> 2, 2s -> 0 (3s total)",
        final_summary=summary,
    )


class TestPrintSummary:
    def test_failed_requests_broken_down_by_cause(self, output: io.StringIO):
        summary = MetricSnapshot(
            timestamp=0.0,
            elapsed_seconds=3.0,
            active_users=0,
            total_requests=10,
            total_errors=4,
            errors_by_status={503: 2, 500: 1},
            errors_by_type={"ClientConnectorError": 1},
        )

        run_module._print_summary(_result(summary))

        text = output.getvalue()
        assert "Failed Requests" in text
        assert "HTTP 500" in text
        assert "HTTP 503" in text
        assert "ClientConnectorError" in text
        assert text.index("HTTP 500") < text.index("HTTP 503")

    def test_no_failure_table_without_failures(self, output: io.StringIO):
        summary = MetricSnapshot(timestamp=0.0, elapsed_seconds=3.0, active_users=0, total_requests=10)

        run_module._print_summary(_result(summary))

        text = output.getvalue()
        assert "Run Complete" in text
        assert "Failed Requests" not in text

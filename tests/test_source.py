"""
Tests for the openclaw CLI wrapper, run against tests/fake_openclaw.py.
"""
import os
import sys
import time

import pytest

from clawdash.aggregate import build_logs
from clawdash.source import (
    QUERIES, OpenClawCLI, ParseError, SourceError, UpstreamFailure, UpstreamTimeout,
    fetch_all,
)

from openclaw_samples import LOG_RECORDS

FAKE_OPENCLAW = os.path.join(os.path.dirname(os.path.abspath(__file__)), "fake_openclaw.py")


def fake_cli(mode="ok", fail="", timeout=5.0):
    env = dict(os.environ)
    env["FAKE_OPENCLAW_MODE"] = mode
    env["FAKE_OPENCLAW_FAIL"] = fail
    return OpenClawCLI([sys.executable, FAKE_OPENCLAW], timeout=timeout, env=env)


class TestQueries:
    def test_status_json(self):
        status = fake_cli().status()
        assert status["gateway"]["reachable"] is True
        assert status["sessions"]["byAgent"][0]["agentId"] == "main"

    def test_logs_ndjson(self):
        logs = fake_cli().logs()
        assert isinstance(logs, list)
        assert len(logs) == 8
        assert logs[0]["type"] == "meta"

    def test_logs_single_record_stream(self):
        logs = fake_cli(mode="single").logs()
        assert logs == [LOG_RECORDS[1]]
        payload = build_logs(logs, limit=10, level="all")
        assert [e["message"] for e in payload["logs"]] == ["main failed 1"]
        assert payload["summary"]["errors"] == 1

    def test_ndjson_accepts_single_document(self):
        health = fake_cli().run_ndjson("health", "--json")
        assert health["ok"] is True

    def test_sessions(self):
        assert len(fake_cli().sessions()["sessions"]) == 4


class TestFailures:
    def test_nonzero_exit(self):
        with pytest.raises(UpstreamFailure) as exc:
            fake_cli(mode="fail").health()
        assert "gateway unreachable" in exc.value.detail
        assert exc.value.command.endswith("health --json")

    def test_stderr_without_stdout(self):
        with pytest.raises(UpstreamFailure, match="CLI stderr"):
            fake_cli(mode="stderr").status()

    def test_non_json_output(self):
        with pytest.raises(ParseError):
            fake_cli(mode="garbage").status()

    def test_non_json_ndjson_output(self):
        with pytest.raises(ParseError):
            fake_cli(mode="garbage").logs()

    def test_timeout(self):
        with pytest.raises(UpstreamTimeout, match="timed out after 500ms"):
            fake_cli(mode="slow", timeout=0.5).status()

    def test_missing_binary(self):
        cli = OpenClawCLI(["/nonexistent/openclaw"])
        with pytest.raises(UpstreamFailure):
            cli.status()

    def test_taxonomy(self):
        for cls in (ParseError, UpstreamTimeout, UpstreamFailure):
            assert issubclass(cls, SourceError)


class _SlowSource:
    def __init__(self, delay, failing=()):
        self.delay = delay
        self.failing = failing

    def _answer(self, name):
        time.sleep(self.delay)
        if name in self.failing:
            raise UpstreamFailure(f"{name} failed")
        return {"query": name}

    def status(self):
        return self._answer("status")

    def health(self):
        return self._answer("health")

    def logs(self):
        return self._answer("logs")

    def sessions(self):
        return self._answer("sessions")


class TestFetchAll:
    def test_runs_concurrently(self):
        start = time.monotonic()
        results = fetch_all(_SlowSource(0.4), QUERIES)
        elapsed = time.monotonic() - start
        assert results == {name: {"query": name} for name in QUERIES}
        assert elapsed < 1.2

    def test_isolated_failure_becomes_none(self):
        results = fetch_all(_SlowSource(0, failing=("health", "logs")), QUERIES, isolate=True)
        assert results["health"] is None
        assert results["logs"] is None
        assert results["status"] == {"query": "status"}

    def test_failure_raises_when_not_isolated(self):
        with pytest.raises(UpstreamFailure, match="sessions failed"):
            fetch_all(_SlowSource(0, failing=("sessions",)), ["status", "sessions"], isolate=False)

    def test_against_cli(self):
        results = fetch_all(fake_cli(fail="health"), QUERIES)
        assert results["health"] is None
        assert results["status"]["gateway"]["reachable"] is True
        assert len(results["logs"]) == 8

    def test_no_queries(self):
        assert fetch_all(_SlowSource(0), []) == {}

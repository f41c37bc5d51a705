"""
Shared fixtures for the ClawDash test suite.
"""
import copy
import os
import shlex
import socket
import subprocess
import sys
import time

import pytest
import requests

from clawdash.config import load_agent_directory
from clawdash.dashboard import app

import openclaw_samples as samples

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
FAKE_OPENCLAW = os.path.join(REPO_ROOT, "tests", "fake_openclaw.py")


def fake_openclaw_command():
    """OPENCLAW_BIN value that runs the fake CLI with this interpreter."""
    return f"{shlex.quote(sys.executable)} {shlex.quote(FAKE_OPENCLAW)}"


class StubSource:
    """In-process status source; an Exception value is raised instead of returned."""

    def __init__(self, **payloads):
        self.payloads = payloads
        self.calls = []

    def _get(self, name):
        self.calls.append(name)
        value = self.payloads.get(name)
        if isinstance(value, Exception):
            raise value
        return copy.deepcopy(value)

    def status(self):
        return self._get("status")

    def health(self):
        return self._get("health")

    def logs(self):
        return self._get("logs")

    def sessions(self):
        return self._get("sessions")


@pytest.fixture
def stub_source():
    return StubSource(
        status=samples.STATUS,
        health=samples.HEALTH,
        logs=samples.LOG_RECORDS,
        sessions=samples.SESSIONS,
    )


@pytest.fixture
def directory():
    return load_agent_directory()


@pytest.fixture
def client(stub_source):
    """Flask test client wired to the stub source."""
    saved = dict(app.config)
    app.config.update(
        TESTING=True,
        OPENCLAW_SOURCE=stub_source,
        AGENT_DIRECTORY=load_agent_directory(),
        CLAWDASH_ENV="production",
    )
    with app.test_client() as c:
        yield c
    app.config.clear()
    app.config.update(saved)


# ── Live server ─────────────────────────────────────────────────────────

def _free_port():
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


def _is_server_running(base_url):
    """Check if the ClawDash server is reachable."""
    try:
        r = requests.get(f"{base_url}/health", timeout=5)
        return r.status_code == 200
    except requests.exceptions.ConnectionError:
        return False


@pytest.fixture(scope="session")
def live_server():
    """Start ClawDash against the fake openclaw CLI and yield its base URL."""
    port = _free_port()
    base_url = f"http://127.0.0.1:{port}"
    env = dict(os.environ)
    env["OPENCLAW_BIN"] = fake_openclaw_command()
    env["PYTHONPATH"] = REPO_ROOT + os.pathsep + env.get("PYTHONPATH", "")
    env.pop("FAKE_OPENCLAW_MODE", None)
    env.pop("FAKE_OPENCLAW_FAIL", None)

    proc = subprocess.Popen(
        [sys.executable, "-m", "clawdash.dashboard", "--host", "127.0.0.1", "--port", str(port)],
        cwd=REPO_ROOT,
        env=env,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )

    # Wait up to 10 seconds
    for _ in range(20):
        time.sleep(0.5)
        if _is_server_running(base_url):
            break
    else:
        proc.terminate()
        pytest.fail("ClawDash server failed to start")

    yield base_url

    proc.terminate()
    proc.wait(timeout=10)


@pytest.fixture(scope="session")
def api():
    """Requests session for the live server."""
    session = requests.Session()
    yield session
    session.close()

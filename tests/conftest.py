import json
import os
import sys
from datetime import datetime
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from monitoring.config import ReportConfig

NOW = datetime(2024, 1, 3, 0, 0, 0)

SAMPLE_PAYLOAD = {
    "11": {
        "stream": "4.11.0-0.nightly",
        "builds": [
            {
                "name": "4.11.0-0.nightly-2024-01-02-220000",
                "accepted": True,
                "upgrade_succeeded": True,
                "created_at": None,
            },
        ],
    },
    "12": {
        "stream": "4.12.0-0.nightly",
        "builds": [
            {"name": "4.12.0-0.nightly-2024-01-02-230000", "accepted": False},
            {"name": "4.12.0-0.nightly-2024-01-02-220000", "accepted": False},
            {"name": "not-a-release"},
        ],
    },
}


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep ambient PM_* settings and the repo config file out of every test."""
    for key in list(os.environ):
        if key.startswith("PM_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("PM_CONFIG_PATH", str(tmp_path / "no-such-config.yaml"))


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def sample_payload():
    return json.loads(json.dumps(SAMPLE_PAYLOAD))


@pytest.fixture
def snapshot_file(tmp_path, sample_payload):
    path = tmp_path / "release_streams.json"
    path.write_text(json.dumps(sample_payload), encoding="utf-8")
    return path


@pytest.fixture
def report_config():
    return ReportConfig(oldest_minor=10, newest_minor=12)


@pytest.fixture
def client(monkeypatch, snapshot_file):
    from fastapi.testclient import TestClient

    from api import main as api_main

    monkeypatch.setenv("PM_BOT_AUTOSTART", "0")
    monkeypatch.setenv("PM_RELEASE_API_URL", str(snapshot_file))
    monkeypatch.setenv("PM_OLDEST_MINOR", "10")
    monkeypatch.setenv("PM_NEWEST_MINOR", "12")

    # Reset rate limiter between tests so report endpoints are not blocked
    api_main._report_limiter.reset()

    with TestClient(api_main.app, raise_server_exceptions=False) as test_client:
        yield test_client

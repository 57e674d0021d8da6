import json

import pytest
import requests

from collectors.release_streams import (
    fetch_release_streams,
    fetch_release_streams_file,
    fetch_release_streams_http,
)
from monitoring.errors import FetchError

BASE = "https://releases.example.test"
NEWER = "4.12.0-0.nightly-2024-01-02-000000"
OLDER = "4.12.0-0.nightly-2024-01-01-000000"


class _FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _FakeSession:
    def __init__(self, routes):
        self.routes = routes
        self.requested = []

    def get(self, url, timeout=None):
        self.requested.append(url)
        route = self.routes.get(url)
        if route is None:
            return _FakeResponse({}, status_code=404)
        if isinstance(route, Exception):
            raise route
        return route


def _routes():
    return {
        BASE + "/api/v1/releasestreams/all": _FakeResponse(
            {
                "4.12.0-0.nightly": [OLDER, NEWER],
                "4.12.0-0.ci": ["4.12.0-0.ci-2024-01-02-000000"],
                "4.8.0-0.nightly": ["4.8.0-0.nightly-2024-01-02-000000"],
                "4-stable": ["4.12.3"],
            }
        ),
        BASE + "/api/v1/releasestreams/accepted": _FakeResponse({"4.12.0-0.nightly": [OLDER]}),
        BASE + f"/api/v1/releasestream/4.12.0-0.nightly/release/{OLDER}": _FakeResponse(
            {"name": OLDER, "upgradesTo": [{"From": "4.11.5", "To": OLDER, "Success": 2, "Failure": 1, "Total": 3}]}
        ),
    }


def test_http_collector_shapes_tracked_streams():
    session = _FakeSession(_routes())
    collected = fetch_release_streams_http(BASE + "/", 9, 12, kind="nightly", session=session)

    assert list(collected) == [12]
    stream = collected[12]
    assert stream["stream"] == "4.12.0-0.nightly"
    assert [build["name"] for build in stream["builds"]] == [NEWER, OLDER]
    assert stream["builds"][0]["accepted"] is False
    assert stream["builds"][0]["upgrade_succeeded"] is None
    assert stream["builds"][1]["accepted"] is True
    assert stream["builds"][1]["upgrade_succeeded"] is True


def test_http_collector_failed_upgrade_probe_only_loses_the_upgrade_signal():
    routes = _routes()
    del routes[BASE + f"/api/v1/releasestream/4.12.0-0.nightly/release/{OLDER}"]
    collected = fetch_release_streams_http(BASE, 9, 12, session=_FakeSession(routes))
    assert collected[12]["builds"][1]["upgrade_succeeded"] is None


def test_http_collector_skips_probes_when_disabled():
    session = _FakeSession(_routes())
    fetch_release_streams_http(BASE, 9, 12, upgrade_probe_limit=0, session=session)
    assert len(session.requested) == 2


@pytest.mark.parametrize(
    "route",
    [
        requests.ConnectionError("connection refused"),
        _FakeResponse({}, status_code=503),
        _FakeResponse(ValueError("not json")),
        _FakeResponse(["not", "a", "mapping"]),
        _FakeResponse({"4.12.0-0.nightly": "not-a-list"}),
    ],
)
def test_http_collector_raises_fetch_error(route):
    routes = _routes()
    routes[BASE + "/api/v1/releasestreams/all"] = route
    with pytest.raises(FetchError):
        fetch_release_streams_http(BASE, 9, 12, session=_FakeSession(routes))


def test_file_collector_reads_snapshot(tmp_path):
    path = tmp_path / "snapshot.json"
    path.write_text(
        json.dumps(
            {
                "12": [{"name": NEWER, "accepted": True}],
                "8": [{"name": "4.8.0-0.nightly-2024-01-02-000000"}],
                "stable": [],
            }
        ),
        encoding="utf-8",
    )

    collected = fetch_release_streams(f"file://{path}", 9, 12)
    assert list(collected) == [12]
    assert collected[12]["stream"] == "4.12.0-0.nightly"
    assert collected[12]["builds"][0]["name"] == NEWER

    assert fetch_release_streams(str(path), 9, 12) == collected


def test_file_collector_reads_yaml(tmp_path):
    path = tmp_path / "snapshot.yaml"
    path.write_text(
        "12:\n  stream: 4.12.0-0.ci\n  builds:\n    - name: 4.12.0-0.ci-2024-01-02-000000\n",
        encoding="utf-8",
    )
    collected = fetch_release_streams_file(str(path), 9, 12, kind="ci")
    assert collected[12]["stream"] == "4.12.0-0.ci"


def test_file_collector_missing_or_malformed_raises_fetch_error(tmp_path):
    with pytest.raises(FetchError):
        fetch_release_streams_file(str(tmp_path / "missing.json"), 9, 12)

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(FetchError):
        fetch_release_streams_file(str(broken), 9, 12)

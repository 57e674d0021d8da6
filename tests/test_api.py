from api import main as api_main
from monitoring.errors import FetchError, ParseError


def test_healthz_and_root(client):
    assert client.get("/healthz").json()["status"] == "ok"
    assert client.get("/").json()["service"] == "Release Payload Monitor"
    assert "X-Request-ID" in client.get("/healthz").headers


def test_report_endpoint_returns_verdicts(client):
    resp = client.get("/report")
    assert resp.status_code == 200
    body = resp.json()

    assert [verdict["minor"] for verdict in body["verdicts"]] == [10, 11, 12]
    by_minor = {verdict["minor"]: verdict for verdict in body["verdicts"]}
    assert by_minor[10]["no_builds"] is True
    assert by_minor[12]["severity"] == "DIRE"
    assert body["skipped"][0]["name"] == "not-a-release"
    assert "Release payload report" in body["text"]


def test_report_text_endpoint(client):
    resp = client.get("/report/text")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert resp.text.startswith("*Release payload report* (4.10 - 4.12)")


def test_report_endpoint_maps_source_failures_to_502(client):
    bot = api_main._state["bot"]

    def down(api_url, oldest, newest):
        raise FetchError("connection refused")

    bot.fetcher = down
    resp = client.get("/report")
    assert resp.status_code == 502
    assert "connection refused" in resp.json()["detail"]

    def garbled(api_url, oldest, newest):
        raise ParseError("not a mapping")

    bot.fetcher = garbled
    assert client.get("/report/text").status_code == 502


def test_publish_endpoint_runs_one_cycle(client):
    bot = api_main._state["bot"]
    published = []
    bot.publisher = published.append

    resp = client.post("/report/publish")
    assert resp.status_code == 200
    assert resp.json()["published"] is True
    assert len(published) == 1

    status = client.get("/bot/status").json()
    assert status["runs"] == 1
    assert status["running"] is False


def test_publish_endpoint_requires_key_when_configured(client, monkeypatch):
    monkeypatch.setattr(api_main, "_RESOLVED_API_KEY", "secret")
    api_main._state["bot"].publisher = lambda text: None

    assert client.post("/report/publish").status_code == 403
    resp = client.post("/report/publish", headers={"X-API-Key": "secret"})
    assert resp.status_code == 200


def test_report_rate_limit(client):
    for _ in range(6):
        assert client.get("/report/text").status_code == 200
    assert client.get("/report/text").status_code == 429

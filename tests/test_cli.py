import json

import run


def test_report_command_prints_report(snapshot_file, capsys):
    exit_code = run.main(
        [
            "report",
            "--release-api-url",
            str(snapshot_file),
            "--oldest-minor",
            "11",
            "--newest-minor",
            "12",
        ]
    )
    out = capsys.readouterr().out

    assert exit_code == 0
    assert out.startswith("*Release payload report* (4.11 - 4.12)")
    assert "4.12 (4.12.0-0.nightly): DIRE" in out


def test_report_command_exits_non_zero_on_fetch_error(tmp_path, capsys):
    exit_code = run.main(["report", "--release-api-url", str(tmp_path / "missing.json")])
    captured = capsys.readouterr()

    assert exit_code == 1
    assert captured.err.startswith("error: could not read release snapshot")
    assert captured.out == ""


def test_report_command_rejects_inverted_minor_range(snapshot_file, capsys):
    exit_code = run.main(
        ["report", "--release-api-url", str(snapshot_file), "--oldest-minor", "12", "--newest-minor", "9"]
    )
    assert exit_code == 1
    assert "invalid configuration" in capsys.readouterr().err


def test_bot_once_publishes_through_log_when_no_webhook(snapshot_file, capsys):
    exit_code = run.main(
        [
            "bot",
            "--once",
            "--release-api-url",
            str(snapshot_file),
            "--oldest-minor",
            "10",
            "--newest-minor",
            "12",
            "--slack-alias",
            "@release-team",
        ]
    )
    assert exit_code == 0


def test_artifacts_command_writes_files(snapshot_file, tmp_path, capsys):
    md_path = tmp_path / "docs" / "payload_report.md"
    jsonl_path = tmp_path / "docs" / "payload_report.jsonl"
    exit_code = run.main(
        [
            "artifacts",
            "--release-api-url",
            str(snapshot_file),
            "--oldest-minor",
            "10",
            "--markdown-out",
            str(md_path),
            "--jsonl-out",
            str(jsonl_path),
        ]
    )

    assert exit_code == 0
    assert "Payload report written" in capsys.readouterr().out
    snapshot = json.loads(jsonl_path.read_text(encoding="utf-8").strip())
    assert [verdict["minor"] for verdict in snapshot["verdicts"]] == [10, 11, 12]
    assert md_path.read_text(encoding="utf-8") == snapshot["text"]


def test_unknown_command_prints_usage(capsys):
    assert run.main(["frobnicate"]) == 2
    assert "Usage:" in capsys.readouterr().out

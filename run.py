"""
Release Payload Monitor - Entry Point

Usage:
    python run.py report [flags]     Run a payload report and print the result
    python run.py bot [flags]        Run the scheduled report bot (posts to Slack)
    python run.py api                Start the FastAPI bot server (report endpoints + schedule)
    python run.py artifacts [flags]  Write the report as markdown + append a JSONL snapshot

Shared flags:
    --release-api-url URL            Release controller base URL, file:// or .json/.yaml snapshot
    --oldest-minor N                 Oldest minor release to analyze (default 9)
    --newest-minor N                 Newest minor release to analyze (default 12)
    --stream-kind ci|nightly         Which z-stream to track per minor (default nightly)
    --accepted-staleness-limit D     How old an accepted payload can be (default 24h)
    --built-staleness-limit D        How old a built payload can be (default 72h)
    --upgrade-staleness-limit D      How old a successful upgrade can be (default 72h)
    --config PATH                    YAML config file (default config/payload_monitor.yaml)
    --log-level LEVEL                Logging level (default PM_LOG_LEVEL or INFO)
"""

import argparse
import logging
import os
import subprocess
import sys

from monitoring.config import BotConfig, ReportConfig, load_config
from monitoring.errors import PayloadMonitorError


def _add_shared_flags(parser):
    parser.add_argument("--release-api-url", help="The url of the release reporting api")
    parser.add_argument(
        "--oldest-minor",
        type=int,
        help="The oldest minor release to analyze. Specify only the minor value (e.g. 9).",
    )
    parser.add_argument(
        "--newest-minor",
        type=int,
        help="The newest minor release to analyze. Specify only the minor value (e.g. 12).",
    )
    parser.add_argument("--stream-kind", choices=["ci", "nightly"])
    parser.add_argument(
        "--accepted-staleness-limit",
        help="How old an accepted payload can be before it is considered stale",
    )
    parser.add_argument(
        "--built-staleness-limit",
        help="How old a built payload can be before it is considered stale",
    )
    parser.add_argument(
        "--upgrade-staleness-limit",
        help="How old a successful upgrade attempt can be before it is considered stale",
    )
    parser.add_argument("--config", help="Path to the YAML config file")
    parser.add_argument("--log-level", default=os.getenv("PM_LOG_LEVEL", "INFO"))


def _parse_args(command, argv):
    parser = argparse.ArgumentParser(prog=f"run.py {command}")
    _add_shared_flags(parser)
    if command == "bot":
        parser.add_argument(
            "--slack-alias",
            help="Slack alias to tag in the generated report. Leave empty to not tag anyone.",
        )
        parser.add_argument("--slack-webhook-url", help="Slack incoming webhook to post to")
        parser.add_argument("--interval", help="Time between report runs (default 24h)")
        parser.add_argument(
            "--once", action="store_true", help="Run a single report cycle and exit"
        )
    if command == "artifacts":
        parser.add_argument("--markdown-out", default="docs/payload_report.md")
        parser.add_argument("--jsonl-out", default="docs/payload_report.jsonl")
    return parser.parse_args(argv)


def _overrides(args):
    keys = (
        "release_api_url",
        "oldest_minor",
        "newest_minor",
        "stream_kind",
        "accepted_staleness_limit",
        "built_staleness_limit",
        "upgrade_staleness_limit",
        "slack_alias",
        "slack_webhook_url",
        "interval",
    )
    return {key: getattr(args, key, None) for key in keys}


def _configure_logging(level):
    logging.basicConfig(
        level=str(level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run_report(args):
    from monitoring.payload_report import generate_report

    config = load_config(args.config, overrides=_overrides(args), model=ReportConfig)
    print(generate_report(config), end="")


def run_bot(args):
    from monitoring.bot import PayloadReportBot

    config = load_config(args.config, overrides=_overrides(args), model=BotConfig)
    bot = PayloadReportBot(config)
    if args.once:
        if bot.run_once() is None:
            raise PayloadMonitorError(bot.last_error or "report cycle failed")
        return
    try:
        bot.serve_forever()
    except KeyboardInterrupt:
        bot.stop()


def run_artifacts(args):
    from monitoring.payload_report import build_payload_report, write_report_artifacts

    config = load_config(args.config, overrides=_overrides(args), model=ReportConfig)
    report = build_payload_report(config)
    markdown_path, jsonl_path = write_report_artifacts(
        report, markdown_path=args.markdown_out, jsonl_path=args.jsonl_out
    )
    print(f"Payload report written: {markdown_path}")
    print(f"Report log appended: {jsonl_path}")


COMMANDS = {
    "report": run_report,
    "bot": run_bot,
    "artifacts": run_artifacts,
}


def main(argv=None):
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv:
        print(__doc__)
        return 0

    command = argv[0].lower()

    if command == "api":
        api_host = os.getenv("PM_API_HOST", "127.0.0.1")
        api_port = str(os.getenv("PM_API_PORT", "8000"))
        subprocess.run(["uvicorn", "api.main:app", "--host", api_host, "--port", api_port])
        return 0

    handler = COMMANDS.get(command)
    if handler is None:
        print(f"Unknown command: {command}")
        print(__doc__)
        return 2

    args = _parse_args(command, argv[1:])
    _configure_logging(args.log_level)
    try:
        handler(args)
    except PayloadMonitorError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

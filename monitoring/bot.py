"""
Scheduled payload report bot.

Runs ``generate_report`` on a fixed interval and posts the text to a Slack
incoming webhook, tagging an optional alias. A failed cycle is logged and
retried on the next tick; the loop itself only stops when asked to.
"""

from __future__ import annotations

import logging
import threading
import time

import requests

from analytics.utils import utcnow
from monitoring.errors import PayloadMonitorError, PublishError
from monitoring.payload_report import build_payload_report

logger = logging.getLogger("payload_monitor.bot")


def publish_to_slack(webhook_url, text, timeout=15, session=None):
    """Post ``text`` to a Slack incoming webhook."""
    poster = session or requests
    try:
        response = poster.post(webhook_url, json={"text": text}, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise PublishError(f"posting report to Slack failed: {exc}") from exc


def log_publisher(text):
    """Fallback publisher when no webhook is configured."""
    logger.info("no Slack webhook configured; report follows\n%s", text)


class PayloadReportBot:
    """Generates and publishes the payload report on a schedule."""

    def __init__(self, config, fetcher=None, publisher=None, clock=utcnow):
        self.config = config
        self.fetcher = fetcher
        self.clock = clock
        if publisher is not None:
            self.publisher = publisher
        elif config.slack_webhook_url:
            self.publisher = lambda text: publish_to_slack(
                config.slack_webhook_url, text, timeout=config.request_timeout_seconds
            )
        else:
            self.publisher = log_publisher

        self.last_report = None
        self.last_error = None
        self.last_run_at = None
        self.runs = 0
        self.failures = 0
        self._stop = threading.Event()
        self._thread = None
        self._lock = threading.Lock()

    def run_once(self):
        """Run one report cycle; returns the report, or ``None`` when the cycle failed."""
        with self._lock:
            now = self.clock()
            self.last_run_at = now
            self.runs += 1
            started_at = time.perf_counter()
            try:
                report = build_payload_report(
                    self.config,
                    fetcher=self.fetcher,
                    now=now,
                    mention=self.config.slack_alias or None,
                )
                self.publisher(report.text)
            except PayloadMonitorError as exc:
                self.failures += 1
                self.last_error = str(exc)
                logger.exception("payload report cycle failed; retrying next cycle")
                return None
            except Exception as exc:
                self.failures += 1
                self.last_error = f"{type(exc).__name__}: {exc}"
                logger.exception("unexpected error in payload report cycle; retrying next cycle")
                return None

            self.last_report = report
            self.last_error = None
            logger.info(
                "payload report published in %.1f ms",
                (time.perf_counter() - started_at) * 1000.0,
            )
            return report

    def serve_forever(self):
        """Run cycles until ``stop`` is called, waiting ``interval`` between them."""
        interval_seconds = self.config.interval.total_seconds()
        logger.info("payload report bot started; interval=%ss", int(interval_seconds))
        while not self._stop.is_set():
            self.run_once()
            self._stop.wait(interval_seconds)
        logger.info("payload report bot stopped")

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.serve_forever, name="payload-report-bot", daemon=True
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout=None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def status(self):
        return {
            "running": self.running,
            "runs": self.runs,
            "failures": self.failures,
            "last_run_at": self.last_run_at.strftime("%Y-%m-%d %H:%M:%S") if self.last_run_at else None,
            "last_error": self.last_error,
            "interval_seconds": int(self.config.interval.total_seconds()),
        }

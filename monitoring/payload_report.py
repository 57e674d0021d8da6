"""
Release payload report: fetch -> parse -> classify -> render.

``generate_report`` is the single entry point shared by the one-shot CLI and
the scheduled bot. The rendered text depends only on the verdicts, so two
runs over the same snapshot produce identical output.
"""

from __future__ import annotations

import functools
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from analytics.release_names import parse_release_name, release_stream_name
from analytics.staleness import BuildRecord, ReleaseStream, Severity, classify_streams
from analytics.utils import format_duration, parse_timestamp, utcnow
from collectors import fetch_release_streams
from monitoring.config import DEFAULT_STREAM_URL_TEMPLATE
from monitoring.errors import ParseError

logger = logging.getLogger("payload_monitor.report")

_SEVERITY_ICONS = {
    Severity.OK: ":white_check_mark:",
    Severity.WARN: ":warning:",
    Severity.DIRE: ":rotating_light:",
}


@dataclass
class PayloadReport:
    verdicts: list
    skipped: List[dict] = field(default_factory=list)
    generated_at: Optional[datetime] = None
    text: str = ""


def _skip(skipped, minor, name, reason):
    logger.warning("skipping build %r for 4.%s: %s", name, minor, reason)
    skipped.append({"minor": minor, "name": None if name is None else str(name), "reason": reason})


def _build_record(raw_build, minor, skipped):
    if isinstance(raw_build, str):
        raw_build = {"name": raw_build}
    if not isinstance(raw_build, dict):
        _skip(skipped, minor, repr(raw_build), "build entry is not a mapping")
        return None

    name = raw_build.get("name")
    identifier = parse_release_name(name)
    if identifier is None:
        _skip(skipped, minor, name, "no minor version in build name")
        return None
    if identifier.minor != minor:
        _skip(skipped, minor, name, f"build name belongs to 4.{identifier.minor}")
        return None

    accepted = raw_build.get("accepted", False)
    if accepted is None:
        accepted = False
    upgrade = raw_build.get("upgrade_succeeded")
    for field_name, value in (("accepted", accepted), ("upgrade_succeeded", upgrade)):
        if value is not None and not isinstance(value, bool):
            _skip(skipped, minor, name, f"{field_name} is not a boolean: {value!r}")
            return None

    return BuildRecord(
        name=name,
        identifier=identifier,
        accepted=accepted,
        upgrade_succeeded=upgrade,
        created_at=parse_timestamp(raw_build.get("created_at")),
    )


def streams_from_payload(raw, oldest_minor, newest_minor, kind="nightly"):
    """Turn the collector payload into one ReleaseStream per minor in range.

    Returns ``(streams, skipped)``. Minors without data get an empty stream;
    minors outside the range are dropped. Malformed build entries are
    skipped and reported, a malformed payload raises ParseError.
    """
    if not isinstance(raw, dict):
        raise ParseError("release data must be a mapping of minor version to stream")

    by_minor = {}
    for key, entry in raw.items():
        try:
            minor = int(key)
        except (TypeError, ValueError) as exc:
            raise ParseError(f"release data key {key!r} is not a minor version") from exc
        by_minor[minor] = entry

    streams = []
    skipped = []
    for minor in range(oldest_minor, newest_minor + 1):
        entry = by_minor.get(minor)
        if entry is None:
            entry = {}
        elif isinstance(entry, list):
            entry = {"builds": entry}
        elif not isinstance(entry, dict):
            raise ParseError(f"release data for 4.{minor} is not a stream mapping")

        raw_builds = entry.get("builds") or []
        if not isinstance(raw_builds, list):
            raise ParseError(f"builds for 4.{minor} are not a list")

        builds = []
        for raw_build in raw_builds:
            record = _build_record(raw_build, minor, skipped)
            if record is not None:
                builds.append(record)

        streams.append(
            ReleaseStream(
                minor=minor,
                name=entry.get("stream") or release_stream_name(minor, kind),
                builds=builds,
            )
        )
    return streams, skipped


def _limit_text(limit):
    return f" (limit {format_duration(limit)})" if limit is not None else ""


def verdict_reasons(
    verdict,
    accepted_limit=None,
    built_limit=None,
    upgrade_limit=None,
    suppress_explained_acceptance=True,
):
    """List the human-readable reasons behind a WARN/DIRE verdict."""
    if verdict.no_builds:
        return [
            "no builds exist in the stream: either nothing changed or the build system is broken"
        ]

    reasons = []
    if verdict.built_stale:
        reasons.append(
            f"no build newer than {format_duration(built_limit) if built_limit else 'the limit'} exists: "
            f"newest build {verdict.newest_build} is {format_duration(verdict.built_age)} old"
        )

    if verdict.never_accepted:
        reasons.append(
            f"no accepted payloads although {verdict.build_count} builds exist: "
            "payload acceptance is failing completely"
        )
    elif verdict.accepted_stale and not (suppress_explained_acceptance and verdict.built_stale):
        reason = (
            f"newest accepted payload {verdict.newest_accepted} is "
            f"{format_duration(verdict.accepted_age)} old{_limit_text(accepted_limit)}"
        )
        if verdict.recent_builds:
            reason += " while newer builds exist"
        else:
            reason += (
                f"; newest build is {format_duration(verdict.built_age)} old, "
                "so there was nothing recent to accept"
            )
        reasons.append(reason)

    if verdict.never_upgraded:
        reasons.append("no successful upgrade into any payload of this stream")
    elif verdict.upgrade_stale:
        reasons.append(
            f"newest successful upgrade into {verdict.newest_upgrade} is "
            f"{format_duration(verdict.upgrade_age)} old{_limit_text(upgrade_limit)}"
        )

    if verdict.age_unknown:
        reasons.append(
            f"{verdict.undated_count} builds carry no timestamp; some age checks were skipped"
        )
    return reasons


def _minor_range_label(verdicts):
    if not verdicts:
        return "no streams"
    oldest = min(verdict.minor for verdict in verdicts)
    newest = max(verdict.minor for verdict in verdicts)
    if oldest == newest:
        return f"4.{oldest}"
    return f"4.{oldest} - 4.{newest}"


def format_report(
    verdicts,
    stream_url_template=DEFAULT_STREAM_URL_TEMPLATE,
    accepted_limit=None,
    built_limit=None,
    upgrade_limit=None,
    suppress_explained_acceptance=True,
    mention=None,
    skipped_count=0,
):
    """Render verdicts as report text, one block per stream in ascending minor order."""
    ordered = sorted(verdicts, key=lambda verdict: (verdict.minor, verdict.stream))

    lines = []
    if mention:
        lines.append(str(mention).strip())
    lines.append(f"*Release payload report* ({_minor_range_label(ordered)})")

    counts = {severity: 0 for severity in Severity}
    for verdict in ordered:
        counts[verdict.severity] += 1
    lines.append(
        f"ok={counts[Severity.OK]} warn={counts[Severity.WARN]} dire={counts[Severity.DIRE]}"
    )
    lines.append("")

    for verdict in ordered:
        icon = _SEVERITY_ICONS[verdict.severity]
        if verdict.severity == Severity.OK:
            lines.append(f"{icon} 4.{verdict.minor} ({verdict.stream}): ok")
            continue

        url = stream_url_template % verdict.stream
        lines.append(
            f"{icon} 4.{verdict.minor} ({verdict.stream}): {verdict.severity.value} {url}"
        )
        for reason in verdict_reasons(
            verdict,
            accepted_limit=accepted_limit,
            built_limit=built_limit,
            upgrade_limit=upgrade_limit,
            suppress_explained_acceptance=suppress_explained_acceptance,
        ):
            lines.append(f"  - {reason}")

    if skipped_count:
        lines.append("")
        lines.append(f"_{skipped_count} build names could not be parsed and were skipped._")
    return "\n".join(lines) + "\n"


def _default_fetcher(config):
    return functools.partial(
        fetch_release_streams,
        kind=config.stream_kind,
        timeout=config.request_timeout_seconds,
        upgrade_probe_limit=config.upgrade_probe_limit,
    )


def build_payload_report(config, fetcher=None, now=None, mention=None):
    """Fetch, parse, classify and render the report for ``config``.

    ``fetcher(api_url, oldest_minor, newest_minor)`` defaults to the release
    controller collector. FetchError and ParseError propagate unchanged.
    """
    fetcher = fetcher or _default_fetcher(config)
    now = now or utcnow()

    raw = fetcher(config.release_api_url, config.oldest_minor, config.newest_minor)
    streams, skipped = streams_from_payload(
        raw, config.oldest_minor, config.newest_minor, kind=config.stream_kind
    )
    verdicts = classify_streams(
        streams,
        now,
        config.accepted_staleness_limit,
        config.built_staleness_limit,
        config.upgrade_staleness_limit,
    )
    text = format_report(
        verdicts,
        stream_url_template=config.stream_url_template,
        accepted_limit=config.accepted_staleness_limit,
        built_limit=config.built_staleness_limit,
        upgrade_limit=config.upgrade_staleness_limit,
        suppress_explained_acceptance=config.suppress_explained_acceptance,
        mention=mention,
        skipped_count=len(skipped),
    )
    logger.info(
        "payload report for 4.%s-4.%s: %d streams, %d skipped builds",
        config.oldest_minor,
        config.newest_minor,
        len(verdicts),
        len(skipped),
    )
    return PayloadReport(verdicts=verdicts, skipped=skipped, generated_at=now, text=text)


def generate_report(config, fetcher=None, now=None, mention=None):
    """Return the finished report text for ``config``."""
    return build_payload_report(config, fetcher=fetcher, now=now, mention=mention).text


def _seconds(delta):
    return None if delta is None else int(delta.total_seconds())


def verdict_to_dict(verdict):
    return {
        "minor": verdict.minor,
        "stream": verdict.stream,
        "severity": verdict.severity.value,
        "accepted_stale": verdict.accepted_stale,
        "built_stale": verdict.built_stale,
        "upgrade_stale": verdict.upgrade_stale,
        "no_builds": verdict.no_builds,
        "recent_builds": verdict.recent_builds,
        "build_count": verdict.build_count,
        "accepted_count": verdict.accepted_count,
        "upgraded_count": verdict.upgraded_count,
        "undated_count": verdict.undated_count,
        "newest_build": verdict.newest_build,
        "newest_accepted": verdict.newest_accepted,
        "newest_upgrade": verdict.newest_upgrade,
        "built_age_seconds": _seconds(verdict.built_age),
        "accepted_age_seconds": _seconds(verdict.accepted_age),
        "upgrade_age_seconds": _seconds(verdict.upgrade_age),
    }


def report_to_dict(report):
    """JSON-safe snapshot of a PayloadReport."""
    generated_at = report.generated_at
    return {
        "generated_at": generated_at.strftime("%Y-%m-%d %H:%M:%S") if generated_at else None,
        "verdicts": [verdict_to_dict(verdict) for verdict in report.verdicts],
        "skipped": list(report.skipped),
        "text": report.text,
    }


def write_report_artifacts(report, markdown_path, jsonl_path):
    """Write the report text and append a JSONL snapshot."""
    markdown_target = Path(markdown_path)
    jsonl_target = Path(jsonl_path)
    markdown_target.parent.mkdir(parents=True, exist_ok=True)
    jsonl_target.parent.mkdir(parents=True, exist_ok=True)

    markdown_target.write_text(report.text, encoding="utf-8")
    with jsonl_target.open("a", encoding="utf-8") as fh:
        fh.write(json.dumps(report_to_dict(report), sort_keys=True) + "\n")
    return markdown_target, jsonl_target

"""
Release stream collector.

Pulls build names for the tracked z-streams from the release controller API
(or a local snapshot file) and returns them keyed by minor version:

  {12: {"stream": "4.12.0-0.nightly",
        "builds": [{"name": ..., "accepted": bool,
                    "upgrade_succeeded": bool | None, "created_at": str | None}]}}

Builds are newest first. Name parsing and classification happen downstream;
this module only shapes the transport payload.
"""

import json
import logging
import os
from urllib.parse import quote, urlparse

import requests
import yaml

from analytics.release_names import StreamKind, parse_release_name, parse_stream_name, release_stream_name
from monitoring.errors import FetchError

logger = logging.getLogger("payload_monitor.collectors")

ALL_RELEASES_PATH = "/api/v1/releasestreams/all"
ACCEPTED_RELEASES_PATH = "/api/v1/releasestreams/accepted"
RELEASE_INFO_PATH = "/api/v1/releasestream/{stream}/release/{tag}"


def _get_json(session, url, timeout):
    try:
        response = session.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise FetchError(f"request to {url} failed: {exc}") from exc
    try:
        return response.json()
    except ValueError as exc:
        raise FetchError(f"response from {url} is not JSON: {exc}") from exc


def _stream_tags(payload, url):
    if not isinstance(payload, dict):
        raise FetchError(f"response from {url} is not a mapping of release streams")
    streams = {}
    for stream_name, tags in payload.items():
        if tags is None:
            tags = []
        if not isinstance(tags, list):
            raise FetchError(f"release stream {stream_name!r} from {url} is not a list of tags")
        streams[str(stream_name)] = [str(tag) for tag in tags]
    return streams


def _tag_sort_key(tag):
    identifier = parse_release_name(tag)
    if identifier is None or identifier.timestamp is None:
        return "", tag
    return identifier.timestamp.isoformat(), tag


def _upgrade_succeeded(release_info):
    """Return True when any upgrade into the release succeeded, False when all failed.

    ``None`` means the release has no upgrade history yet.
    """
    if not isinstance(release_info, dict):
        return None
    history = release_info.get("upgradesTo") or []
    if not isinstance(history, list) or not history:
        return None
    for entry in history:
        if not isinstance(entry, dict):
            continue
        try:
            if int(entry.get("Success") or 0) > 0:
                return True
        except (TypeError, ValueError):
            continue
    return False


def _probe_upgrades(session, base_url, stream_name, accepted_tags, limit, timeout):
    """Look up upgrade results for the newest ``limit`` accepted tags.

    Stops at the first success. A failed probe only loses that tag's upgrade
    signal; it never aborts the collection.
    """
    results = {}
    for tag in accepted_tags[:limit]:
        url = base_url + RELEASE_INFO_PATH.format(stream=quote(stream_name), tag=quote(tag))
        try:
            info = _get_json(session, url, timeout)
        except FetchError as exc:
            logger.warning("upgrade probe for %s skipped: %s", tag, exc)
            continue
        succeeded = _upgrade_succeeded(info)
        results[tag] = succeeded
        if succeeded:
            break
    return results


def fetch_release_streams_http(
    api_url,
    oldest_minor,
    newest_minor,
    kind=StreamKind.NIGHTLY,
    timeout=30.0,
    upgrade_probe_limit=5,
    session=None,
):
    """Collect tracked z-streams from the release controller API."""
    base_url = str(api_url).rstrip("/")
    kind = StreamKind(kind)
    session = session or requests.Session()

    all_url = base_url + ALL_RELEASES_PATH
    accepted_url = base_url + ACCEPTED_RELEASES_PATH
    all_streams = _stream_tags(_get_json(session, all_url, timeout), all_url)
    accepted_streams = _stream_tags(_get_json(session, accepted_url, timeout), accepted_url)

    collected = {}
    for stream_name, tags in sorted(all_streams.items()):
        parsed = parse_stream_name(stream_name)
        if parsed is None:
            continue
        minor, stream_kind = parsed
        if stream_kind != kind or not oldest_minor <= minor <= newest_minor:
            continue

        accepted = set(accepted_streams.get(stream_name, []))
        ordered_tags = sorted(set(tags) | accepted, key=_tag_sort_key, reverse=True)
        accepted_ordered = [tag for tag in ordered_tags if tag in accepted]
        upgrades = {}
        if upgrade_probe_limit:
            upgrades = _probe_upgrades(
                session, base_url, stream_name, accepted_ordered, upgrade_probe_limit, timeout
            )

        collected[minor] = {
            "stream": stream_name,
            "builds": [
                {
                    "name": tag,
                    "accepted": tag in accepted,
                    "upgrade_succeeded": upgrades.get(tag),
                    "created_at": None,
                }
                for tag in ordered_tags
            ],
        }
        logger.info(
            "collected %s: %d builds, %d accepted",
            stream_name,
            len(ordered_tags),
            len(accepted_ordered),
        )
    return collected


def _snapshot_path(api_url):
    parsed = urlparse(str(api_url))
    if parsed.scheme == "file":
        return parsed.path
    if parsed.scheme in ("", None) and os.path.splitext(str(api_url))[1] in (".json", ".yaml", ".yml"):
        return str(api_url)
    return None


def fetch_release_streams_file(path, oldest_minor, newest_minor, kind=StreamKind.NIGHTLY):
    """Load a release stream snapshot from a JSON or YAML file.

    The file holds the collector output shape; keys may be ints or strings.
    A bare list in place of the stream mapping is read as its build list.
    """
    kind = StreamKind(kind)
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.endswith(".json"):
                payload = json.load(f)
            else:
                payload = yaml.safe_load(f)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise FetchError(f"could not read release snapshot {path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise FetchError(f"release snapshot {path} is not a mapping of minor versions")

    collected = {}
    for key, value in payload.items():
        try:
            minor = int(key)
        except (TypeError, ValueError):
            logger.warning("release snapshot %s: ignoring non-numeric key %r", path, key)
            continue
        if not oldest_minor <= minor <= newest_minor:
            continue
        if isinstance(value, list):
            value = {"stream": release_stream_name(minor, kind), "builds": value}
        collected[minor] = value
    return collected


def fetch_release_streams(api_url, oldest_minor, newest_minor, kind=StreamKind.NIGHTLY, **kwargs):
    """Fetch raw stream data for ``[oldest_minor, newest_minor]``.

    ``file://`` URLs and paths ending in .json/.yaml read a local snapshot;
    anything else is treated as a release controller base URL. Raises
    FetchError on any transport failure.
    """
    snapshot = _snapshot_path(api_url)
    if snapshot is not None:
        return fetch_release_streams_file(snapshot, oldest_minor, newest_minor, kind=kind)
    return fetch_release_streams_http(api_url, oldest_minor, newest_minor, kind=kind, **kwargs)

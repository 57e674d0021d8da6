"""
Release stream staleness classification.

Decides, for one release stream and a caller-supplied ``now``, whether
automation is still producing, accepting and upgrading into payloads.

Three independent checks feed one verdict:

  built     newest build older than ``built_limit`` (or no builds at all)
  accepted  newest accepted payload older than ``accepted_limit``
            (or nothing ever accepted)
  upgrade   newest payload with a successful upgrade older than
            ``upgrade_limit`` (or none at all)

Severity is DIRE when builds exist but not one was ever accepted, WARN when
any check trips, OK otherwise. An empty stream is WARN: no builds may mean no
code changes, or a broken build system, and a human has to tell which.

Everything here is pure. The wall clock is never read.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from analytics.release_names import ReleaseIdentifier


class Severity(str, Enum):
    OK = "OK"
    WARN = "WARN"
    DIRE = "DIRE"


@dataclass(frozen=True)
class BuildRecord:
    name: str
    identifier: ReleaseIdentifier
    accepted: bool = False
    upgrade_succeeded: Optional[bool] = None
    created_at: Optional[datetime] = None

    @property
    def effective_time(self) -> Optional[datetime]:
        """Creation time when the source reported one, else the name's timestamp."""
        if self.created_at is not None:
            return self.created_at
        return self.identifier.timestamp


@dataclass
class ReleaseStream:
    minor: int
    name: str
    builds: List[BuildRecord] = field(default_factory=list)


@dataclass(frozen=True)
class StalenessVerdict:
    minor: int
    stream: str
    accepted_stale: bool
    built_stale: bool
    upgrade_stale: bool
    severity: Severity
    no_builds: bool = False
    recent_builds: bool = False
    build_count: int = 0
    accepted_count: int = 0
    upgraded_count: int = 0
    undated_count: int = 0
    newest_build: Optional[str] = None
    newest_accepted: Optional[str] = None
    newest_upgrade: Optional[str] = None
    built_age: Optional[timedelta] = None
    accepted_age: Optional[timedelta] = None
    upgrade_age: Optional[timedelta] = None

    @property
    def never_accepted(self) -> bool:
        return self.build_count > 0 and self.accepted_count == 0

    @property
    def never_upgraded(self) -> bool:
        return self.build_count > 0 and self.upgraded_count == 0

    @property
    def age_unknown(self) -> bool:
        """True when a check had qualifying builds but none of them carried a time."""
        return (
            (self.build_count > 0 and self.built_age is None)
            or (self.accepted_count > 0 and self.accepted_age is None)
            or (self.upgraded_count > 0 and self.upgrade_age is None)
        )


def _newest(builds):
    """Return the dated build with the greatest effective time, or ``None``.

    Ties fall back to the name's own timestamp, then to input order (first wins).
    """
    best = None
    best_key = None
    for index, build in enumerate(builds):
        effective = build.effective_time
        if effective is None:
            continue
        key = (effective, build.identifier.timestamp or datetime.min, -index)
        if best_key is None or key > best_key:
            best, best_key = build, key
    return best


def _age(now, build):
    if build is None:
        return None
    return now - build.effective_time


def _is_stale(age, limit, qualifying_count):
    """Staleness of one check: missing evidence is stale, unknown age is not judged."""
    if qualifying_count == 0:
        return True
    if age is None:
        return False
    return age > limit


def classify(stream, now, accepted_limit, built_limit, upgrade_limit):
    """Classify one ReleaseStream at ``now`` against the three staleness limits."""
    builds = list(stream.builds)
    accepted = [build for build in builds if build.accepted]
    upgraded = [build for build in builds if build.upgrade_succeeded is True]

    newest_build = _newest(builds)
    newest_accepted = _newest(accepted)
    newest_upgrade = _newest(upgraded)

    built_age = _age(now, newest_build)
    accepted_age = _age(now, newest_accepted)
    upgrade_age = _age(now, newest_upgrade)

    built_stale = _is_stale(built_age, built_limit, len(builds))
    accepted_stale = _is_stale(accepted_age, accepted_limit, len(accepted))
    upgrade_stale = _is_stale(upgrade_age, upgrade_limit, len(upgraded))

    verdict = StalenessVerdict(
        minor=stream.minor,
        stream=stream.name,
        accepted_stale=accepted_stale,
        built_stale=built_stale,
        upgrade_stale=upgrade_stale,
        severity=Severity.OK,
        no_builds=not builds,
        recent_builds=built_age is not None and built_age <= accepted_limit,
        build_count=len(builds),
        accepted_count=len(accepted),
        upgraded_count=len(upgraded),
        undated_count=sum(1 for build in builds if build.effective_time is None),
        newest_build=newest_build.name if newest_build else None,
        newest_accepted=newest_accepted.name if newest_accepted else None,
        newest_upgrade=newest_upgrade.name if newest_upgrade else None,
        built_age=built_age,
        accepted_age=accepted_age,
        upgrade_age=upgrade_age,
    )
    return _with_severity(verdict)


def _with_severity(verdict):
    if verdict.never_accepted:
        severity = Severity.DIRE
    elif (
        verdict.built_stale
        or verdict.accepted_stale
        or verdict.upgrade_stale
        or verdict.age_unknown
    ):
        severity = Severity.WARN
    else:
        severity = Severity.OK
    return replace(verdict, severity=severity)


def classify_streams(streams, now, accepted_limit, built_limit, upgrade_limit):
    """Classify every stream and return verdicts sorted ascending by minor."""
    verdicts = [
        classify(stream, now, accepted_limit, built_limit, upgrade_limit)
        for stream in streams
    ]
    verdicts.sort(key=lambda verdict: (verdict.minor, verdict.stream))
    return verdicts

from pydantic import BaseModel
from typing import Optional


class VerdictResponse(BaseModel):
    minor: int
    stream: str
    severity: str
    accepted_stale: bool
    built_stale: bool
    upgrade_stale: bool
    no_builds: bool
    recent_builds: bool
    build_count: int
    accepted_count: int
    upgraded_count: int
    undated_count: int
    newest_build: Optional[str]
    newest_accepted: Optional[str]
    newest_upgrade: Optional[str]
    built_age_seconds: Optional[int]
    accepted_age_seconds: Optional[int]
    upgrade_age_seconds: Optional[int]


class SkippedBuild(BaseModel):
    minor: int
    name: Optional[str]
    reason: str


class ReportResponse(BaseModel):
    generated_at: Optional[str]
    verdicts: list[VerdictResponse]
    skipped: list[SkippedBuild]
    text: str


class BotStatus(BaseModel):
    running: bool
    runs: int
    failures: int
    last_run_at: Optional[str]
    last_error: Optional[str]
    interval_seconds: int


class PublishResult(BaseModel):
    published: bool
    message: str

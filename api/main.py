import logging
import os
import secrets
import sys
import threading
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Security
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.security import APIKeyHeader

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
from api.models import BotStatus, PublishResult, ReportResponse
from monitoring.bot import PayloadReportBot
from monitoring.config import BotConfig, load_config
from monitoring.errors import FetchError, ParseError
from monitoring.payload_report import build_payload_report, report_to_dict

logger = logging.getLogger("payload_monitor.api")
if not logger.handlers:
    logging.basicConfig(level=os.getenv("PM_LOG_LEVEL", "INFO").upper())

APP_START_TIME = time.time()


def _truthy_env(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


# --- API Key Authentication ---
# Set PM_API_KEY to require an X-API-Key header on the publish endpoint.
# When unset, auth is disabled (local-only development mode).
_RESOLVED_API_KEY = os.getenv("PM_API_KEY", "").strip()

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: Optional[str] = Security(_api_key_header)):
    """Require a matching X-API-Key header when PM_API_KEY is configured."""
    if not _RESOLVED_API_KEY:
        return
    if not api_key or not secrets.compare_digest(api_key, _RESOLVED_API_KEY):
        raise HTTPException(
            status_code=403,
            detail="Invalid or missing API key. Set X-API-Key header.",
        )


# --- Rate Limiter for endpoints that hit the release API ---
class _RateLimiter:
    """Simple in-memory sliding-window rate limiter (thread-safe)."""

    def __init__(self, max_calls: int, period_seconds: float):
        self._max_calls = max_calls
        self._period = period_seconds
        self._calls: list[float] = []
        self._lock = threading.Lock()

    def check(self) -> bool:
        """Return True if the request is allowed, False if rate-limited."""
        now = time.monotonic()
        with self._lock:
            self._calls = [t for t in self._calls if now - t < self._period]
            if len(self._calls) >= self._max_calls:
                return False
            self._calls.append(now)
            return True

    def reset(self):
        """Clear all tracked calls (useful for testing)."""
        with self._lock:
            self._calls.clear()


# Allow max 6 upstream report runs per 60 seconds
_report_limiter = _RateLimiter(max_calls=6, period_seconds=60.0)


def _check_report_rate_limit():
    if not _report_limiter.check():
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded for report endpoints. Try again later.",
        )


_state = {"bot": None}


def create_bot():
    """Build the bot from YAML/env configuration."""
    return PayloadReportBot(load_config(model=BotConfig))


def get_bot() -> PayloadReportBot:
    bot = _state["bot"]
    if bot is None:
        raise HTTPException(status_code=503, detail="Report bot is not initialized")
    return bot


@asynccontextmanager
async def lifespan(application: FastAPI):
    bot = create_bot()
    _state["bot"] = bot
    if _truthy_env(os.getenv("PM_BOT_AUTOSTART", "1")):
        bot.start()
    try:
        yield
    finally:
        bot.stop(timeout=5)
        _state["bot"] = None


app = FastAPI(
    title="Release Payload Monitor",
    description="Release stream staleness reports for the CI payload pipeline.",
    version="1.0.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            "unhandled_exception",
            extra={"request_id": request_id, "path": request.url.path},
        )
        response = JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "request_id": request_id},
        )
    response.headers["X-Request-ID"] = request_id
    return response


def _run_report(bot):
    try:
        return build_payload_report(bot.config, fetcher=bot.fetcher)
    except FetchError as e:
        raise HTTPException(status_code=502, detail=f"Release API unavailable: {e}") from e
    except ParseError as e:
        raise HTTPException(status_code=502, detail=f"Release API returned malformed data: {e}") from e


@app.get("/")
def root():
    return {"status": "online", "service": "Release Payload Monitor", "version": "1.0.0"}


@app.get("/healthz")
def healthz():
    return {"status": "ok", "uptime_seconds": round(time.time() - APP_START_TIME, 3)}


@app.get("/bot/status", response_model=BotStatus)
def bot_status(bot: PayloadReportBot = Depends(get_bot)):
    return bot.status()


@app.get("/report", response_model=ReportResponse)
def report(bot: PayloadReportBot = Depends(get_bot)):
    _check_report_rate_limit()
    return report_to_dict(_run_report(bot))


@app.get("/report/text", response_class=PlainTextResponse)
def report_text(bot: PayloadReportBot = Depends(get_bot)):
    _check_report_rate_limit()
    return _run_report(bot).text


@app.post("/report/publish", response_model=PublishResult, dependencies=[Depends(verify_api_key)])
def publish_report(bot: PayloadReportBot = Depends(get_bot)):
    _check_report_rate_limit()
    result = bot.run_once()
    if result is None:
        raise HTTPException(status_code=502, detail=f"Report cycle failed: {bot.last_error}")
    return {"published": True, "message": f"Report covering {len(result.verdicts)} streams published."}

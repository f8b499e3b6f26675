# ticket_checker/server/main.py

import asyncio
import functools
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import CheckerConfig, load_config
from ..engine.exceptions import ConfigurationError
from ..engine.models import MatchMode, Verdict
from ..engine.runner import TicketChecker

# --- 1. SETUP ---
logger = structlog.get_logger(__name__)
app = FastAPI(title="Ticket Checker API", version="1.0.0")
STARTED_AT = time.monotonic()

ENDPOINTS = {
    "GET /": "Service description",
    "GET /health": "Health check endpoint",
    "POST /check-ticket": "Check whether a ticket exists in a board section",
}

_run_slots: Optional[asyncio.Semaphore] = None


# --- 2. REQUEST MODELS & DEPENDENCIES ---


class CheckRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1, description="Ticket title/subject.")
    project: Optional[str] = None
    section: Optional[str] = None
    match_mode: Optional[MatchMode] = Field(None, alias="matchMode")
    headless: Optional[bool] = None


def get_config_loader() -> Callable[..., CheckerConfig]:
    config_file = os.getenv("CHECKER_CONFIG")
    if config_file:
        return functools.partial(load_config, config_file=Path(config_file))
    return load_config


def get_checker_factory() -> Callable[[CheckerConfig], TicketChecker]:
    return TicketChecker


def _slots(limit: int) -> asyncio.Semaphore:
    global _run_slots
    if _run_slots is None:
        _run_slots = asyncio.Semaphore(limit)
    return _run_slots


# --- 3. ROUTES ---


@app.get("/")
async def index() -> dict[str, Any]:
    return {
        "status": "Ticket Checker API is running",
        "version": app.version,
        "endpoints": ENDPOINTS,
        "usage": {
            "method": "POST",
            "url": "/check-ticket",
            "body": {
                "title": "Ticket title to look for",
                "project": "Project name (optional)",
                "section": "Board column label (optional)",
                "matchMode": "'partial' (default) or 'exact'",
            },
        },
    }


@app.get("/health")
async def health(
    config_loader: Callable[..., CheckerConfig] = Depends(get_config_loader),
) -> dict[str, Any]:
    # Credentials may come from the YAML file, .env or the environment.
    try:
        config_loader()
        has_credentials = True
    except ConfigurationError:
        has_credentials = False
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "hasCredentials": has_credentials,
    }


@app.post("/check-ticket")
async def check_ticket(
    body: CheckRequest,
    config_loader: Callable[..., CheckerConfig] = Depends(get_config_loader),
    checker_factory: Callable[[CheckerConfig], TicketChecker] = Depends(
        get_checker_factory
    ),
):
    log = logger.bind(title=body.title)
    log.info("🎯 Received ticket check request.")
    overrides = {
        "criteria": {
            "title": body.title,
            "project_name": body.project,
            "section_label": body.section,
            "match_mode": body.match_mode.value if body.match_mode else None,
        },
        "browser": {"headless": body.headless},
    }
    try:
        config = config_loader(overrides=overrides)
    except ConfigurationError as e:
        log.warning("Rejected request, configuration incomplete.", error=str(e))
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})

    async with _slots(config.max_concurrent_runs):
        verdict: Verdict = await checker_factory(config).run()

    result = verdict.to_result()
    log.info("📊 Check finished.", found=verdict.found, success=verdict.success)
    return JSONResponse(status_code=200 if verdict.success else 500, content=result)


# --- 4. ERROR HANDLERS ---


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return JSONResponse(
            status_code=404,
            content={
                "success": False,
                "error": "Endpoint not found",
                "availableEndpoints": list(ENDPOINTS),
            },
        )
    return JSONResponse(
        status_code=exc.status_code, content={"success": False, "error": exc.detail}
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("❌ Unhandled API error.", path=request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "message": str(exc)},
    )

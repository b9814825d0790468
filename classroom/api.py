#!/usr/bin/env python3
"""
api.py — Classroom Data API

Serves the opinions ledger, shaped chart datasets and the composite
country ranking to the classroom front-end.

Endpoints:
    GET  /api/opinions          → All votes in append order
    POST /api/opinions          → Record one {bestCountry, worstCountry} vote
    GET  /api/opinions/tally    → Vote counts per country
    GET  /api/datasets/{kind}   → Shaped records for one dataset kind
    GET  /api/wellbeing         → Well-being metrics, filtered/sorted/projected
    GET  /api/clock             → School-day clock faces
    GET  /api/ranking           → Composite ranking with best/lowest
    POST /api/ranking/guess     → Check a best/lowest guess
    GET  /health                → Liveness probe
    GET  /ready                 → Readiness probe

Environment variables:
    ENV               — "dev" or "prod" (default: "prod")
    ALLOWED_ORIGINS   — Comma-separated extra CORS origins (default: none)
    ENABLE_DOCS       — "1" to force-enable /docs in prod
    DATA_DIR          — Directory holding the bundled CSV datasets
    LEDGER_PATH       — Opinions ledger CSV (default: DATA_DIR/opinions.csv)
    REDIS_URL         — Optional Redis URL for distributed rate limiting

Requires: fastapi, uvicorn, slowapi, requests
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from classroom.clock import build_clock
from classroom.constants import (
    DATASET_FILES,
    DATASET_KINDS,
    DEFAULT_DATA_DIR,
    FEATURED_COUNTRIES,
    WELLBEING_METRICS,
)
from classroom.dataset_cache import DatasetCache
from classroom.errors import DataSourceError, LedgerIOError, ParseError, ValidationError
from classroom.ledger import VoteLedger
from classroom.methodology import DEFAULT_TERMS, best_and_lowest, evaluate_guess, rank
from classroom.security import (
    RequestIdMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
)
from classroom.views import ViewState, apply_view

# ---------------------------------------------------------------------------
# Logging configuration — structured JSON to stdout
# ---------------------------------------------------------------------------

_log_level = logging.DEBUG if os.getenv("ENV", "prod") == "dev" else logging.INFO
logging.basicConfig(
    level=_log_level,
    format="%(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger("classroom.api")


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------

ENV = os.getenv("ENV", "prod").lower().strip()
ALLOWED_ORIGINS_RAW = os.getenv("ALLOWED_ORIGINS", "").strip()
ENABLE_DOCS = os.getenv("ENABLE_DOCS", "").strip() == "1"
REDIS_URL = os.getenv("REDIS_URL", "").strip() or None

DATA_DIR = Path(os.getenv("DATA_DIR", "").strip() or DEFAULT_DATA_DIR)
LEDGER_PATH = Path(os.getenv("LEDGER_PATH", "").strip() or DATA_DIR / "opinions.csv")


# ---------------------------------------------------------------------------
# Rate limiter
# ---------------------------------------------------------------------------

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["120/minute"],
    storage_uri=REDIS_URL if REDIS_URL else "memory://",
    strategy="fixed-window",
)


# ---------------------------------------------------------------------------
# Shared stores — one ledger, one dataset cache per process
# ---------------------------------------------------------------------------

_ledger = VoteLedger(LEDGER_PATH)
_datasets = DatasetCache(data_dir=DATA_DIR)


def get_ledger() -> VoteLedger:
    return _ledger


def get_datasets() -> DatasetCache:
    return _datasets


def _data_available() -> bool:
    """Check that every bundled dataset file exists."""
    return DATA_DIR.is_dir() and all(
        (DATA_DIR / name).is_file() for name in DATASET_FILES.values()
    )


# ---------------------------------------------------------------------------
# App construction
# ---------------------------------------------------------------------------

def _build_docs_kwargs() -> dict[str, Any]:
    """Determine docs/redoc/openapi URL availability."""
    if ENV == "prod" and not ENABLE_DOCS:
        return {"docs_url": None, "redoc_url": None, "openapi_url": None}
    return {"docs_url": "/docs", "redoc_url": "/redoc"}


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup: report configuration and data availability. Never aborts."""
    logger.info(json.dumps({
        "event": "startup",
        "env": ENV,
        "data_present": _data_available(),
        "docs_enabled": ENABLE_DOCS or ENV == "dev",
        "rate_limit_backend": "redis" if REDIS_URL else "memory",
    }))
    if not _data_available():
        logger.warning(json.dumps({
            "event": "startup_degraded",
            "reason": "Dataset directory not found or incomplete",
        }))

    yield

    logger.info(json.dumps({"event": "shutdown"}))


app = FastAPI(
    title="Classroom Data API",
    description="Education datasets, composite ranking and opinion votes.",
    version="0.1.0",
    lifespan=_lifespan,
    **_build_docs_kwargs(),
)

app.state.limiter = limiter


# ---------------------------------------------------------------------------
# CORS — the Next.js front-end plus deploy-time additions
# ---------------------------------------------------------------------------

_CORS_ORIGINS: list[str] = ["http://localhost:3000"]

if ALLOWED_ORIGINS_RAW:
    for _o in ALLOWED_ORIGINS_RAW.split(","):
        _o = _o.strip()
        if _o and _o not in _CORS_ORIGINS:
            _CORS_ORIGINS.append(_o)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
    max_age=3600,
)

# Starlette runs middleware in reverse registration order:
# RequestId is outermost so every response, including 413/431, is logged.
app.add_middleware(SecurityHeadersMiddleware, enable_hsts=(ENV == "prod"))
app.add_middleware(RequestSizeLimitMiddleware)
app.add_middleware(RequestIdMiddleware)


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

@app.exception_handler(RateLimitExceeded)
async def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"error": "Rate limit exceeded. Try again later."},
        headers={"Retry-After": "60"},
    )


@app.exception_handler(Exception)
async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")
    logger.error(json.dumps({
        "event": "unhandled_exception",
        "exception_type": type(exc).__name__,
        "request_id": request_id,
        "path": request.url.path,
    }))
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error."},
    )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _json_body(request: Request) -> dict[str, Any] | None:
    """Parsed JSON object body, or None when the body is not a JSON object."""
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _load_dataset(datasets: DatasetCache, kind: str, request: Request) -> dict[str, Any]:
    """Shaped dataset or 503 when its source is missing/empty."""
    try:
        return datasets.get(kind)
    except (DataSourceError, ParseError) as exc:
        logger.error(json.dumps({
            "event": "dataset_unavailable",
            "kind": kind,
            "error_type": type(exc).__name__,
            "request_id": getattr(request.state, "request_id", "unknown"),
        }))
        raise HTTPException(status_code=503, detail=f"Dataset '{kind}' not available.")


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class OpinionSubmission(BaseModel):
    """Vote body. Presence/blankness is checked by the ledger, not here."""

    model_config = {"extra": "ignore"}

    bestCountry: Optional[str] = None
    worstCountry: Optional[str] = None


class RankingGuess(BaseModel):
    model_config = {"extra": "ignore"}

    best: Optional[str] = None
    lowest: Optional[str] = None


# ---------------------------------------------------------------------------
# Probes
# ---------------------------------------------------------------------------

@app.get("/health", include_in_schema=False)
async def health(request: Request) -> JSONResponse:
    """Liveness probe. No file I/O, always 200."""
    return JSONResponse(status_code=200, content={"status": "ok", "version": app.version})


@app.get("/ready")
@limiter.limit("60/minute")
async def ready(request: Request) -> JSONResponse:
    """Readiness probe — always 200, readiness in the body."""
    data_present = _data_available()
    body = {
        "ready": data_present,
        "status": "healthy" if data_present else "degraded",
        "version": app.version,
        "data_present": data_present,
        "cache": _datasets.stats,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    return JSONResponse(status_code=200, content=body)


# ---------------------------------------------------------------------------
# Opinions ledger
# ---------------------------------------------------------------------------

@app.get("/api/opinions")
@limiter.limit("120/minute")
async def list_opinions(
    request: Request,
    ledger: VoteLedger = Depends(get_ledger),
) -> JSONResponse:
    """Every vote in append order; [] when none have been cast."""
    try:
        records = ledger.read_all()
    except LedgerIOError as exc:
        logger.error(json.dumps({
            "event": "opinions_read_failed",
            "error": str(exc),
            "request_id": getattr(request.state, "request_id", "unknown"),
        }))
        return _error(500, "Failed to read opinions")
    return JSONResponse(status_code=200, content=[r.to_dict() for r in records])


@app.post("/api/opinions")
@limiter.limit("30/minute")
async def submit_opinion(
    request: Request,
    ledger: VoteLedger = Depends(get_ledger),
) -> JSONResponse:
    """Append one vote. 400 on missing fields, 500 on write failure."""
    body = await _json_body(request)
    if body is None:
        return _error(400, "Request body must be a JSON object.")

    try:
        submission = OpinionSubmission(**body)
        record = ledger.append(submission.bestCountry, submission.worstCountry)
    except (RequestValidationError, ValidationError):
        return _error(400, "Missing fields")
    except LedgerIOError as exc:
        logger.error(json.dumps({
            "event": "opinion_write_failed",
            "error": str(exc),
            "request_id": getattr(request.state, "request_id", "unknown"),
        }))
        return _error(500, "Failed to save opinion")

    return JSONResponse(status_code=200, content=record.to_dict())


@app.get("/api/opinions/tally")
@limiter.limit("60/minute")
async def tally_opinions(
    request: Request,
    ledger: VoteLedger = Depends(get_ledger),
) -> JSONResponse:
    try:
        counts = ledger.tally()
    except LedgerIOError as exc:
        logger.error(json.dumps({"event": "opinions_read_failed", "error": str(exc)}))
        return _error(500, "Failed to read opinions")
    return JSONResponse(status_code=200, content=counts)


# ---------------------------------------------------------------------------
# Datasets
# ---------------------------------------------------------------------------

@app.get("/api/datasets/{kind}")
@limiter.limit("60/minute")
async def get_dataset(
    kind: str,
    request: Request,
    countries: Optional[list[str]] = Query(default=None),
    featured_only: bool = False,
    datasets: DatasetCache = Depends(get_datasets),
) -> dict:
    """Shaped records of one dataset kind, optionally limited to some countries."""
    if kind not in DATASET_KINDS:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown dataset '{kind}'. Must be one of {sorted(DATASET_KINDS)}.",
        )
    records = _load_dataset(datasets, kind, request)
    if featured_only:
        records = {k: v for k, v in records.items() if k in FEATURED_COUNTRIES}
    if countries:
        wanted = set(countries)
        records = {k: v for k, v in records.items() if k in wanted}
    return {
        "kind": kind,
        "count": len(records),
        "records": [r.to_dict() for r in records.values()],
    }


@app.get("/api/wellbeing")
@limiter.limit("60/minute")
async def get_wellbeing(
    request: Request,
    countries: Optional[list[str]] = Query(default=None),
    metrics: Optional[list[str]] = Query(default=None),
    sort_by: Optional[str] = None,
    sort_order: str = "asc",
    datasets: DatasetCache = Depends(get_datasets),
) -> dict:
    """Histogram rows: filter by countries, sort on a metric (nulls last), project metrics."""
    chosen = tuple(metrics) if metrics else WELLBEING_METRICS
    unknown = [m for m in (*chosen, sort_by) if m is not None and m not in WELLBEING_METRICS]
    if unknown:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown metric(s) {unknown}. Must be among {list(WELLBEING_METRICS)}.",
        )
    try:
        state = ViewState(
            selected=tuple(countries or ()),
            metrics=chosen,
            sort_by=sort_by,
            sort_order=sort_order,
            max_selected=max(1, len(countries or ())),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    records = _load_dataset(datasets, "histogram", request)
    rows = apply_view([r.to_dict() for r in records.values()], state)
    return {"view": state.to_dict(), "rows": rows}


@app.get("/api/clock")
@limiter.limit("60/minute")
async def get_clock(
    request: Request,
    countries: Optional[list[str]] = Query(default=None),
    datasets: DatasetCache = Depends(get_datasets),
) -> dict:
    """Clock faces (segments, angles, share of day) per country."""
    schedules = _load_dataset(datasets, "clock", request)
    wanted = set(countries) if countries else None
    faces = [
        build_clock(s).to_dict()
        for key, s in schedules.items()
        if wanted is None or key in wanted
    ]
    return {"count": len(faces), "clocks": faces}


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

def _ranking(datasets: DatasetCache, request: Request) -> list:
    reports = _load_dataset(datasets, "country_report", request)
    if not reports:
        raise HTTPException(status_code=503, detail="No country report data available.")
    return rank({key: r.metrics() for key, r in reports.items()})


@app.get("/api/ranking")
@limiter.limit("60/minute")
async def get_ranking(
    request: Request,
    datasets: DatasetCache = Depends(get_datasets),
) -> dict:
    """Composite ranking, best first, with the scoring terms used."""
    ranking = _ranking(datasets, request)
    best, lowest = best_and_lowest(ranking)
    return {
        "best": best.key,
        "lowest": lowest.key,
        "ranking": [r.to_dict() for r in ranking],
        "terms": [
            {
                "field": t.field,
                "weight": t.weight,
                "min": t.min,
                "max": t.max,
                "direction": t.direction,
            }
            for t in DEFAULT_TERMS
        ],
    }


@app.post("/api/ranking/guess")
@limiter.limit("30/minute")
async def guess_ranking(
    request: Request,
    datasets: DatasetCache = Depends(get_datasets),
) -> JSONResponse:
    """Grade a {best, lowest} guess against the composite ranking."""
    body = await _json_body(request)
    if body is None:
        return _error(400, "Request body must be a JSON object.")
    try:
        guess = RankingGuess(**body)
    except RequestValidationError:
        return _error(400, "Missing fields")
    if not guess.best or not guess.lowest:
        return _error(400, "Missing fields")
    if guess.best == guess.lowest:
        return _error(400, "Please choose different countries for best and lowest.")

    result = evaluate_guess(guess.best, guess.lowest, _ranking(datasets, request))
    return JSONResponse(status_code=200, content=result.to_dict())


# ---------------------------------------------------------------------------
# Entry point (development only)
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    os.environ.setdefault("ENV", "dev")
    print(f"Classroom Data API — serving datasets from {DATA_DIR}")
    uvicorn.run(app, host="0.0.0.0", port=8000)  # noqa: S104

"""Read and operations API over the bill store.

Run with::

    uvicorn tx_senate_tracker.api:app --reload

Endpoints:

- ``GET /health``
- ``GET /bills?status=Signed&limit=50``
- ``GET /bills/{bill_id}`` (any spelling: ``SB22``, ``sb 22``, ``Senate Bill 22``)
- ``GET /scraper/status``
- ``POST /scraper/run``
"""

from __future__ import annotations

import logging
import os
import sys
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from .config import CACHE_DIR, PROFILE, SCHEDULER_ENABLED
from .identifiers import standardize
from .models import BillStatus
from .pipeline import BillPipeline
from .scheduler import ScrapingScheduler
from .scrapers.fetcher import DocumentFetcher
from .storage import BillRepository, JsonFileStore

# ── Configure logging ────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:     %(message)s",
    stream=sys.stderr,
    force=True,
)
LOGGER = logging.getLogger(__name__)

CORS_ORIGINS = os.getenv("TX_CORS_ORIGINS", "*").strip()


@dataclass
class TrackerState:
    repository: BillRepository
    scheduler: ScrapingScheduler


def build_components() -> TrackerState:
    """Wire fetcher -> pipeline -> scheduler over the JSON file store."""
    fetcher = DocumentFetcher()
    pipeline = BillPipeline(fetcher)
    repository = BillRepository(JsonFileStore(CACHE_DIR / "store"))
    scheduler = ScrapingScheduler(pipeline, repository)
    return TrackerState(repository=repository, scheduler=scheduler)


def create_app(state: TrackerState | None = None, *, start_scheduler: bool | None = None) -> FastAPI:
    """Build the app.  Tests pass a prebuilt *state*; otherwise it is built at startup."""
    if start_scheduler is None:
        start_scheduler = SCHEDULER_ENABLED

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.tracker = state or build_components()
        scheduler = app.state.tracker.scheduler
        LOGGER.info("Texas Senate bill tracker starting (profile=%s)", PROFILE)
        if start_scheduler:
            scheduler.start()
        else:
            LOGGER.info("Scheduler disabled (TX_SCHEDULER_ENABLED != 1)")
        try:
            yield
        finally:
            if scheduler.is_scheduled:
                scheduler.stop()

    app = FastAPI(title="Texas Senate Bill Tracker", lifespan=lifespan)

    # ── CORS middleware ──────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in CORS_ORIGINS.split(",") if o.strip()],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Request logging middleware ───────────────────────────────────────────
    @app.middleware("http")
    async def _request_logging_middleware(request: Request, call_next) -> Response:  # type: ignore[no-untyped-def]
        t0 = time.perf_counter()
        response: Response = await call_next(request)
        LOGGER.info(
            "%s %s %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - t0) * 1000,
        )
        return response

    def _tracker(request: Request) -> TrackerState:
        return request.app.state.tracker

    @app.get("/health")
    def health(request: Request) -> dict:
        scheduler = _tracker(request).scheduler
        return {
            "status": "ok",
            "scheduler": "scheduled" if scheduler.is_scheduled else "idle",
            "circuit": scheduler.pipeline.breaker.state.value,
        }

    @app.get("/bills")
    def list_bills(
        request: Request,
        status: str | None = None,
        limit: int = Query(100, ge=1, le=5000),
    ) -> dict:
        repository = _tracker(request).repository
        if status is not None:
            try:
                wanted = BillStatus(status)
            except ValueError:
                allowed = ", ".join(s.value for s in BillStatus)
                raise HTTPException(
                    status_code=400, detail=f"Unknown status {status!r}; expected one of: {allowed}"
                ) from None
            bills = repository.bills_by_status(wanted, limit)
        else:
            bills = repository.list_bills(limit)
        return {"count": len(bills), "bills": [b.to_dict() for b in bills]}

    @app.get("/bills/{bill_id}")
    def get_bill(request: Request, bill_id: str) -> dict:
        canonical = standardize(bill_id)
        if canonical is None:
            raise HTTPException(status_code=400, detail=f"Invalid bill id: {bill_id!r}")
        bill = _tracker(request).repository.get_bill(bill_id)
        if bill is None:
            raise HTTPException(status_code=404, detail=f"Bill {canonical} not found")
        return bill.to_dict()

    @app.get("/scraper/status")
    def scraper_status(request: Request) -> dict:
        return _tracker(request).scheduler.get_status()

    @app.post("/scraper/run")
    def run_scraper(
        request: Request,
        background_tasks: BackgroundTasks,
        wait: bool = True,
    ) -> dict:
        scheduler = _tracker(request).scheduler
        if scheduler.is_running:
            raise HTTPException(status_code=409, detail="Job already running")
        if not wait:
            background_tasks.add_task(scheduler.run_manual_scrape)
            return {"started": True}
        result = scheduler.run_manual_scrape()
        if result.message == "Job already running":
            raise HTTPException(status_code=409, detail=result.message)
        return result.to_dict()

    return app


app = create_app()

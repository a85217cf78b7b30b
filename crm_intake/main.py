"""
FastAPI application for the email intake pipeline.
"""

from contextlib import asynccontextmanager
from functools import lru_cache

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException
from pydantic import BaseModel

from crm_intake.config import settings
from crm_intake.core.errors import MessageProcessingError, NoActingUserError, RecordNotFoundError
from crm_intake.core.logging import configure_logging, get_logger
from crm_intake.core.store import (
    DEALS,
    INBOUND_MESSAGES,
    NOTES,
    ORGANIZATIONS,
    Filter,
    RecordStore,
    get_store,
)
from crm_intake.processors.fetch import MailFetcher
from crm_intake.processors.pipeline import MessagePipeline
from crm_intake.scheduler import start_scheduler, stop_scheduler

log = get_logger(__name__)

VERSION = "1.0.0"


@lru_cache
def get_record_store() -> RecordStore:
    """Process-wide record store."""
    return get_store()


def get_pipeline(store: RecordStore = Depends(get_record_store)) -> MessagePipeline:
    return MessagePipeline(store=store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    configure_logging(settings.log_level, settings.log_json)
    log.info("application_starting", store_backend=settings.store_backend)

    if settings.store_backend == "postgres":
        from crm_intake.core.database import PostgresRecordStore

        PostgresRecordStore().init_schema()

    if settings.scheduler_enabled:
        start_scheduler()
    else:
        log.info("scheduler_disabled", reason="trigger /fetch and /process manually")

    yield

    if settings.scheduler_enabled:
        stop_scheduler()
    log.info("application_stopped")


app = FastAPI(
    title="CRM Email Intake",
    description="Routes inbound email into organizations, deals, notes and tasks",
    version=VERSION,
    lifespan=lifespan,
)


# Request/Response Models

class ProcessRequest(BaseModel):
    user_id: str | None = None


class FetchRequest(BaseModel):
    days: int = 7


class StatsResponse(BaseModel):
    total: int = 0
    processed: int = 0
    pending: int = 0
    organizations: int = 0
    deals: int = 0
    notes: int = 0


# Endpoints

@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": VERSION}


@app.get("/stats", response_model=StatsResponse)
def get_stats(store: RecordStore = Depends(get_record_store)):
    """Get message and record counts."""
    processed = store.count(INBOUND_MESSAGES, [Filter("processed", "==", True)])
    pending = store.count(INBOUND_MESSAGES, [Filter("processed", "==", False)])
    return StatsResponse(
        total=processed + pending,
        processed=processed,
        pending=pending,
        organizations=store.count(ORGANIZATIONS),
        deals=store.count(DEALS),
        notes=store.count(NOTES),
    )


@app.post("/process")
async def trigger_processing(
    request: ProcessRequest,
    background_tasks: BackgroundTasks,
    pipeline: MessagePipeline = Depends(get_pipeline),
):
    """
    Process one batch of unprocessed messages.

    Runs in background to avoid timeout.
    """
    def run_batch():
        try:
            pipeline.process_unprocessed_batch(request.user_id)
        except NoActingUserError as e:
            log.error("batch_not_started", error=str(e))

    background_tasks.add_task(run_batch)

    return {"status": "processing_started"}


@app.post("/process/{message_id}")
def process_message(
    message_id: str,
    request: ProcessRequest | None = None,
    pipeline: MessagePipeline = Depends(get_pipeline),
):
    """Process a single message synchronously."""
    user_id = request.user_id if request else None
    try:
        acting_user_id = pipeline.resolve_acting_user(user_id)
    except NoActingUserError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        created = pipeline.process_message(message_id, acting_user_id)
    except MessageProcessingError as e:
        if isinstance(e.__cause__, RecordNotFoundError):
            raise HTTPException(status_code=404, detail=f"Message not found: {message_id}")
        raise HTTPException(status_code=500, detail=str(e))

    return {"message_id": message_id, "created": created}


@app.post("/fetch")
async def trigger_fetch(
    request: FetchRequest,
    background_tasks: BackgroundTasks,
    store: RecordStore = Depends(get_record_store),
):
    """
    Fetch mail from IMAP into the store (without processing).

    Args:
        days: Number of days to fetch (default 7, max 365)
    """
    days = min(request.days, 365)

    def run_fetch():
        MailFetcher(store=store).fetch_and_store(since_days=days)

    background_tasks.add_task(run_fetch)

    return {"status": "fetch_started", "days": days}


# Run with: uvicorn crm_intake.main:app --host 0.0.0.0 --port 8001

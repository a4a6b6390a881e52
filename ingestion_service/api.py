import time
import logging

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from . import aws_utils
from .auth import is_authorized
from .config import Settings
from .dependencies import get_settings, get_store
from .exceptions import IngestionError, UnauthorizedError
from .processor import BatchProcessor, check_content_length, parse_request
from .store import EventStore

aws_utils.configure_logging()

logger = logging.getLogger(__name__)

app = FastAPI(title="Telemetry Ingestion API", version="1.0.0")


def client_address(request: Request):
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@app.exception_handler(IngestionError)
async def handle_ingestion_error(request: Request, exc: IngestionError):
    aws_utils.emit_metrics(
        auth_failed=isinstance(exc, UnauthorizedError),
        request_rejected=exc.code,
    )
    if exc.status_code >= 500:
        logger.error(f"Request failed: {exc.code}: {exc.message}")
    else:
        logger.warning(f"Request rejected: {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.get("/health")
def health(store: EventStore = Depends(get_store)):
    return {"status": 200, "message": "all good!", "store": store.ping()}


@app.post("/events", dependencies=[Depends(is_authorized)])
async def post_events(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: EventStore = Depends(get_store),
):
    start = time.time()
    check_content_length(request.headers.get("content-length"))
    body = await request.body()
    events = parse_request(body)

    processor = BatchProcessor(store, ip_hash_salt=settings.ip_hash_salt)
    result = await run_in_threadpool(
        processor.process,
        events,
        client_address(request),
        request.headers.get("user-agent"),
    )

    aws_utils.emit_metrics(
        events_received=result.received,
        events_inserted=result.inserted,
        events_duplicate=result.duplicates,
        events_dropped=result.dropped,
        request_latency=time.time() - start,
        store_write_latency=result.store_write_latency,
    )
    return result.to_body()

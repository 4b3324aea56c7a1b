import logging

from fastapi import Depends, FastAPI
from fastapi.responses import PlainTextResponse

from lesson_ingest.api.extraction import router as extraction_router
from lesson_ingest.logging_config import configure_logging
from lesson_ingest.services.extraction import ExtractionService, get_extraction_service
from lesson_ingest.telemetry import emit_app_startup_event, log_event

configure_logging()

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Lesson Ingest API")
app.include_router(extraction_router)


@app.on_event("startup")
async def _startup() -> None:
    emit_app_startup_event()


@app.on_event("shutdown")
async def _shutdown() -> None:
    """Release the recognition engine held by the shared service."""

    service = app.dependency_overrides.get(get_extraction_service, get_extraction_service)()
    service.close()
    log_event(LOGGER, "app.shutdown")


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck() -> str:
    """Liveness probe used by container orchestrators."""
    return "ok"


@app.get("/healthz/ocr")
def ocr_healthcheck(service: ExtractionService = Depends(get_extraction_service)) -> dict[str, object]:
    """Expose whether the recognition engine is loaded and how many files it is working on."""

    return service.ocr_status()

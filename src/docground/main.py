import logging

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from docground.api.documents import router as documents_router
from docground.config import Settings
from docground.logging_config import configure_logging
from docground.telemetry import emit_app_startup_event

_settings = Settings.from_env()
configure_logging(_settings.log_dir, _settings.log_level)

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="DocGround API")
app.include_router(documents_router)


@app.on_event("startup")
async def _startup() -> None:
    emit_app_startup_event()


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck() -> str:
    """Liveness probe used by container orchestrators."""
    return "ok"

from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI
from starlette.requests import Request

from app.api.router import api_router
from app.core.config import get_settings
from app.core.telemetry import (
    TelemetryRuntime,
    configure_api_logging,
    setup_api_telemetry,
    shutdown_api_telemetry,
)
from app.messaging.bus import MessageBusError
from app.services.container import build_services

settings = get_settings()
configure_api_logging(settings)
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = build_services(get_settings())
    try:
        await services.start(get_settings())
    except MessageBusError as exc:
        # Queries keep working without the bus; creation fails until it is back.
        logger.error("failed to subscribe to verification events: %s", exc)
    except Exception:
        await services.close()
        raise
    app.state.services = services
    logger.info("scoring api gateway started storage=%s bus=%s", type(services.store).__name__, type(services.bus).__name__)
    try:
        yield
    finally:
        app.state.services = None
        if _telemetry_runtime is not None:
            shutdown_api_telemetry(app, _telemetry_runtime)
        await services.close()
        logger.info("scoring api gateway stopped")


app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_api_telemetry(app, settings)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router)

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool

from .api import shorturls
from .api.shorturls import get_registry
from .config import Settings, settings as default_settings
from .errors import ShortLinkError
from .events import EventLogger
from .geo import GeoLookup, build_geo_lookup
from .logging_config import setup_logging
from .middleware import AccessLogMiddleware, client_ip
from .observability import PrometheusMiddleware, metrics_endpoint
from .registry import ShortLinkRegistry
from .services.access_log import AccessLogBuffer, flush_access_log

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup logic
    await app.state.events.start()
    flusher = asyncio.create_task(
        flush_access_log(app.state.access_log, app.state.settings.ACCESS_LOG_FLUSH_SECONDS)
    )
    yield
    # Shutdown logic
    flusher.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await flusher
    await app.state.events.stop()

async def shortlink_error_handler(request: Request, exc: ShortLinkError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request body."})

async def health():
    return {"status": "ok"}

async def redirect_to_url(
    shortcode: str,
    request: Request,
    registry: ShortLinkRegistry = Depends(get_registry),
):
    # Geo lookup may hit the network, keep it off the event loop
    original_url = await run_in_threadpool(
        registry.resolve,
        shortcode,
        request.headers.get("referer"),
        client_ip(request),
    )
    return RedirectResponse(url=original_url, status_code=302)

def create_app(
    settings: Optional[Settings] = None,
    geo_lookup: Optional[GeoLookup] = None,
    events: Optional[EventLogger] = None,
) -> FastAPI:
    settings = settings or default_settings
    events = events or EventLogger.from_settings(settings)

    app = FastAPI(
        title="URL Shortener",
        description="URL shortening service with click analytics",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.events = events
    app.state.access_log = AccessLogBuffer(settings.ACCESS_LOG_PATH)
    app.state.registry = ShortLinkRegistry(
        events=events,
        geo_lookup=geo_lookup or build_geo_lookup(settings),
        code_length=settings.SHORTCODE_LENGTH,
        max_attempts=settings.SHORTCODE_MAX_ATTEMPTS,
        default_validity=settings.DEFAULT_VALIDITY_MINUTES,
    )

    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(AccessLogMiddleware, buffer=app.state.access_log)

    app.add_exception_handler(ShortLinkError, shortlink_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.add_route("/metrics", metrics_endpoint)
    app.add_api_route("/health", health, methods=["GET"])

    app.include_router(shorturls.router)

    # Catch-all, registered last
    app.add_api_route("/{shortcode}", redirect_to_url, methods=["GET"])

    return app

setup_logging()

app = create_app()

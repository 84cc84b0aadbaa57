import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from core.cache import InMemoryCache
from core.config import CacheSettings, load_settings
from core.errors import KeyNotFoundError, build_error
from core.logging_config import get_logger
from routes import cache as cache_routes
from routes import system as system_routes

SERVICE_VERSION = "1.0.0"


def _log_extra(request: Request, status: int, latency_ms: Optional[int]) -> dict:
    return {
        "request_id": getattr(request.state, "request_id", None),
        "path": request.url.path,
        "status": status,
        "latency_ms": latency_ms,
    }


def _error_response(request: Request, status_code: int, message: str) -> JSONResponse:
    payload = {"detail": message, "error": build_error(status_code, message).to_response()}
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=status_code, content=payload)


def create_app(settings: Optional[CacheSettings] = None) -> FastAPI:
    settings = settings or load_settings()
    logger = get_logger(settings.service_name, settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cache: InMemoryCache = InMemoryCache(
            default_ttl=settings.default_ttl_seconds,
            cleanup_interval=settings.cleanup_interval_seconds,
            logger=logger.getChild("cache"),
        )
        app.state.cache = cache
        logger.info("cache_started")
        try:
            yield
        finally:
            cache.close()
            logger.info("cache_stopped")

    app = FastAPI(
        title="TTL Cache",
        description="Process-local key/value cache with per-entry TTL and background sweeping",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # -----------------------------
    # Middleware: request_id + logging
    # -----------------------------
    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        start = time.time()
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception:
            latency_ms = int((time.time() - start) * 1000)
            logger.error("unhandled_exception", exc_info=True, extra=_log_extra(request, 500, latency_ms))
            return _error_response(request, 500, "Erro interno no servidor.")

        latency_ms = int((time.time() - start) * 1000)
        logger.info("request", extra=_log_extra(request, response.status_code, latency_ms))
        response.headers["X-Request-Id"] = request_id
        return response

    # -----------------------------
    # Exception handlers
    # -----------------------------
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger.warning("http_exception", extra=_log_extra(request, exc.status_code, None))
        return _error_response(request, exc.status_code, str(exc.detail))

    @app.exception_handler(KeyNotFoundError)
    async def key_not_found_handler(request: Request, exc: KeyNotFoundError):
        logger.warning("key_not_found", extra=_log_extra(request, 404, None))
        return _error_response(request, 404, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning("validation_error", extra=_log_extra(request, 422, None))
        return _error_response(request, 422, "Payload inválido.")

    app.include_router(system_routes.router)
    app.include_router(cache_routes.router)
    return app


app = create_app()

"""Web host for the Todo modular monolith.

Builds the FastAPI application: logging first, then the application context
(module registration) inside the lifespan, then the health and module
routes. A configuration error during startup is logged as critical and
aborts the host.
"""

import time
import uuid
from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from todo.core.config import Settings, get_settings
from todo.core.events import MessageBus
from todo.core.health import HealthReport
from todo.core.logging import LogConfig, clear_context, configure_logging, get_logger, log_context
from todo.core.modules import ModuleRegistrar, bootstrap
from todo.core.web import register_exception_handlers
from todo.modules.tasks import TasksModuleRegistrar
from todo.modules.tasks.presentation.router import router as tasks_router

logger = get_logger(__name__)


def default_registrars() -> list[ModuleRegistrar]:
    """Registrars of every bounded context this host ships."""
    return [TasksModuleRegistrar()]


def _build_lifespan(
    settings: Settings,
    registrars: list[ModuleRegistrar],
    message_bus: MessageBus | None,
    http_transport: httpx.AsyncBaseTransport | None,
):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        logger.info(
            "Starting Todo WebHost",
            version=settings.app_version,
            environment=settings.environment.value,
        )
        try:
            context = await bootstrap(
                settings, registrars, message_bus=message_bus, http_transport=http_transport
            )
        except Exception as e:
            logger.critical("Host terminated unexpectedly", error=str(e), error_type=type(e).__name__)
            raise

        app.state.context = context
        logger.info("Todo WebHost startup completed", modules=context.registry.module_names())

        yield

        logger.info("Starting graceful shutdown")
        try:
            await context.aclose()
        finally:
            app.state.context = None
        logger.info("Todo WebHost shutdown completed")

    return lifespan


def add_request_context_middleware(app: FastAPI) -> None:
    """Bind a request id to every log line of the request."""

    class RequestContextMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next):
            request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
            request.state.request_id = request_id
            log_context(request_id=request_id)
            start_time = time.perf_counter()
            try:
                response = await call_next(request)
            finally:
                clear_context()

            response.headers["X-Request-ID"] = request_id
            logger.debug(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                process_time_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            return response

    app.add_middleware(RequestContextMiddleware)


def _health_response(report: HealthReport) -> JSONResponse:
    return JSONResponse(
        status_code=200 if report.is_healthy else 503,
        content=report.to_dict(),
    )


def register_health_endpoints(app: FastAPI) -> None:
    """``/health`` runs every probe, ``/health/ready`` the ready-tagged ones."""

    def _not_started() -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "checks": {}, "message": "Host is starting"},
        )

    @app.get("/health")
    async def health():
        context = getattr(app.state, "context", None)
        if context is None:
            return _not_started()
        return _health_response(await context.health.check_all())

    @app.get("/health/ready")
    async def readiness():
        context = getattr(app.state, "context", None)
        if context is None:
            return _not_started()
        return _health_response(await context.health.readiness())

    @app.get("/health/live")
    async def liveness():
        context = getattr(app.state, "context", None)
        if context is None:
            return _health_response(HealthReport(results=[]))
        return _health_response(await context.health.liveness())


def register_module_routes(app: FastAPI, settings: Settings) -> None:
    if settings.module(TasksModuleRegistrar.module_name).enabled:
        app.include_router(tasks_router)


def create_app(
    settings: Settings | None = None,
    registrars: Iterable[ModuleRegistrar] | None = None,
    message_bus: MessageBus | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    configure_logging(
        LogConfig(
            level=settings.log_level,
            format=settings.log_format,
            environment=settings.environment,
        )
    )

    registrars = list(registrars) if registrars is not None else default_registrars()
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=_build_lifespan(settings, registrars, message_bus, http_transport),
    )
    app.state.settings = settings
    app.state.context = None

    register_exception_handlers(app)
    add_request_context_middleware(app)
    register_health_endpoints(app)
    register_module_routes(app, settings)
    return app


def run() -> None:
    """Console entry point."""
    settings = get_settings()
    uvicorn.run(
        "todo.main:create_app",
        factory=True,
        host=settings.env_loader.get_string("HOST", "0.0.0.0"),
        port=int(settings.env_loader.get_string("PORT", "8000")),
        reload=settings.debug,
        log_config=None,
    )


if __name__ == "__main__":
    run()

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from foundry_gateway import __version__
from foundry_gateway.api.v1.router import api_router
from foundry_gateway.core.config import Settings, settings, validate_settings
from foundry_gateway.core.exceptions import GatewayError
from foundry_gateway.core.logging import setup_logging
from foundry_gateway.core.metrics import PrometheusMiddleware, metrics_response
from foundry_gateway.core.middleware import RequestLoggingMiddleware
from foundry_gateway.core.sentry import init_sentry
from foundry_gateway.gateway.gateway import GatewayService
from foundry_gateway.vault.loader import VaultLoader

# Configure logging before anything else
setup_logging()

logger = logging.getLogger(__name__)


async def _gateway_error_handler(request: Request, exc: GatewayError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers())


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid request body: {location + ': ' if location else ''}{first.get('msg', 'invalid value')}"
    else:
        message = "Invalid request body."
    return JSONResponse(status_code=400, content={"error": message})


# Log unhandled exceptions with their traceback; the client only sees the type and message
async def _unhandled_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("Unhandled %s on %s %s:\n%s", type(exc).__name__, request.method, request.url.path, "".join(tb))
    return JSONResponse(status_code=500, content={"error": f"{type(exc).__name__}: {exc}"})


def create_app(config: Settings | None = None) -> FastAPI:
    """Build the gateway application for the given settings."""
    config = config or settings
    validate_settings(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_sentry(config)
        logger.info(
            "Foundry gateway starting (providers: %s)",
            ", ".join(app.state.gateway.registry.names()),
        )
        yield
        logger.info("Foundry gateway shut down")

    app = FastAPI(
        title="Foundry Gateway",
        description="Authenticated, rate-limited access to hosted and local LLMs",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.gateway = GatewayService.from_settings(config)
    app.state.vault_loader = VaultLoader(
        vault_path=config.vault_path,
        max_files=config.vault_max_files,
        max_content_chars=config.vault_max_content_chars,
    )

    app.add_exception_handler(GatewayError, _gateway_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(PrometheusMiddleware)

    # CORS: no ALLOWED_ORIGINS means any origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        return metrics_response()

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the gateway with uvicorn."""
    import uvicorn

    uvicorn.run(app, host=settings.app_host, port=settings.port, log_config=None)

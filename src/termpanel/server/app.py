"""FastAPI application factory and configuration"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from ..config import load_host_config, load_panel_config
from ..exception import TermPanelException
from ..host import LocalSessionDirectory
from ..logging import setup_logging
from ..schema import ErrorResponse
from .api import router as sessions_router
from .broker import WindowMessageBroker
from .websocket import router as websocket_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: stop every session and socket on shutdown"""
    logger.info("termpanel server started")
    yield
    logger.info("Shutting down: disconnecting windows and stopping sessions...")
    await app.state.window_broker.disconnect_all()
    await app.state.session_directory.cleanup_all()
    logger.info("Shutdown complete")


def create_app(instance_path: Path, config: dict) -> FastAPI:
    """Create and configure FastAPI application instance

    This is the application factory function that initializes logging,
    creates the FastAPI app, builds the session directory and the window
    broker, configures middleware, registers exception handlers, and
    includes routers.

    Args:
        instance_path: Path to the termpanel instance directory
        config: Configuration dictionary loaded from config.toml

    Returns:
        Configured FastAPI application instance

    Raises:
        ConfigError: If the [panel] or [host] table is invalid
    """
    # Initialize logging first
    setup_logging(instance_path)

    panel_config = load_panel_config(config)
    host_config = load_host_config(config)

    app = FastAPI(
        title="termpanel API",
        description="Tabbed terminal panel over shared PTY sessions",
        lifespan=lifespan,
    )

    # ==================== Shared State ====================

    app.state.config = config
    app.state.instance_path = instance_path
    app.state.panel_config = panel_config
    app.state.session_directory = LocalSessionDirectory(
        config=host_config,
        default_cwd=panel_config.default_directory,
    )
    app.state.window_broker = WindowMessageBroker()

    # ==================== CORS Configuration ====================

    cors_config = config.get('cors', {})
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_config.get('allow_origins', []),
        allow_credentials=cors_config.get('allow_credentials', True),
        allow_methods=cors_config.get('allow_methods', ["*"]),
        allow_headers=cors_config.get('allow_headers', ["*"]),
    )

    # ==================== Exception Handlers ====================

    @app.exception_handler(TermPanelException)
    async def termpanel_exception_handler(request: Request, exc: TermPanelException) -> JSONResponse:
        """Handle all termpanel business exceptions

        Returns:
            JSONResponse with ErrorResponse format (HTTP 200, success=false)
        """
        return JSONResponse(
            status_code=200,  # Business errors return 200 with success=false
            content=ErrorResponse(
                message=exc.message,
                error={"code": exc.code}
            ).model_dump()
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle request validation errors with the same envelope"""
        return JSONResponse(
            status_code=200,
            content=ErrorResponse(
                message="Invalid input format",
                error={
                    "code": "VALIDATION_ERROR",
                    "details": exc.errors()
                }
            ).model_dump()
        )

    # ==================== Router Registration ====================

    app.include_router(sessions_router, prefix="/api")
    app.include_router(websocket_router)

    return app

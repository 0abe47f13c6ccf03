import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dbgateway.api.routes import tool_routes
from dbgateway.core.config import settings, Settings
from dbgateway.dispatcher import ToolDispatcher
from dbgateway.registry import ConnectionRegistry


logger = logging.getLogger(__name__)


def configure_logging(app_settings: Settings) -> None:
    handlers = [logging.StreamHandler()]
    if app_settings.LOG_FILE:
        handlers.append(logging.FileHandler(app_settings.LOG_FILE))
    logging.basicConfig(
        level=app_settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        handlers=handlers,
    )


async def sweep_idle_connections(dispatcher: ToolDispatcher, max_idle_seconds: float, interval_seconds: float):
    """Periodically close connections idle for longer than `max_idle_seconds`."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await dispatcher.reap_idle(max_idle_seconds)
        except Exception:
            logger.exception("Idle connection sweep failed")


@asynccontextmanager
async def lifespan(application: FastAPI):
    app_settings: Settings = application.state.settings
    dispatcher: ToolDispatcher = application.state.dispatcher

    sweeper = None
    if app_settings.CONNECTION_IDLE_TIMEOUT_SECONDS > 0:
        logger.info(
            f"Reaping connections idle for more than "
            f"{app_settings.CONNECTION_IDLE_TIMEOUT_SECONDS}s"
        )
        sweeper = asyncio.create_task(sweep_idle_connections(
            dispatcher,
            app_settings.CONNECTION_IDLE_TIMEOUT_SECONDS,
            app_settings.IDLE_SWEEP_INTERVAL_SECONDS,
        ))

    yield

    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
    await dispatcher.close_all()
    logger.info("All connections closed")


def create_application(
    registry: Optional[ConnectionRegistry] = None,
    app_settings: Optional[Settings] = None
) -> FastAPI:
    """Create FastAPI application."""
    app_settings = app_settings or settings
    registry = registry if registry is not None else ConnectionRegistry()

    application = FastAPI(
        title=app_settings.PROJECT_NAME,
        description=app_settings.PROJECT_DESCRIPTION,
        version=app_settings.VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    application.state.settings = app_settings
    application.state.registry = registry
    application.state.dispatcher = ToolDispatcher(registry)

    # Set up CORS middleware
    application.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    application.include_router(tool_routes.router)

    @application.get("/")
    def root():
        """Root endpoint."""
        return {
            "name": app_settings.MCP_SERVER_NAME,
            "description": app_settings.PROJECT_DESCRIPTION,
            "version": app_settings.VERSION,
            "status": "running",
        }

    @application.get("/health")
    def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": app_settings.MCP_SERVER_NAME,
            "version": app_settings.VERSION
        }

    return application


configure_logging(settings)
app = create_application()


def run():
    import uvicorn
    uvicorn.run("dbgateway.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()

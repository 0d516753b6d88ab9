"""FastAPI application for the mock control server.

The application owns one ``MockRuntime`` (mock engine, adapter, identity and
subscription store). It is built and initialized in the lifespan handler and
disposed on shutdown, which also flushes persisted store state.
"""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from entitlement_engine import __version__
from entitlement_engine.api.control import MockRuntime
from entitlement_engine.api.control import router as control_router
from entitlement_engine.config import Config, get_config
from entitlement_engine.logging_config import configure_logging_from_env, get_logger
from entitlement_engine.middleware import ControlRequestMiddleware
from entitlement_engine.repositories.storage import KeyValueStorage

logger = get_logger(__name__)


def create_app(config: Optional[Config] = None, storage: Optional[KeyValueStorage] = None) -> FastAPI:
    """Create the control server application.

    Args:
        config: Configuration; the global configuration is loaded at startup when omitted
        storage: Storage override for the persisted store state

    Returns:
        FastAPI application whose lifespan runs the mock runtime
    """
    configure_logging_from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        runtime = MockRuntime(config or get_config(), storage=storage)
        logger.info("control_server_starting", version=__version__, platform=runtime.config.platform)
        await runtime.start()
        app.state.runtime = runtime
        logger.info(
            "control_server_started",
            is_pro=runtime.store.is_pro,
            packages=len(runtime.store.packages),
            products=len(runtime.engine.products),
        )
        try:
            yield
        finally:
            await app.state.runtime.stop()
            app.state.runtime = None
            logger.info("control_server_stopped")

    app = FastAPI(
        title="Entitlement Engine Mock Control",
        description="Drive the mock billing backend and inspect the subscription store",
        version=__version__,
        lifespan=lifespan,
    )

    # Local development tool; any origin may drive it
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Virtual-Time"],
    )
    app.add_middleware(
        ControlRequestMiddleware,
        include_request_details=os.getenv("LOG_REQUEST_DETAILS", "true").lower() == "true",
    )

    app.include_router(control_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"service": "entitlement-engine", "status": "running", "version": __version__}

    @app.get("/health")
    async def health(request: Request) -> dict[str, str]:
        """Store phase and catalog size; ``starting`` until the lifespan has run."""
        runtime = getattr(request.app.state, "runtime", None)
        if runtime is None:
            return {"status": "starting", "store": "uninitialized"}
        return {
            "status": "healthy",
            "store": runtime.store.phase.value,
            "catalog": f"loaded ({len(runtime.engine.products)} products)",
        }

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"error": "internal_server_error", "message": "An unexpected error occurred"},
        )

    return app


app = create_app()

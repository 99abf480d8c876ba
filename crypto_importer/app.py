"""
Importer Application Main Entry Point

FastAPI application that mounts the import router and provides
the main entry point for the importer API.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import uvicorn

from crypto_importer.boot.settings import get_settings
from crypto_importer.boot.container import get_container
from crypto_importer.modules.data_import.api_import import router as import_router
from crypto_importer.modules.data_import.api_import import set_import_coordinator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting importer application")

    container = get_container()
    set_import_coordinator(container.get_import_coordinator())
    await container.check_storage()

    yield

    # Shutdown
    logger.info("Shutting down importer application")
    set_import_coordinator(None)
    await container.shutdown()


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""

    settings = get_settings()

    # Configure logging
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=settings.logging.format
    )

    app = FastAPI(
        title=settings.api.title,
        description=settings.api.description,
        version=settings.api.version,
        debug=settings.debug,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(import_router)

    @app.get("/health")
    async def health_check():
        """Main application health check"""
        state = get_container().get_import_coordinator().snapshot()
        return {
            "status": "healthy",
            "environment": settings.environment,
            "version": settings.api.version,
            "importing": state.active
        }

    logger.info(f"FastAPI app created for {settings.environment} environment")
    return app


# Create the app instance
app = create_app()


def main():
    """Main entry point for running the application"""
    settings = get_settings()

    logger.info(f"crypto-importer starting on {settings.api.host}:{settings.api.port}")

    uvicorn.run(
        "crypto_importer.app:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.reload,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()

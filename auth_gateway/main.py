from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from datetime import datetime, timezone
from typing import Optional
import logging

# Load environment variables as early as possible
load_dotenv()

from .config import Settings, settings as default_settings
from .database import build_engine, create_db_and_tables
from .dependencies import Container, build_container
from .exceptions import http_exception_handler
from .middleware import ErrorHandlingMiddleware, NoStoreMiddleware, RequestLogMiddleware
from .routers import auth_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, default_settings.LOG_LEVEL.upper(), logging.INFO),
    format=default_settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, container: Optional[Container] = None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"Starting {settings.APP_NAME}...")
        app.state.db_init_ok = True
        app.state.db_init_error = None
        engine = None
        if container is None:
            engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)
        try:
            if engine is not None:
                create_db_and_tables(engine)
                logger.info("Database initialized successfully")
        except Exception as e:
            # Do not crash the app; report via health endpoint
            app.state.db_init_ok = False
            app.state.db_init_error = str(e)
            logger.exception("Database initialization failed")

        app.state.container = container or build_container(settings, engine)
        await app.state.container.sweeper.start()
        yield
        # Shutdown
        await app.state.container.sweeper.stop()
        if engine is not None:
            engine.dispose()
        logger.info(f"Shutting down {settings.APP_NAME}...")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url=("/docs" if settings.DOCS_ENABLED else None),
        redoc_url=("/redoc" if settings.DOCS_ENABLED else None),
        openapi_url=("/openapi.json" if settings.DOCS_ENABLED else None)
    )

    # Add custom exception handler
    app.add_exception_handler(HTTPException, http_exception_handler)

    # Add middleware
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(NoStoreMiddleware)

    # Add CORS middleware
    origins = settings.allowed_origins_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router.router)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        sweeper = getattr(getattr(app.state, "container", None), "sweeper", None)
        return {
            "status": "healthy" if getattr(app.state, "db_init_ok", True) else "degraded",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "attempt_store": settings.ATTEMPT_STORE,
            "sweeper_running": bool(sweeper and sweeper.running),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("auth_gateway.main:app", host=default_settings.HOST, port=default_settings.PORT)

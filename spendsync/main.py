from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from spendsync.config import settings
from spendsync.dependencies import build_container
from spendsync.exceptions import AppException
from spendsync.routes import api_router
from spendsync.logging_config import setup_logging, get_logger
from spendsync.middleware.logging_middleware import LoggingMiddleware

# Setup logging
setup_logging(settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up...")
    if getattr(app.state, "container", None) is None:
        app.state.container = build_container()
    try:
        yield
    finally:
        logger.info("Shutting down...")
        await app.state.container.supervisor.shutdown(timeout=10.0)
        from spendsync.db import engine
        await engine.dispose()
        logger.info("Sync jobs stopped and database pool closed.")


app = FastAPI(
    title="SpendSync API",
    description="Expense tracking from transactional email",
    version="1.0.0",
    lifespan=lifespan
)

# Logging middleware
app.add_middleware(LoggingMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["DELETE", "GET", "PATCH", "POST", "PUT"],
    allow_headers=["*"],
)


# Global exception handler
@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


# Include routers
app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health():
    from spendsync.db import check_database_connection
    db_status = await check_database_connection()
    return {
        "status": "ok" if db_status else "degraded",
        "database": "connected" if db_status else "disconnected",
        "active_jobs": app.state.container.supervisor.active_jobs if getattr(app.state, "container", None) else 0,
    }

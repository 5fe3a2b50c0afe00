"""
FastAPI main application.

Position Ledger backend API.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
import logging

from ledger.config import settings
from ledger.api import (
    accounts_router,
    operations_router,
    positions_router,
    portfolio_router
)
from ledger.database import AsyncSessionLocal, create_tables
from ledger.services.position_manager import PositionLocks

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Weighted-average cost ledger for investment positions",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

# Operations on one identifier are serialized across all requests of the process
app.state.position_locks = PositionLocks()

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(accounts_router)
app.include_router(operations_router)
app.include_router(positions_router)
app.include_router(portfolio_router)


@app.get("/api/health")
async def health_check():
    """Health check endpoint with database connectivity status."""
    health_data = {
        "status": "healthy",
        "app": settings.app_name,
        "environment": settings.environment,
        "database": "unknown"
    }

    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        health_data["database"] = "connected"
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        health_data["database"] = "error"
        health_data["database_error"] = str(e)

    return health_data


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "message": "Position Ledger API",
        "docs": "/api/docs",
        "health": "/api/health"
    }


# Startup event
@app.on_event("startup")
async def startup_event():
    """Run on application startup."""
    logger.info(f"Starting {settings.app_name} in {settings.environment} mode")
    logger.info(f"Allowed origins: {settings.allowed_origins}")
    if settings.environment == "development":
        await create_tables()
        logger.info("Created database tables (development mode)")


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Run on application shutdown."""
    logger.info("Shutting down Position Ledger API")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "ledger.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower()
    )

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from tender_intel.core.config import settings
from tender_intel.api.routes import router
from tender_intel.database import init_db, engine
from contextlib import asynccontextmanager
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    # ========== STARTUP ==========
    logger.info("=" * 60)
    logger.info("🚀 Tender Intelligence API starting...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    try:
        init_db()
        logger.info("✓ Database tables created/verified successfully")
    except Exception as e:
        logger.error(f"✗ Database initialization failed: {e}")
        logger.warning("API will start but database operations may fail")

    scheduler = None
    if settings.HISTORICAL_SYNC_ENABLED:
        try:
            from tender_intel.tasks.historical_sync import setup_scheduler

            scheduler = setup_scheduler()
            scheduler.start()
            logger.info("✅ Historical sync scheduler initialized")
        except Exception as e:
            logger.error(f"❌ Failed to start historical sync scheduler: {e}")

    logger.info(f"Docs available at: http://{settings.API_HOST}:{settings.API_PORT}/docs")
    logger.info("=" * 60)

    yield  # Application runs here

    # ========== SHUTDOWN ==========
    logger.info("🛑 Shutting down Tender Intelligence API...")

    from tender_intel.tasks.historical_sync import cancel_event
    cancel_event.set()

    if scheduler:
        try:
            scheduler.shutdown(wait=False)
            logger.info("✅ Historical sync scheduler stopped")
        except Exception as e:
            logger.error(f"❌ Error stopping historical sync scheduler: {e}")

    try:
        engine.dispose()
        logger.info("✓ Database connections closed")
    except Exception as e:
        logger.error(f"Error closing database connections: {e}")


app = FastAPI(
    title="Tender Intelligence API",
    description="SECOP II tender matching, risk detection and historical cache",
    version="1.0.0",
    lifespan=lifespan
)

origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router)

logger.info("✓ All routes registered")


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "message": "Tender Intelligence API - SECOP II Matching",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "status": "operational"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring"""
    from sqlalchemy import text

    db_status = "healthy"
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "database": db_status,
        "environment": settings.ENVIRONMENT
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "tender_intel.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.ENVIRONMENT == "development"
    )

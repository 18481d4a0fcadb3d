"""Main FastAPI application for the recurring tasks service."""
from fastapi import FastAPI

from recurring_tasks import __version__
from recurring_tasks.db.init import init_db
from recurring_tasks.routers import recurrence
from recurring_tasks.utils.logger import get_logger
from recurring_tasks.utils.metrics import metrics_collector

logger = get_logger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Recurring Tasks API",
    description="Recurring task series, occurrence generation and reminder scheduling",
    version=__version__,
)


@app.on_event("startup")
async def startup_event():
    """Initialize database tables on startup."""
    try:
        init_db()
        logger.info("Database tables initialized")
    except Exception as e:
        logger.exception("Database initialization failed; storage operations may fail", error=str(e))


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


@app.get("/metrics")
async def metrics():
    """Recurrence counters and timers."""
    return metrics_collector.get_metrics()


app.include_router(recurrence.router, prefix="/api")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "recurring_tasks.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )

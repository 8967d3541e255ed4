"""
Main FastAPI application entry point.
Responsibilities: App setup, router registration, startup/shutdown hooks.
"""
from fastapi import FastAPI

from .routes import chat, documents, models
from .db.migrations import run_sql_migrations
from .embedding import preload_model
from .logging_config import logger

# -------------------------------------------------
# App setup
# -------------------------------------------------

app = FastAPI(title="Inkwell", version="0.1.0")

# Register routers
app.include_router(chat.router)
app.include_router(documents.router)
app.include_router(models.router)


@app.on_event("startup")
async def startup_event():
    """Initialize database and embedding model on startup."""
    try:
        logger.info("Running database migrations...")
        run_sql_migrations()
        logger.info("Database migrations completed")

        logger.info("Preloading embedding model...")
        preload_model()
        logger.info("Embedding model ready")

    except Exception as e:
        logger.error("Startup initialization error", exc_info=e)
        # Continue anyway - app might still be usable


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Application shutting down")

"""
Database migration utilities.
"""
from sqlalchemy import text

from . import engine
from ..models import Base
from ..logging_config import logger


def run_sql_migrations():
    """
    Bring the schema up to date.

    Enables the pgvector extension and creates any missing tables. Safe to run
    on every startup.

    Raises:
        Exception: If any statement fails
    """
    with engine.begin() as conn:
        logger.info("Enabling pgvector extension")
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))

        logger.info("Creating missing tables", tables=sorted(Base.metadata.tables))
        Base.metadata.create_all(bind=conn)

    logger.info("Schema is up to date")

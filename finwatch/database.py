import os
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from finwatch.config import LOG_LEVEL

logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(database_url: str):
    """Create an engine with pool settings suited to the backing database."""
    # Only use connect_args if we are using SQLite
    engine_args = {}
    if database_url.startswith("sqlite"):
        engine_args["connect_args"] = {"check_same_thread": False}
    else:
        # Production settings for PostgreSQL
        engine_args.update({
            "pool_size": 5,
            "max_overflow": 10,
            "pool_timeout": 30,
            "pool_recycle": 1800,
        })

    try:
        return create_engine(database_url, **engine_args, echo=False)
    except Exception as e:
        logger.error(f"Failed to create engine: {e}")
        raise


def build_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine, database_url: str = ""):
    """Create the data/ directory for file-backed SQLite, then create all tables."""
    if database_url.startswith("sqlite:///./"):
        os.makedirs("data", exist_ok=True)

    # Import all models so they register with Base.metadata
    from finwatch.models.budget import Budget
    from finwatch.models.alert_event import AlertEvent
    from finwatch.models.notification import Notification
    from finwatch.models.profile import Profile

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully.")
    except Exception as e:
        logger.error(f"Error during database initialization: {e}")
        raise

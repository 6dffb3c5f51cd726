from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker
import logging

from waiver_app.core.settings import settings
from waiver_app.exceptions import PersistenceException

logger = logging.getLogger("waiver_app.database")

DATABASE_URL = settings.database_url


def _engine_kwargs(url: str) -> dict:
    kwargs = {
        "pool_pre_ping": True,  # Validate connections before use
        "echo": settings.sql_debug,
    }
    if url.startswith("sqlite"):
        # FastAPI runs sync endpoints in a threadpool
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_recycle"] = settings.db_pool_recycle
    return kwargs


engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


async def check_database_health():
    """Check if database is accessible."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("Database health check: PASSED")
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        logger.error(f"Database health check: FAILED - {str(e)}")
        return {"status": "unhealthy", "database": f"error: {str(e)}"}


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit_session(db, action: str = "write"):
    """Commit, or roll back and raise PersistenceException so no partial write remains."""
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database {action} failed, rolled back: {e}")
        raise PersistenceException(f"Could not {action}. Please retry.") from e

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from claimflow import config
from claimflow.logging_config import get_logger
from claimflow.models import Base
from claimflow.models.user import User
from claimflow.models.expense import Category, Expense
from claimflow.models.approval import Approval

logger = get_logger(__name__)

connect_args = {}
if config.DATABASE_URL.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(config.DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """
    Create tables if they don't exist.

    Called once from the application lifespan. For schema changes, use
    Alembic migrations instead:
        poetry run alembic revision --autogenerate -m "Description of change"
        poetry run alembic upgrade head
    """
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")


def dispose_db():
    """Release pooled connections at shutdown."""
    engine.dispose()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

from contextlib import contextmanager

from loguru import logger
from sqlmodel import SQLModel, Session, create_engine

from agritrace.core.config import settings


connect_args = {}
if settings.database_url.startswith("sqlite"):
    # FastAPI serves sync routes from a threadpool
    connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    connect_args=connect_args,
)


def init_db():
    # Importing the schema registers every table on the metadata
    from agritrace.db import schema  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session


@contextmanager
def atomic(session: Session, action: str):
    """
    Commits everything staged inside the block as one unit, or nothing.
    """
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"{action} failed: {str(e)}")
        raise e

from sqlmodel import SQLModel, create_engine
from sqlalchemy.pool import StaticPool

from studylab import models  # noqa: F401  (registers tables on SQLModel.metadata)
from studylab.config import settings


def make_engine(database_url: str):
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=False, **kwargs)
    return create_engine(database_url, echo=False)


engine = make_engine(settings.database_url)


def init_db(bind=None) -> None:
    """Initializes the database tables."""
    SQLModel.metadata.create_all(bind or engine)



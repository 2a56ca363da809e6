from pathlib import Path
from typing import Generator

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from sitehub.config import DATABASE_URL, SQL_ECHO


def _build_engine(url: str) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(url, echo=SQL_ECHO, pool_pre_ping=True)

    # File-backed SQLite: make sure the parent directory exists
    if ":memory:" not in url:
        Path(url.replace("sqlite:///", "", 1)).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, echo=SQL_ECHO, connect_args={"check_same_thread": False})


engine: Engine = _build_engine(DATABASE_URL)


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency: one session per request, closed when the request ends."""
    with Session(engine) as session:
        yield session


def init_db() -> None:
    """Register every sitehub table with SQLModel and create the missing ones."""
    import sitehub.models  # noqa: F401

    SQLModel.metadata.create_all(engine)

from __future__ import annotations
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./classroom_ai.db"


def make_engine(url: str) -> Engine:
	# SQLite connections get shared across FastAPI's threadpool workers
	connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
	return create_engine(url, connect_args=connect_args, future=True)


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def init_db(bind: Optional[Engine] = None) -> None:
	"""Create the quiz tables if they are missing."""
	from . import models  # noqa: F401  (registers tables on Base)
	Base.metadata.create_all(bind=bind or engine)


def get_db() -> Iterator[Session]:
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()

"""
Database engine, session factory and FastAPI session dependency.
"""
import logging
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from examhub.config import settings

logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> dict:
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every connection sees an empty database
        return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Yield a session scoped to one request"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None) -> None:
    """Create all tables"""
    # Import models so they are registered on Base.metadata
    import examhub.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database ready: %s", settings.database_url)


@event.listens_for(Session, "before_flush")
def _sync_question_totals(session, flush_context, instances):
    """Keep exams.total_questions equal to the number of questions."""
    from examhub.models.exam import Exam, Question

    touched = set()
    for obj in list(session.new) + list(session.dirty) + list(session.deleted):
        if isinstance(obj, Exam):
            touched.add(obj)
        elif isinstance(obj, Question) and obj.exam is not None:
            touched.add(obj.exam)

    for exam in touched:
        if exam in session.deleted:
            continue
        live = [q for q in exam.questions if q not in session.deleted]
        if exam.total_questions != len(live):
            exam.total_questions = len(live)

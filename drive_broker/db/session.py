"""
Database session management - SQLAlchemy engine and session factory.
This module provides the database connection and session dependency for FastAPI.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from drive_broker.core.config import settings

# ---------------------------------------------------------------------------
# DATABASE ENGINE
# ---------------------------------------------------------------------------
# pool_pre_ping=True: check pooled connections before use so a restarted
# database does not surface as a failed credential lookup.
# SQLite needs check_same_thread=False because FastAPI runs sync
# dependencies in a threadpool.
_connect_args = (
    {"check_same_thread": False}
    if settings.DATABASE_URL.startswith("sqlite")
    else {}
)

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=_connect_args,
)

# ---------------------------------------------------------------------------
# SESSION FACTORY
# ---------------------------------------------------------------------------
# autocommit=False: the credential store commits explicitly after each write
# autoflush=False: no implicit flushes before queries
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    FastAPI dependency that provides a database session.

    Usage in a route:
        @router.post("/functions/{name}")
        async def invoke(name: str, db: Session = Depends(get_db)):
            ...

    The session is always closed after the request, even when the
    route raises.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

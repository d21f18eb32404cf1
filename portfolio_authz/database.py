from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from portfolio_authz.config import settings


def _engine_options(database_url: str) -> dict:
    """Pool sizing applies to server databases; SQLite only needs cross-thread access."""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
    }


engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,  # Verify connections before using
    echo=settings.DEBUG,  # Log SQL queries in debug mode
    **_engine_options(settings.DATABASE_URL),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """
    FastAPI dependency for database sessions.

    Yields a session per request; membership reads and the mutations they
    authorize share this session, so a role change commits atomically with
    the row lock taken when the target membership was loaded.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

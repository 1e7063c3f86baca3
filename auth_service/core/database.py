from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from auth_service.core.config import settings


def _engine_kwargs(database_url: str) -> dict:
    """Pool and timeout options per backend."""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,  # Verify connections before using them
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 10,
        # Bound every statement so a stuck query surfaces as an error
        "connect_args": {"options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"},
    }


# Create SQLAlchemy engine
engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))

# Create SessionLocal class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create Base class for models
Base = declarative_base()


def get_db():
    """
    Dependency function to get database session.
    Used in FastAPI endpoints with Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Initialize database.

    Alembic owns table creation; this only imports the models so they are
    registered on Base.metadata.

    Use "alembic upgrade head" to create/update database schema.
    """
    from auth_service.models import user, organization, verification_code, rate_limit, refresh_token  # noqa: F401

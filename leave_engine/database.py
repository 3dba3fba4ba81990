from contextlib import contextmanager
import logging

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from leave_engine.core.config import settings

logger = logging.getLogger(__name__)

# Support both PostgreSQL and SQLite via centralized settings
DATABASE_URL = settings.database_url

if DATABASE_URL.startswith("postgresql"):
    engine = create_engine(DATABASE_URL, echo=settings.database_echo, pool_pre_ping=True)
else:
    # SQLite configuration for local development/testing
    engine = create_engine(
        DATABASE_URL, echo=settings.database_echo, connect_args={"check_same_thread": False}
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """
    Session Provider: Provides a database session per request.
    Transaction management is handled explicitly in the Service Layer.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session):
    """
    All-or-nothing boundary for one engine operation.
    Commits when the block exits cleanly; any exception rolls back every
    write made in the block and is re-raised to the caller.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def lock_key(db: Session, namespace: str, key: int) -> None:
    """
    Transaction-scoped lock on (namespace, key), released at commit or rollback.
    Only PostgreSQL needs it; SQLite already serializes writers.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    db.execute(
        text("SELECT pg_advisory_xact_lock(hashtext(:namespace), CAST(:key AS integer))"),
        {"namespace": namespace, "key": key},
    )


def init_db():
    """
    Registers all domain models and initializes the database schema.
    This should be called during the application startup lifespan.
    """
    # Import all models to ensure they are registered with Base.metadata before create_all
    import leave_engine.models  # noqa: F401
    # Perform schema emission
    Base.metadata.create_all(bind=engine)

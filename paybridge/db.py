from urllib.parse import urlparse
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

# Base for ALL models
Base = declarative_base()


# -----------------------
# SQLAlchemy Engine
# -----------------------
def build_engine(database_url: str) -> Engine:
    """Create the engine for the order store (Postgres in production, SQLite locally)."""
    database_url = database_url.strip()
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set.")

    parsed = urlparse(database_url)
    if parsed.scheme.startswith("sqlite"):
        # Route handlers run on a thread pool
        return create_engine(
            database_url,
            future=True,
            echo=False,
            connect_args={"check_same_thread": False},
        )

    if not parsed.scheme.startswith("postgresql"):
        raise RuntimeError(
            f"Unsupported DATABASE_URL scheme '{parsed.scheme}'. Use Postgres or SQLite."
        )

    return create_engine(
        database_url,
        future=True,
        echo=False,
        pool_pre_ping=True,
        pool_recycle=300,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        future=True,
    )


def init_db(engine: Engine) -> None:
    """Create all tables if they do not exist."""
    from paybridge import models  # noqa: F401  registers tables on Base

    Base.metadata.create_all(bind=engine)

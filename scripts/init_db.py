"""
Create the partner search schema.

Usage:
    python scripts/init_db.py
"""

from sqlalchemy import create_engine, text as sa_text

try:
    from . import _path  # type: ignore  # ensures project root is on sys.path
except ImportError:
    import _path  # type: ignore  # noqa: F401

from api.config import get_settings
from api.db import Base, engine
from api import models  # noqa: F401  # ensure models are imported

settings = get_settings()

EXTENSIONS = ("vector", "pg_trgm", "unaccent")


def create_extensions() -> None:
    # The main engine registers the vector type on connect, which fails
    # until the extension exists.
    bootstrap = create_engine(settings.database_url)
    try:
        with bootstrap.begin() as conn:
            for name in EXTENSIONS:
                conn.execute(sa_text(f"CREATE EXTENSION IF NOT EXISTS {name}"))
    finally:
        bootstrap.dispose()


def create_indexes() -> None:
    with engine.begin() as conn:
        conn.execute(
            sa_text(
                """
                CREATE INDEX IF NOT EXISTS ix_parceiros_embedding_768
                ON parceiros USING hnsw (embedding_768 vector_cosine_ops)
                """
            )
        )


def init_db():
    create_extensions()
    Base.metadata.create_all(bind=engine)
    create_indexes()
    print("Database initialized")


if __name__ == "__main__":
    init_db()

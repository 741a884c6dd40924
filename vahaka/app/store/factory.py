"""
Persistence adapter construction.

The application builds exactly one store per process, in its lifespan, and
hands it to the services through FastAPI dependencies.
"""

import redis.asyncio as redis

from vahaka.app.core.config import Settings
from vahaka.app.db.session import build_engine, is_sqlite_url
from vahaka.app.store.base import DocumentStore
from vahaka.app.store.redis_store import RedisDocumentStore
from vahaka.app.store.sql import SqlDocumentStore


def build_store(settings: Settings) -> DocumentStore:
    """
    Create the document store selected by `settings.store_backend`.

    Raises:
        ValueError: If the backend name is unknown
    """
    backend = settings.store_backend.lower()

    if backend == "sql":
        engine = build_engine(
            settings.database_url,
            echo=settings.db_echo,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
        return SqlDocumentStore(
            engine,
            serialize=is_sqlite_url(settings.database_url),
            page_size=settings.store_page_size,
            update_max_retries=settings.store_update_max_retries,
        )

    if backend == "redis":
        client = redis.from_url(settings.redis_url, decode_responses=True)
        return RedisDocumentStore(
            client,
            key_prefix=settings.redis_key_prefix,
            page_size=settings.store_page_size,
            update_max_retries=settings.store_update_max_retries,
        )

    raise ValueError(f"Unknown store backend: {settings.store_backend}")

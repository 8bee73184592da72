"""
invoice_hub.db.init_db

Table bootstrap for local development, tests and `invoice-hub init-db`.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine

from invoice_hub.db import models  # noqa: F401  # register models on Base.metadata
from invoice_hub.db.base import Base
from invoice_hub.observability.logging import get_logger

log = get_logger(__name__)


async def init_db(engine: AsyncEngine, *, reset: bool = False) -> list[str]:
    """
    Create missing tables and return their names. With `reset`, drop everything first.
    Production schemas are managed by Alembic instead.
    """

    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    tables = sorted(Base.metadata.tables)
    log.info("db_initialized", tables=tables, reset=reset)
    return tables

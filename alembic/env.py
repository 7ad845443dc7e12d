"""Alembic environment for the after-sales schema."""

from __future__ import annotations

import asyncio
import os
from logging.config import fileConfig
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context
from aftersales_engine.infrastructure.db.metadata import metadata

ASYNC_DRIVERS = ("+asyncpg", "+aiosqlite")
DEFAULT_URL = "sqlite:///./aftersales.db"

config = context.config
target_metadata = metadata

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)


def _resolve_url() -> str:
    """Prefer DATABASE_URL unless a caller already pointed Alembic elsewhere."""

    load_dotenv(Path(__file__).resolve().parents[1] / ".env")
    configured = config.get_main_option("sqlalchemy.url") or DEFAULT_URL
    from_env = os.getenv("DATABASE_URL")
    if from_env and configured == DEFAULT_URL:
        config.set_main_option("sqlalchemy.url", from_env)
        return from_env
    return configured


def _configure_and_run(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def _run_async(section: dict[str, str]) -> None:
    engine = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    async with engine.connect() as connection:
        await connection.run_sync(_configure_and_run)
    await engine.dispose()


def run_migrations_offline(url: str) -> None:
    """Emit SQL without a live connection."""

    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online(url: str) -> None:
    """Run against a live database, using the async engine for async drivers."""

    section = config.get_section(config.config_ini_section, {})
    if any(driver in url for driver in ASYNC_DRIVERS):
        asyncio.run(_run_async(section))
        return

    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with engine.connect() as connection:
        _configure_and_run(connection)


database_url = _resolve_url()
if context.is_offline_mode():
    run_migrations_offline(database_url)
else:
    run_migrations_online(database_url)

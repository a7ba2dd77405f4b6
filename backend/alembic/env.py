"""
Alembic environment for the DanceLink booking schema.

Runs synchronously against DATABASE_URL_SYNC (psycopg2); the application
itself uses the asyncpg URL. Offline mode renders the SQL for review.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

import dancelink.models  # noqa: F401 - registers every table on Base.metadata
from dancelink.core.config import get_settings
from dancelink.db.base import Base

config = context.config
config.set_main_option("sqlalchemy.url", get_settings().DATABASE_URL_SYNC)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# Enum columns are VARCHAR + Python enum; compare lengths and types on autogenerate
CONFIGURE_OPTIONS = {"target_metadata": target_metadata, "compare_type": True}


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **CONFIGURE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **CONFIGURE_OPTIONS)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

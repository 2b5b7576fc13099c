"""
Alembic migration environment for the estate booking schema.

The sync URL comes from Settings (DATABASE_URL_SYNC), never from alembic.ini,
so migrations and the app always target the same database.
"""

from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context

from estate_booking.db.base import Base
from estate_booking.models import Listing, Booking  # noqa: F401 - registers tables on Base.metadata
from estate_booking.core.config import get_settings

config = context.config
sync_url = get_settings().DATABASE_URL_SYNC
config.set_main_option("sqlalchemy.url", sync_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# SQLite cannot ALTER constraints in place
render_as_batch = sync_url.startswith("sqlite")


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of executing it."""
    context.configure(
        url=sync_url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        render_as_batch=render_as_batch,
        dialect_opts={"paramstyle": "named"},
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
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=render_as_batch,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

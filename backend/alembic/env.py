"""
Alembic environment for the Meshwar schema.

The URL always comes from DATABASE_URL_SYNC so migrations and the app point
at the same database. SQLite targets get batch mode.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from meshwar.core.config import get_settings
from meshwar.db.base import Base
import meshwar.models  # noqa: F401  registers every table on Base.metadata

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

DATABASE_URL = get_settings().DATABASE_URL_SYNC
config.set_main_option("sqlalchemy.url", DATABASE_URL)


def _configure(**kwargs) -> None:
    batch = DATABASE_URL.startswith("sqlite")
    context.configure(
        target_metadata=Base.metadata,
        render_as_batch=batch,
        compare_type=True,
        **kwargs,
    )
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    _configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})
else:
    engine = create_engine(DATABASE_URL, poolclass=pool.NullPool)
    with engine.connect() as connection:
        _configure(connection=connection)
    engine.dispose()

from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

# .env must be loaded before Settings reads the environment
load_dotenv()

from jobmatch.core.config import Settings  # noqa: E402
from jobmatch.db.base import Base  # noqa: E402

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
DATABASE_URL = Settings().DATABASE_URL

# SQLite cannot ALTER most constraints in place; batch mode rebuilds the table
MIGRATION_OPTS = dict(
    target_metadata=target_metadata,
    compare_type=True,
    render_as_batch=DATABASE_URL.startswith("sqlite"),
)


def run_migrations_offline():
    context.configure(url=DATABASE_URL, literal_binds=True, **MIGRATION_OPTS)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = engine_from_config({"sqlalchemy.url": DATABASE_URL}, prefix="", poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, **MIGRATION_OPTS)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

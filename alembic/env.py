import sys
from pathlib import Path

# revenue_radar must be importable when alembic runs from a source checkout
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from logging.config import fileConfig  # noqa: E402
from sqlalchemy import engine_from_config, pool  # noqa: E402
from alembic import context  # noqa: E402
from revenue_radar.core.config import settings  # noqa: E402
from revenue_radar.models import Base  # noqa: E402


config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _sync_database_url() -> str:
    """Synchronous URL for migrations.

    ``alembic -x db_url=...`` overrides ``DATABASE_URL``; the asyncpg
    driver suffix is dropped because migrations run on psycopg2.
    """
    url = context.get_x_argument(as_dictionary=True).get("db_url") or settings.DATABASE_URL
    return url.replace("postgresql+asyncpg://", "postgresql://")


config.set_main_option("sqlalchemy.url", _sync_database_url())

target_metadata = Base.metadata

# Only the radar tables are managed here; other tables in a shared
# database are ignored by autogenerate
_MANAGED_TABLES = set(target_metadata.tables)


def include_object(obj, name, type_, reflected, compare_to):
    if type_ == "table":
        return name in _MANAGED_TABLES
    return True


def run_migrations_offline():
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        include_object=include_object,
        compare_type=True,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=include_object,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

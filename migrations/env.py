import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import make_url

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.db import Base, DatabaseSettings
from core.models import User, SellerAccount, ReportSnapshot, DataFetchTracking  # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# DATABASE_URL from the environment or .env; local runs fall back to sqlite
DATABASE_URL = DatabaseSettings().database_url
IS_SQLITE = make_url(DATABASE_URL).get_backend_name() == "sqlite"


def _configure_options() -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        # sqlite cannot ALTER most columns in place; postgres defaults are compared
        "render_as_batch": IS_SQLITE,
        "compare_server_default": not IS_SQLITE,
    }


def run_migrations_offline():
    """Emit SQL for the scheduled fetch tables without a live connection"""
    context.configure(
        url=DATABASE_URL,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = create_engine(DATABASE_URL, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_options())
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

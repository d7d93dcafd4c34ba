from __future__ import annotations

from logging.config import fileConfig
from alembic import context
from sqlalchemy import engine_from_config, pool

# Config de Alembic (lee alembic.ini)
config = context.config

# Logging
if config.config_file_name:
    fileConfig(config.config_file_name)

# Inyecta la URL de la DB desde settings (o env DATABASE_URL)
from contractflow.config import settings
config.set_main_option("sqlalchemy.url", settings.database_url)

# Metadata objetivo para autogenerate
from sqlmodel import SQLModel
from contractflow import models  # noqa: F401  registra las tablas
target_metadata = SQLModel.metadata

# ---- Runners ----
def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        render_as_batch=True,  # útil para SQLite
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()

def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
        future=True,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=True,  # útil para SQLite
        )
        with context.begin_transaction():
            context.run_migrations()

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

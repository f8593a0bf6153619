import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from config import Config
from supplyhub import models  # noqa: F401  registers tables on the metadata
from supplyhub.extensions import db

alembic_config = context.config

if alembic_config.config_file_name is not None:
    fileConfig(alembic_config.config_file_name)

target_metadata = db.Model.metadata

ENV_PREFIX = "env://"


def resolve_database_url() -> str:
    """Return the configured URL, expanding ``env://NAME`` references.

    Falls back to the application's ``Config`` so migrations and the app
    always agree on the database.
    """

    configured = alembic_config.get_main_option("sqlalchemy.url") or ""
    if configured and not configured.startswith(ENV_PREFIX):
        return configured
    env_key = configured[len(ENV_PREFIX):] or "DB_URL"
    return os.getenv(env_key) or Config.SQLALCHEMY_DATABASE_URI


def _configure_options(url: str) -> dict:
    # SQLite cannot ALTER most constraints in place.
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    url = resolve_database_url()
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = resolve_database_url()
    engine_settings = dict(alembic_config.get_section(alembic_config.config_ini_section) or {})
    engine_settings["sqlalchemy.url"] = url

    engine = engine_from_config(engine_settings, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, **_configure_options(url))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

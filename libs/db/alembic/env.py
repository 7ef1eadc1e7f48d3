# ruff: noqa: I001
"""
Alembic environment for the ledger schema.

``DATABASE_URL`` (environment, or a ``.env`` found from the working directory)
takes precedence over ``sqlalchemy.url`` in alembic.ini. Autogenerate only
considers the ``lm_`` tables owned by ``db.models.ledger``; SQLite runs in
batch mode so ALTERs on the ledger tables are emulated with table copies.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool
from dotenv import load_dotenv, find_dotenv

import db as _db_pkg

LEDGER_TABLE_PREFIX = "lm_"

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# usecwd so both `alembic -c libs/db/alembic.ini` from the repo root and a plain
# `alembic` inside libs/db find the same .env.
_dotenv = find_dotenv(usecwd=True)
if _dotenv:
    load_dotenv(dotenv_path=_dotenv, override=False)


def _resolve_url() -> str:
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set; export it or set sqlalchemy.url in alembic.ini "
            "before migrating the ledger schema."
        )
    return url


database_url = _resolve_url()
config.set_main_option("sqlalchemy.url", database_url)

target_metadata = _db_pkg.metadata


def include_object(obj, name, type_, reflected, compare_to) -> bool:  # noqa: ANN001
    if type_ == "table":
        return bool(name) and name.startswith(LEDGER_TABLE_PREFIX)
    return True


def _configure_kwargs(dialect_name: str) -> dict[str, object]:
    return {
        "target_metadata": target_metadata,
        "include_object": include_object,
        "compare_type": True,
        "render_as_batch": dialect_name == "sqlite",
    }


def run_migrations_offline() -> None:
    dialect = database_url.split(":", 1)[0].split("+", 1)[0]
    context.configure(url=database_url, literal_binds=True, **_configure_kwargs(dialect))
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = dict(config.get_section(config.config_ini_section) or {})
    section["sqlalchemy.url"] = database_url
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs(connection.dialect.name))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

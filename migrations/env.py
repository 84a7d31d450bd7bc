from logging.config import fileConfig
import logging
import os
import sys

from alembic import context
from flask import current_app, has_app_context

# корень репозитория в sys.path: `alembic upgrade` запускается и без flask CLI
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.abspath(os.path.join(THIS_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)
log = logging.getLogger("alembic.env")

# `flask db ...` уже дал app context; голый alembic поднимает приложение сам
if not has_app_context():
    from app import create_app  # noqa: E402
    create_app().app_context().push()

db = current_app.extensions["migrate"].db
engine_url = db.engine.url.render_as_string(hide_password=False).replace("%", "%%")
if not config.get_main_option("sqlalchemy.url"):
    config.set_main_option("sqlalchemy.url", engine_url)

target_metadata = db.metadata


def run_migrations_offline():
    """Offline: только SQL, без подключения."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,  # ALTER TABLE в SQLite
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    """Online: применяем к реальной БД."""
    with db.engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
        )
        with context.begin_transaction():
            context.run_migrations()
    log.info("migrations applied to %s", db.engine.url.render_as_string(hide_password=True))


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

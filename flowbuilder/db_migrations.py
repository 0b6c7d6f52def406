"""``flask db`` commands backed by Alembic.

The revisions in ``migrations/versions`` reuse the schema builders from
``flowbuilder.db``, so a database created by ``DB_AUTO_INIT`` and one
created by ``flask db upgrade`` end up with the same tables. The former
only needs ``flask db stamp`` to join the migration history.
"""

from __future__ import annotations

from pathlib import Path

import click
from alembic import command
from alembic.config import Config as AlembicConfig
from flask import Flask


PROJECT_ROOT = Path(__file__).resolve().parents[1]


def to_sqlalchemy_url(db_path: str) -> str:
    """Turn ``DB_PATH`` (a sqlite file or a libpq URL) into a SQLAlchemy URL."""
    value = (db_path or "").strip()
    if not value:
        raise RuntimeError("DB_PATH is not set; cannot run migrations.")
    if value.startswith("postgres://"):
        return "postgresql://" + value[len("postgres://") :]
    if value.startswith(("postgresql://", "postgresql+", "sqlite://", "sqlite+pysqlite://")):
        return value
    return f"sqlite:///{Path(value).expanduser().resolve().as_posix()}"


def build_alembic_config(db_path: str) -> AlembicConfig:
    alembic_ini = PROJECT_ROOT / "alembic.ini"
    if not alembic_ini.exists():
        raise RuntimeError(f"alembic.ini not found in {PROJECT_ROOT}.")
    cfg = AlembicConfig(str(alembic_ini))
    cfg.set_main_option("script_location", (PROJECT_ROOT / "migrations").as_posix())
    cfg.set_main_option("sqlalchemy.url", to_sqlalchemy_url(db_path))
    return cfg


def register_db_cli(app: Flask) -> None:
    def _run(action: str, revision: str, done: str) -> None:
        getattr(command, action)(build_alembic_config(app.config["DB_PATH"]), revision)
        app.logger.info("schema_migration", extra={"action": action, "revision": revision})
        click.echo(f"{done} {revision}.")

    @app.cli.group("db")
    def db_group() -> None:
        """Procurement schema migrations."""

    @db_group.command("upgrade")
    @click.argument("revision", required=False, default="head")
    def db_upgrade(revision: str) -> None:
        _run("upgrade", revision, "Upgraded to")

    @db_group.command("downgrade")
    @click.argument("revision", required=False, default="-1")
    def db_downgrade(revision: str) -> None:
        _run("downgrade", revision, "Downgraded to")

    @db_group.command("stamp")
    @click.argument("revision", required=False, default="head")
    def db_stamp(revision: str) -> None:
        """Record a revision without running it, for databases built by DB_AUTO_INIT."""
        _run("stamp", revision, "Stamped")

    @db_group.command("current")
    def db_current() -> None:
        command.current(build_alembic_config(app.config["DB_PATH"]), verbose=True)

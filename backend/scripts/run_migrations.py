"""Apply the draft schema migrations once the database accepts connections.

Run before the API starts when ``LERNPLAN_PERSISTENCE_MODE=database``.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import List, Optional

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

LOGGER = logging.getLogger("lernplan.migrations")
BACKEND_ROOT = Path(__file__).resolve().parent.parent
URL_PLACEHOLDER = "%(LERNPLAN_DATABASE_URL)s"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Upgrade the wizard draft schema.")
    parser.add_argument("--revision", default=os.getenv("LERNPLAN_MIGRATION_REVISION", "head"))
    parser.add_argument(
        "--timeout",
        type=float,
        default=float(os.getenv("LERNPLAN_MIGRATION_TIMEOUT", "60")),
        help="Seconds to wait for the database before giving up.",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=float(os.getenv("LERNPLAN_MIGRATION_POLL_INTERVAL", "2")),
        help="Seconds between readiness probes.",
    )
    parser.add_argument("--config", default=str(BACKEND_ROOT / "alembic.ini"))
    return parser.parse_args(argv)


def load_config(config_path: str) -> Config:
    config = Config(config_path)
    config.set_main_option("script_location", str(BACKEND_ROOT / "alembic"))
    return config


def resolve_database_url(config: Config) -> str:
    configured = config.get_main_option("sqlalchemy.url")
    if configured and configured != URL_PLACEHOLDER:
        return configured
    env_url = os.getenv("LERNPLAN_DATABASE_URL")
    if not env_url:
        raise RuntimeError("LERNPLAN_DATABASE_URL must be set before running migrations.")
    config.set_main_option("sqlalchemy.url", env_url)
    return env_url


def wait_for_database(database_url: str, *, timeout: float, poll_interval: float) -> None:
    """Probe with ``SELECT 1`` until it succeeds; raise ``RuntimeError`` after ``timeout``."""
    deadline = time.monotonic() + timeout
    engine = create_engine(database_url, pool_pre_ping=True)
    attempts = 0
    try:
        while True:
            attempts += 1
            try:
                with engine.connect() as connection:
                    connection.execute(text("SELECT 1"))
                LOGGER.info("Database reachable after %d attempt(s).", attempts)
                return
            except OperationalError as exc:
                if time.monotonic() >= deadline:
                    raise RuntimeError(f"Database not ready after {attempts} attempt(s).") from exc
                LOGGER.warning("Database not ready (attempt %d): %s", attempts, exc)
            except SQLAlchemyError as exc:
                raise RuntimeError(f"Database probe failed: {exc}") from exc
            time.sleep(poll_interval)
    finally:
        engine.dispose()


def run_migrations(
    revision: str,
    *,
    timeout: float,
    poll_interval: float,
    config: Optional[Config] = None,
) -> None:
    config = config or load_config(str(BACKEND_ROOT / "alembic.ini"))
    database_url = resolve_database_url(config)
    wait_for_database(database_url, timeout=timeout, poll_interval=poll_interval)
    LOGGER.info("Upgrading schema to %s", revision)
    command.upgrade(config, revision)
    LOGGER.info("Schema upgrade finished.")


def main(argv: Optional[List[str]] = None) -> int:
    from lernplan.logging_config import configure_logging

    configure_logging()
    args = parse_args(argv)
    try:
        run_migrations(
            args.revision,
            timeout=args.timeout,
            poll_interval=args.poll_interval,
            config=load_config(args.config),
        )
    except Exception:  # noqa: BLE001
        LOGGER.exception("Migration run failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Migration Runner - Applies pending Alembic migrations at application startup.

Enabled with RUN_MIGRATIONS_ON_STARTUP=true.
"""

from pathlib import Path

from sqlalchemy import Engine, create_engine

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from app.config import settings
from app.observability.logging import get_logger

logger = get_logger(__name__)

# Path to alembic.ini relative to project root
ALEMBIC_INI_PATH = Path(__file__).parent.parent.parent / "alembic.ini"


def sync_database_url(url: str) -> str:
    """Alembic's command API is synchronous: swap asyncpg for psycopg2."""
    return url.replace("+asyncpg", "+psycopg2")


def _get_current_revision(engine: Engine) -> str | None:
    with engine.connect() as conn:
        context = MigrationContext.configure(conn)
        return context.get_current_revision()


def _get_head_revision(alembic_cfg: Config) -> str | None:
    script = ScriptDirectory.from_config(alembic_cfg)
    return script.get_current_head()


def run_migrations() -> None:
    """
    Upgrade the schema to head if it is behind.

    Raises RuntimeError if a migration fails, so the application does not
    start against a half-migrated schema.
    """
    if not ALEMBIC_INI_PATH.exists():
        logger.warning("alembic_config_missing", path=str(ALEMBIC_INI_PATH))
        return

    sync_url = sync_database_url(settings.database_url)
    alembic_cfg = Config(str(ALEMBIC_INI_PATH))
    alembic_cfg.set_main_option("sqlalchemy.url", sync_url.replace("%", "%%"))

    engine = create_engine(sync_url)
    try:
        current = _get_current_revision(engine)
        head = _get_head_revision(alembic_cfg)

        if current == head:
            logger.info("database_schema_current", revision=current)
            return

        logger.info("database_migration_started", from_revision=current, to_revision=head)
        command.upgrade(alembic_cfg, "head")
        logger.info("database_migration_completed", revision=_get_current_revision(engine))
    except Exception as e:
        logger.error("database_migration_failed", error=str(e))
        raise RuntimeError(f"Database migration failed: {e}") from e
    finally:
        engine.dispose()

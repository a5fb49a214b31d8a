"""
Create the ABS import tables without running migrations.

Handy for local SQLite databases; deployments use ``alembic upgrade head``.
Usage: python -m scripts.init_db
"""

from reconciler.core.database import Base, engine
from reconciler.core.logging import get_logger, setup_logging
from reconciler.models import *  # noqa: F401, F403

logger = get_logger(__name__)


def init_db():
    """Create all abs_import_* tables that do not exist yet."""
    logger.info(f"Creating tables on {engine.url.render_as_string(hide_password=True)}")
    Base.metadata.create_all(bind=engine)
    logger.info(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    setup_logging()
    init_db()

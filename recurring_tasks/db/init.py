"""Initialize database tables."""
import logging

from sqlmodel import SQLModel

from recurring_tasks.db.config import engine
from recurring_tasks.models.recurrence_rule import RecurrenceRule  # noqa: F401
from recurring_tasks.models.task import Task  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(bind=None):
    """Create all tables in the database."""
    bind = bind or engine
    logger.info("Creating all tables...")
    SQLModel.metadata.create_all(bind)
    logger.info("Tables created successfully.")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()

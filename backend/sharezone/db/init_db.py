import logging

from sqlalchemy.engine import Engine

from sharezone.db.base import Base
from sharezone.db.session import engine as default_engine

logger = logging.getLogger(__name__)


def init_db(engine: Engine = default_engine) -> None:
    # Tables are created directly; there are no migrations yet
    Base.metadata.create_all(bind=engine)
    logger.info("Tables ready: %s", ", ".join(sorted(Base.metadata.tables)))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    logger.info("Creating tables")
    init_db()
    logger.info("Tables created")

# vetclinic/db/init_db.py
import argparse
import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from vetclinic.db.base import Base
from vetclinic.db.session import engine
# Import all models so metadata is complete for create_all()
from vetclinic import models  # noqa: F401

logger = logging.getLogger(__name__)


def create_tables(bind: Engine, *, fresh: bool = False) -> None:
    if fresh:
        logger.warning("Dropping ALL tables (dev only)")
        Base.metadata.drop_all(bind=bind)

    logger.info("Creating missing tables on %s",
                bind.url.render_as_string(hide_password=True))
    Base.metadata.create_all(bind=bind)
    logger.info("Tables: %s", ", ".join(sorted(inspect(bind).get_table_names())))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Create the clinic tables.")
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Drop & recreate all tables (DEV ONLY).",
    )
    args = parser.parse_args()
    create_tables(engine, fresh=args.fresh)

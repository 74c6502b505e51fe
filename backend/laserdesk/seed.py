"""Create the tables and load a sample feed into the local database."""
import argparse
import logging
import sys
from pathlib import Path

from laserdesk import config
from laserdesk.db.session import init_db
from laserdesk.errors import LaserdeskError
from laserdesk.services.sync import OrderSynchronizer
from laserdesk.utils.logger import configure_logging

SAMPLE_DIR = config.PROJECT_ROOT / "sample-data"


def main(argv=None):
    parser = argparse.ArgumentParser(description="Seed the order table from a feed")
    parser.add_argument("--source", choices=["csv", "json", "xml"], default="csv", help="Bundled sample feed to load")
    parser.add_argument("--feed", help="Feed URL or path (overrides --source)")
    args = parser.parse_args(argv)

    configure_logging(config.LOG_LEVEL)
    logger = logging.getLogger(__name__)

    feed = args.feed or str(SAMPLE_DIR / f"sample.{args.source}")
    config.ensure_directories()
    init_db()

    try:
        result = OrderSynchronizer().sync(feed)
    except LaserdeskError as e:
        logger.error("Seed failed: %s", e)
        return 1

    logger.info("Seed completed from %s: %s", Path(feed).name, result.to_dict())
    return 0


if __name__ == "__main__":
    sys.exit(main())

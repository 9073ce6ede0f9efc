"""Command line interface for running a single reconciliation sweep."""
import argparse
import asyncio
import json
import logging

from database import init_db, close as db_close
from . import ReconciliationSweeper, ReconcileError

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

async def run(dry_run: bool, db_url: str = None) -> int:
    store = await init_db(db_url)
    try:
        sweeper = ReconciliationSweeper(store)
        if dry_run:
            result = await sweeper.preview()
        else:
            result = await sweeper.reconcile()
        print(json.dumps(result, indent=2))
        return 0
    except ReconcileError as e:
        logger.error(str(e))
        return 1
    finally:
        await db_close()

def main():
    parser = argparse.ArgumentParser(description="Expire ended listings and their offers")
    parser.add_argument('--dry-run', action='store_true', help="report what would expire without changing anything")
    parser.add_argument('--db-url', help="database URL, defaults to db_url from settings.conf")
    args = parser.parse_args()
    raise SystemExit(asyncio.run(run(args.dry_run, args.db_url)))

if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Run a carrier inventory sync from the command line (same engine as the HTTP triggers)
"""
import argparse
import asyncio
import json
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config import settings
from app.database import SessionLocal
from app.models import SyncTrigger
from app.services.exceptions import SyncAlreadyRunning
from app.services.sync_engine import OPERATION_ORDER, SyncEngine

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, logging.INFO), format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


async def run(store_id=None, operations=None) -> int:
    db = SessionLocal()
    try:
        engine = SyncEngine(db)
        if store_id:
            summary = await engine.sync_store(store_id, operations=operations, trigger=SyncTrigger.CLI.value)
        else:
            summary = await engine.run_full_sync(operations=operations, trigger=SyncTrigger.CLI.value)
    finally:
        db.close()

    print(json.dumps(summary.to_dict(), indent=2))
    return 0 if summary.failed_operations == 0 else 1


def show_history(store_id=None, limit: int = 10) -> int:
    db = SessionLocal()
    try:
        engine = SyncEngine(db)
        print(json.dumps(
            {
                "history": engine.get_sync_history(limit, store_id=store_id),
                "statistics": engine.get_sync_statistics(days=7, store_id=store_id),
            },
            indent=2,
        ))
    finally:
        db.close()
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Sync carrier warehouses and inventory into the local database")
    parser.add_argument("--store", dest="store_id", help="Store id; omit to sync every store with an active integration")
    parser.add_argument(
        "--operation", "-o", dest="operations", action="append", choices=list(OPERATION_ORDER),
        help="Operation to run (repeatable). Default: all, in dependency order",
    )
    parser.add_argument("--history", action="store_true", help="Print recent sync history and 7-day statistics instead of syncing")
    parser.add_argument("--limit", type=int, default=10, help="History rows to print (with --history)")
    args = parser.parse_args(argv)

    if args.history:
        return show_history(args.store_id, args.limit)
    try:
        return asyncio.run(run(args.store_id, args.operations))
    except SyncAlreadyRunning as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())

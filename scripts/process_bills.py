#!/usr/bin/env python3
"""
Run the daily bill transition sweep.

Promotes every scheduled occurrence whose due date has
arrived to approved (auto-approve bills) or pending_approval.

Usage:
  python scripts/process_bills.py
  python scripts/process_bills.py --date 2026-03-02
  # Requires DATABASE_URL and SECRET_KEY in .env (or export)

Exit code is 0 when every batch succeeded, 1 otherwise.
"""
import argparse
import asyncio
import os
import sys
import uuid
from datetime import date

from dotenv import load_dotenv

# Load .env from project root
_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv(os.path.join(_root, ".env"))

# Add project root to path
sys.path.insert(0, _root)

from app.core.exceptions import StorageError
from app.core.logging import setup_logging, get_logger, correlation_id_var
from app.database import AsyncSessionLocal, close_db
from app.services.sweep_service import SweepService

logger = get_logger("process_bills")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Promote bill occurrences that are due for submission.")
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Treat this day (YYYY-MM-DD) as today. Defaults to the current UTC date.",
    )
    return parser.parse_args(argv)


async def run(as_of) -> int:
    correlation_id_var.set(f"job-{uuid.uuid4()}")
    try:
        async with AsyncSessionLocal() as session:
            result = await SweepService.run(session, today=as_of)
    except StorageError as exc:
        logger.error("Bill processing aborted", extra={"error": exc.message})
        return 1
    finally:
        await close_db()

    print(
        f"as_of={result.as_of} processed={result.processed} "
        f"auto_approved={result.auto_approved} pending_approval={result.pending_approval}"
    )
    if not result.ok:
        print(f"ERROR: {result.error}")
        return 1
    return 0


def main():
    args = parse_args()
    setup_logging()
    sys.exit(asyncio.run(run(args.date)))


if __name__ == "__main__":
    main()

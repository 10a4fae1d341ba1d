"""
Calculate commissions for sales that do not have one yet.

Usage:
    python scripts/recalculate_missing_commissions.py

Or for one organization, with a custom DATABASE_URL:
    DATABASE_URL="postgresql://..." python scripts/recalculate_missing_commissions.py --organization-id 3

Sales with no matching plan or rule are reported as skipped; the run
never stops on a single failing sale.
"""

import asyncio
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from commtrack.config import settings
from commtrack.db import Database
from commtrack.services.backfill import recalculate_missing_commissions


async def main(organization_id=None, limit=None) -> int:
    database = Database(settings.database_url)
    try:
        async with database.session() as db:
            summary = await recalculate_missing_commissions(db, organization_id, limit)
    finally:
        await database.dispose()

    print(f"\nProcessed: {summary.processed}")
    print(f"  Succeeded: {summary.succeeded}")
    print(f"  Skipped (no plan / no rule): {summary.skipped}")
    print(f"  Errored: {summary.errored}")
    for error in summary.errors:
        print(f"    - transaction {error['transaction_id']}: {error['error']}")

    return 1 if summary.errored else 0


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Backfill missing commissions")
    parser.add_argument("--organization-id", type=int, default=None, help="Only this organization")
    parser.add_argument("--limit", type=int, default=None, help="Process at most this many sales")

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    sys.exit(asyncio.run(main(args.organization_id, args.limit)))

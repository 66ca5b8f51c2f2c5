import argparse
import asyncio
import logging

from tender_intel.tasks.historical_sync import run_historical_import, run_pending_processing

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def run_sync(limit: int, query: str, batch_size: int, skip_processing: bool):
    """Backfill the historical cache from SECOP without starting the API"""
    result = await run_historical_import(limit=limit, query_text=query)
    logger.info(
        f"Import: {result['processed']} inserted, {result['skipped']} skipped, "
        f"{result['failed']} failed (status: {result['status']})"
    )

    if skip_processing:
        return

    processing = await run_pending_processing(batch_size)
    logger.info(f"Processing: {processing['processed']} processed, {processing['failed']} failed")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Sync SECOP processes into the historical tender cache")
    parser.add_argument("--limit", type=int, default=50, help="Processes to fetch")
    parser.add_argument("--query", default="", help="Full-text filter")
    parser.add_argument("--batch-size", type=int, default=10, help="Pending rows to process")
    parser.add_argument("--skip-processing", action="store_true")
    args = parser.parse_args()

    asyncio.run(run_sync(args.limit, args.query, args.batch_size, args.skip_processing))

"""
Scheduled SECOP ingestion into the historical tender cache.
Daily import followed by a pending-row enrichment pass.
"""
import asyncio
import logging
from datetime import datetime
from typing import Dict, Any, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from tender_intel.core.config import settings
from tender_intel.database import SessionLocal
from tender_intel.models.historical import HistoricalTender
from tender_intel.models.schemas import TenderListing
from tender_intel.services.ai_engine import AIEngine
from tender_intel.services.data_processor import DataProcessor, build_embedding_text
from tender_intel.services.historical_repository import HistoricalTenderRepository
from tender_intel.services.secop_client import SecopClient
from tender_intel.services.token_tracker import UsageLedger

logger = logging.getLogger(__name__)

# Set on shutdown; running imports stop at the next tender
cancel_event = asyncio.Event()
_sync_lock = asyncio.Lock()


def build_ai_engine() -> AIEngine:
    return AIEngine(usage_recorder=UsageLedger())


def embedding_backfill(ai_engine: AIEngine):
    """Enricher that fills embeddings missed at import time"""

    async def enrich(row: HistoricalTender) -> None:
        if row.embedding is not None or not ai_engine.is_configured:
            return

        text = build_embedding_text(TenderListing.from_historical(row))
        if not text:
            # Nothing to embed; the row can never gain an embedding
            return

        response = await ai_engine.generate_embedding(text, feature="embedding_backfill")
        if not response.success:
            raise RuntimeError(f"Embedding backfill failed: {response.error}")
        row.embedding = response.data

    return enrich


async def run_historical_import(limit: Optional[int] = None, query_text: str = "") -> Dict[str, Any]:
    """Fetch recent SECOP processes and cache the new ones"""
    logger.info("🚀 Starting historical tender import")

    source = SecopClient()
    db = SessionLocal()
    start_time = datetime.now()

    try:
        processor = DataProcessor(source, HistoricalTenderRepository(db), build_ai_engine())
        result = await processor.import_recent_tenders(
            limit=limit or settings.HISTORICAL_SYNC_LIMIT,
            query_text=query_text,
            cancel_event=cancel_event
        )

        duration = (datetime.now() - start_time).total_seconds()
        if result.success:
            logger.info(f"🎉 Historical import complete in {duration:.2f}s")
        else:
            logger.error(f"❌ Historical import failed: {result.error}")

        return {
            "status": "complete" if result.success else "failed",
            **result.model_dump(),
            "duration": duration,
            "timestamp": datetime.now().isoformat()
        }

    finally:
        db.close()
        await source.close()


async def run_pending_processing(batch_size: Optional[int] = None) -> Dict[str, Any]:
    """Enrich and flag rows the import left pending"""
    db = SessionLocal()

    try:
        ai_engine = build_ai_engine()
        processor = DataProcessor(None, HistoricalTenderRepository(db), ai_engine)
        result = await processor.process_pending_tenders(
            batch_size=batch_size or settings.HISTORICAL_PROCESS_BATCH_SIZE,
            enricher=embedding_backfill(ai_engine),
            cancel_event=cancel_event
        )

        return {
            **result.model_dump(),
            "timestamp": datetime.now().isoformat()
        }

    finally:
        db.close()


async def sync_historical_tenders() -> Dict[str, Any]:
    """Import then process pending rows; scheduled and manual runs share one lock"""
    async with _sync_lock:
        import_result = await run_historical_import()
        processing_result = await run_pending_processing()
    return {"import": import_result, "processing": processing_result}


def setup_scheduler() -> AsyncIOScheduler:
    """
    Daily sync at HISTORICAL_SYNC_HOUR UTC.
    Runs never overlap: a run that fires while one is active is coalesced.
    """
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        sync_historical_tenders,
        trigger=CronTrigger(hour=settings.HISTORICAL_SYNC_HOUR, minute=0),
        id="historical_tender_sync",
        name="Daily SECOP Historical Sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    logger.info(f"⏰ Scheduled daily historical sync at {settings.HISTORICAL_SYNC_HOUR}:00 UTC")
    return scheduler


async def manual_sync() -> Dict[str, Any]:
    """Manually trigger a sync (for API endpoint)"""
    logger.info("🔧 Manual historical sync triggered")
    return await sync_historical_tenders()

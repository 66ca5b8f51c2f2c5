import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

import numpy as np

from tender_intel.models.historical import HistoricalTender
from tender_intel.models.schemas import IngestionResult, ProcessingResult, SimilarTender, TenderListing
from tender_intel.services.ai_engine import AIEngine
from tender_intel.services.historical_repository import HistoricalTenderRepository
from tender_intel.services.secop_client import SecopClient
from tender_intel.services.unspsc import extract_unspsc_from_process

logger = logging.getLogger(__name__)

Enricher = Callable[[HistoricalTender], Awaitable[Any]]


def build_embedding_text(tender: TenderListing) -> str:
    """Description, entity and contract type joined for semantic search"""
    parts = [
        tender.descripci_n_del_procedimiento or "",
        tender.entidad or "",
        tender.tipo_de_contrato or "",
    ]
    return " ".join(parts).strip()


def cosine_similarity(vec1: List[float], vec2: List[float]) -> float:
    """Cosine similarity between two vectors, 0 when either is all zeros"""
    vec1_arr = np.array(vec1, dtype=float)
    vec2_arr = np.array(vec2, dtype=float)
    if vec1_arr.shape != vec2_arr.shape:
        return 0.0

    norm_product = np.linalg.norm(vec1_arr) * np.linalg.norm(vec2_arr)
    if norm_product == 0:
        return 0.0

    return float(np.dot(vec1_arr, vec2_arr) / norm_product)


class DataProcessor:
    """
    Backfills the historical tender cache from SECOP.

    Imports are idempotent: a process already cached under its secop_id is
    skipped, so re-running an import never creates duplicates. Embeddings are
    best effort and a row is inserted with a null embedding when the AI call
    fails.
    """

    def __init__(
        self,
        source: Optional[SecopClient],
        repository: HistoricalTenderRepository,
        ai_engine: AIEngine
    ):
        self.source = source
        self.repository = repository
        self.ai_engine = ai_engine

    async def import_recent_tenders(
        self,
        limit: int = 50,
        query_text: str = "",
        cancel_event: Optional[asyncio.Event] = None
    ) -> IngestionResult:
        try:
            tenders = await self.source.search_processes(query_text, limit)
        except Exception as e:
            logger.error(f"Data Import Error: {str(e)}")
            return IngestionResult(success=False, error=str(e))

        logger.info(f"Fetched {len(tenders)} tenders from SECOP")

        result = IngestionResult(success=True, total=len(tenders))

        for tender in tenders:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Import cancelled after {result.processed} inserts")
                result.cancelled = True
                break

            secop_id = tender.id_del_proceso

            if self.repository.get_by_secop_id(secop_id) is not None:
                result.skipped += 1
                continue

            embedding_response = await self.ai_engine.generate_embedding(
                build_embedding_text(tender),
                feature="historical_import"
            )
            embedding = embedding_response.data if embedding_response.success else None
            if embedding is None:
                logger.debug(f"No embedding for {secop_id}: {embedding_response.error}")

            unspsc_codes = extract_unspsc_from_process(tender)

            try:
                self.repository.insert({
                    "secop_id": secop_id,
                    "title": tender.title,
                    "description": tender.descripci_n_del_procedimiento,
                    "amount": tender.amount,
                    "status": tender.fase,
                    "published_at": tender.fecha_de_publicacion_del,
                    "entity_name": tender.entidad,
                    "region": tender.region or None,
                    "category": tender.tipo_de_contrato,
                    "unspsc_code": unspsc_codes[0] if unspsc_codes else None,
                    "embedding": embedding,
                    "processed_for_ai": False,
                })
                result.processed += 1
            except Exception as e:
                logger.error(f"Error inserting tender {secop_id}: {str(e)}")
                result.failed += 1

        logger.info(
            f"✅ Import finished: {result.processed} inserted, {result.skipped} skipped, "
            f"{result.failed} failed (of {result.total})"
        )
        return result

    async def process_pending_tenders(
        self,
        batch_size: int = 10,
        enricher: Optional[Enricher] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> ProcessingResult:
        """
        Run the enricher over unprocessed rows and flag each one as it completes.
        A row whose enrichment fails stays pending, queued behind rows that
        have failed fewer times, so it cannot block the rest of the cache.
        """
        pending = self.repository.list_pending(batch_size)
        result = ProcessingResult()

        if not pending:
            return result

        for row in pending:
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                break

            try:
                if enricher is not None:
                    await enricher(row)
                self.repository.mark_processed(row)
                result.processed += 1
            except Exception as e:
                secop_id = row.secop_id
                logger.error(f"Error processing tender {secop_id}: {str(e)}")
                result.failed += 1
                try:
                    self.repository.record_failure(row)
                except Exception as record_error:
                    logger.error(f"Could not record failed attempt for {secop_id}: {str(record_error)}")

        logger.info(f"Processed {result.processed}/{len(pending)} pending tenders")
        return result

    async def find_similar_tenders(self, text: str, limit: int = 5) -> List[SimilarTender]:
        """Cached tenders ranked by embedding similarity to free text"""
        response = await self.ai_engine.generate_embedding(text, feature="similar_search")
        if not response.success or not response.data:
            return []

        query_vector = response.data
        matches = []
        for row in self.repository.with_embeddings():
            score = cosine_similarity(query_vector, row.embedding)
            matches.append(SimilarTender(secop_id=row.secop_id, title=row.title, score=round(score, 4)))

        matches.sort(key=lambda match: match.score, reverse=True)
        return matches[:limit]

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tender_intel.models.historical import HistoricalTender

logger = logging.getLogger(__name__)


class HistoricalTenderRepository:
    """Insert-and-flag access to the historical tender cache"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_secop_id(self, secop_id: str) -> Optional[HistoricalTender]:
        return self.db.query(HistoricalTender).filter(
            HistoricalTender.secop_id == secop_id
        ).first()

    def insert(self, values: Dict[str, Any]) -> HistoricalTender:
        """Commit a new row; on failure the session is rolled back and the error re-raised"""
        row = HistoricalTender(**values)
        self.db.add(row)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(row)
        return row

    def list_pending(self, batch_size: int = 10) -> List[HistoricalTender]:
        """Rows not yet enriched, fewest failed attempts first, then oldest"""
        return self.db.query(HistoricalTender).filter(
            HistoricalTender.processed_for_ai.is_(False)
        ).order_by(
            HistoricalTender.processing_attempts,
            HistoricalTender.id
        ).limit(batch_size).all()

    def record_failure(self, row: HistoricalTender) -> None:
        """Discard the failed enrichment and push the row behind untried ones"""
        self.db.rollback()
        row.processing_attempts = (row.processing_attempts or 0) + 1
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def mark_processed(self, row: HistoricalTender) -> None:
        row.processed_for_ai = True
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def list_recent(self, limit: int = 500) -> List[HistoricalTender]:
        return self.db.query(HistoricalTender).order_by(
            HistoricalTender.published_at.desc(),
            HistoricalTender.id.desc()
        ).limit(limit).all()

    def with_embeddings(self) -> List[HistoricalTender]:
        return self.db.query(HistoricalTender).filter(
            HistoricalTender.embedding.isnot(None)
        ).all()

    def count(self, pending_only: bool = False) -> int:
        query = self.db.query(HistoricalTender)
        if pending_only:
            query = query.filter(HistoricalTender.processed_for_ai.is_(False))
        return query.count()

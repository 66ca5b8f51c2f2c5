# tender_intel/models/historical.py
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Float, JSON, Index
from sqlalchemy.sql import func
from tender_intel.database import Base

class HistoricalTender(Base):
    """
    Local cache of SECOP processes.
    Rows are only ever inserted by the ingestion pipeline. After that only the
    enrichment pass touches them: it flips processed_for_ai, counts failed
    attempts and may backfill a missing embedding.
    """
    __tablename__ = "historical_tenders"

    id = Column(Integer, primary_key=True, index=True)
    secop_id = Column(String(100), nullable=False, unique=True, index=True)
    title = Column(String(500), nullable=False, default="Sin título")
    description = Column(Text, nullable=True)
    amount = Column(Float, nullable=False, default=0)
    status = Column(String(100), nullable=True)
    published_at = Column(DateTime, nullable=True)
    entity_name = Column(String(500), nullable=True)
    region = Column(String(120), nullable=True)
    category = Column(String(200), nullable=True)
    unspsc_code = Column(String(20), nullable=True, index=True)
    embedding = Column(JSON(none_as_null=True), nullable=True)
    processed_for_ai = Column(Boolean, default=False, nullable=False)
    processing_attempts = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('idx_historical_processed', 'processed_for_ai'),
    )

class AIUsageRecord(Base):
    """Token usage ledger, one row per AI call."""
    __tablename__ = "ai_usage"

    id = Column(Integer, primary_key=True, index=True)
    model = Column(String(100), nullable=False)
    provider = Column(String(50), nullable=False)
    feature = Column(String(100), nullable=True, index=True)
    request_type = Column(String(50), nullable=False, default="completion")
    prompt_tokens = Column(Integer, nullable=False, default=0)
    completion_tokens = Column(Integer, nullable=False, default=0)
    total_tokens = Column(Integer, nullable=False, default=0)
    estimated_cost = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

from fastapi import APIRouter, HTTPException, status, Depends, Query
from sqlalchemy.orm import Session
from typing import Dict, List, Any
import logging

from tender_intel.database import get_db
from tender_intel.models.schemas import (
    MarketReport, MatchAnalysis, Opportunity, RiskItem, PredictionStats,
    TenderListing, ProcessSummary, ProcessClassification, TenderAnalysis,
    TenderAnalysisRequest, CompetitorSearchRequest, CompetitorInfo, SimilarTender
)
from tender_intel.services.ai_engine import AIEngine
from tender_intel.services.ai_classifier import classify_processes_ai, analyze_tender_description
from tender_intel.services.data_processor import DataProcessor
from tender_intel.services.historical_repository import HistoricalTenderRepository
from tender_intel.services.market_analysis import MarketAnalysisService
from tender_intel.services.secop_client import SecopClient
from tender_intel.services.token_tracker import UsageLedger
from tender_intel.tasks.historical_sync import manual_sync, run_pending_processing

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Tender Intelligence"])

# ========== DEPENDENCIES ==========

def get_ai_engine() -> AIEngine:
    return AIEngine(usage_recorder=UsageLedger())


async def get_secop_client():
    client = SecopClient()
    try:
        yield client
    finally:
        await client.close()


def _build_report(db: Session, company_id: int, strategy: str) -> MarketReport:
    try:
        report = MarketAnalysisService(db).build_report(company_id, strategy)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if report is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Company profile not found"
        )
    return report

# ========== MARKET ANALYSIS ==========

@router.get("/market/{company_id}/report", response_model=MarketReport)
def get_market_report(
    company_id: int,
    strategy: str = Query("banded"),
    db: Session = Depends(get_db)
):
    """Opportunities, risks and summary stats from one scoring pass"""
    return _build_report(db, company_id, strategy)


@router.get("/market/{company_id}/opportunities", response_model=List[Opportunity])
def get_opportunities(
    company_id: int,
    strategy: str = Query("banded"),
    db: Session = Depends(get_db)
):
    return _build_report(db, company_id, strategy).opportunities


@router.get("/market/{company_id}/risks", response_model=List[RiskItem])
def get_risks(
    company_id: int,
    strategy: str = Query("banded"),
    db: Session = Depends(get_db)
):
    return _build_report(db, company_id, strategy).risks


@router.get("/market/{company_id}/stats", response_model=PredictionStats)
def get_prediction_stats(
    company_id: int,
    strategy: str = Query("banded"),
    db: Session = Depends(get_db)
):
    return _build_report(db, company_id, strategy).stats


@router.post("/market/{company_id}/match", response_model=MatchAnalysis)
def analyze_match(
    company_id: int,
    tender: TenderListing,
    strategy: str = Query("go_no_go"),
    db: Session = Depends(get_db)
):
    """Go/no-go analysis of a single SECOP process for the company"""
    try:
        analysis = MarketAnalysisService(db).analyze_tender(company_id, tender, strategy)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if analysis is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Company profile not found"
        )
    return analysis

# ========== COMPETITORS ==========

@router.post("/competitors", response_model=List[CompetitorInfo])
async def get_competitors(
    request: CompetitorSearchRequest,
    client: SecopClient = Depends(get_secop_client)
):
    """Suppliers that won SECOP contracts in the given UNSPSC codes"""
    return await client.get_historical_contracts(request.unspsc_codes)

# ========== HISTORICAL CACHE ==========

@router.post("/historical/sync")
async def trigger_historical_sync() -> Dict[str, Any]:
    return await manual_sync()


@router.post("/historical/process")
async def trigger_pending_processing(batch_size: int = Query(10, ge=1, le=500)) -> Dict[str, Any]:
    return await run_pending_processing(batch_size)


@router.get("/historical/similar", response_model=List[SimilarTender])
async def get_similar_tenders(
    q: str = Query(..., min_length=3),
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
    ai_engine: AIEngine = Depends(get_ai_engine)
):
    processor = DataProcessor(None, HistoricalTenderRepository(db), ai_engine)
    return await processor.find_similar_tenders(q, limit)

# ========== AI ==========

@router.post("/ai/classify", response_model=List[ProcessClassification])
async def classify_processes(
    processes: List[ProcessSummary],
    ai_engine: AIEngine = Depends(get_ai_engine)
):
    return await classify_processes_ai(ai_engine, [process.model_dump() for process in processes])


@router.post("/ai/analyze", response_model=TenderAnalysis)
async def analyze_description(
    request: TenderAnalysisRequest,
    ai_engine: AIEngine = Depends(get_ai_engine)
):
    """Empty analysis when the AI is unavailable"""
    analysis = await analyze_tender_description(ai_engine, request.description, request.title)
    return analysis or TenderAnalysis()


@router.get("/ai/usage")
def get_ai_usage() -> Dict[str, Any]:
    return UsageLedger().totals()

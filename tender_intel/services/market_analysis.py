import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from tender_intel.core.config import settings
from tender_intel.models.company import CompanyProfile, CompanyContract
from tender_intel.models.schemas import (
    CompanyData, ContractRecord, MarketReport, MatchAnalysis, TenderListing
)
from tender_intel.services.historical_repository import HistoricalTenderRepository
from tender_intel.services.match_scoring import (
    CompanyMatchContext, get_strategy, score_tenders,
    rank_opportunities, detect_risks, summarize_scores
)

logger = logging.getLogger(__name__)

OPPORTUNITY_LIMIT = 10
RISK_LIMIT = 5
TENDER_WINDOW = 500


class MarketAnalysisService:
    """Scores the cached SECOP processes against one company profile"""

    def __init__(self, db: Session):
        self.db = db
        self.repository = HistoricalTenderRepository(db)

    def get_company_context(self, company_id: int) -> Optional[CompanyMatchContext]:
        profile = self.db.query(CompanyProfile).filter(CompanyProfile.id == company_id).first()
        if not profile:
            return None

        contracts = self.db.query(CompanyContract).filter(
            CompanyContract.company_id == company_id
        ).all()

        records = [
            ContractRecord(
                client_name=contract.client_name or "",
                contract_value=float(contract.contract_value or 0),
                execution_date=contract.execution_date,
                description=contract.description,
                unspsc_codes=list(contract.unspsc_codes or [])
            )
            for contract in contracts
        ]

        return CompanyMatchContext(CompanyData.from_profile(profile), records)

    def load_tenders(self, limit: int = TENDER_WINDOW) -> List[TenderListing]:
        return [TenderListing.from_historical(row) for row in self.repository.list_recent(limit)]

    def build_report(
        self,
        company_id: int,
        strategy_name: str = "banded",
        opportunity_limit: int = OPPORTUNITY_LIMIT,
        risk_limit: int = RISK_LIMIT
    ) -> Optional[MarketReport]:
        """
        Ranked opportunities, risks and summary stats from one scoring pass.
        Returns None when the company does not exist.
        """
        strategy = get_strategy(strategy_name)
        context = self.get_company_context(company_id)
        if context is None:
            return None

        tenders = self.load_tenders()
        scored = score_tenders(
            context,
            tenders,
            strategy,
            max_workers=settings.SCORING_MAX_WORKERS,
            parallel_threshold=settings.SCORING_PARALLEL_THRESHOLD
        )

        report = MarketReport(
            company_id=company_id,
            strategy=strategy.name,
            opportunities=rank_opportunities(scored, opportunity_limit),
            risks=detect_risks(scored, context.capacity, risk_limit),
            stats=summarize_scores(scored)
        )

        logger.info(
            f"Market report for company {company_id}: {report.stats.total_scored} scored, "
            f"{report.stats.opportunities} opportunities, {report.stats.risks} risks"
        )
        return report

    def analyze_tender(
        self,
        company_id: int,
        tender: TenderListing,
        strategy_name: str = "go_no_go"
    ) -> Optional[MatchAnalysis]:
        strategy = get_strategy(strategy_name)
        context = self.get_company_context(company_id)
        if context is None:
            return None
        return strategy.analyze(tender, context)

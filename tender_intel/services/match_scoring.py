from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional
import logging
import math

from tender_intel.models.schemas import (
    CompanyData, ContractRecord, ExperienceStat, TenderListing,
    ScoreBreakdown, MatchAnalysis, ScoredTender, Opportunity, RiskItem, PredictionStats
)
from tender_intel.services.company_data import (
    calculate_capacity, get_experience_by_unspsc, average_contract_value, format_currency
)
from tender_intel.services.unspsc import extract_unspsc_from_process, matching_codes, categories_match

logger = logging.getLogger(__name__)

# Banded score weights
FINANCIAL_MAX_POINTS = 40
EXPERIENCE_MAX_POINTS = 40
EXPERIENCE_NO_CODES_POINTS = 20
SIZE_MAX_POINTS = 20
MAX_SCORE = 100

# Classification bands
OPPORTUNITY_THRESHOLD = 70
RISK_MIN_SCORE = 30
RISK_MAX_SCORE = 50  # exclusive
HIGH_SEVERITY_CAPACITY_FACTOR = 1.5

# Go/no-go weights
GO_UNSPSC_POINTS = 40
GO_FINANCIAL_POINTS = 30
GO_EXPERIENCE_POINTS = 20
GO_LOCATION_POINTS = 10
GO_MATCH_THRESHOLD = 50


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class CompanyMatchContext:
    """Company-side inputs computed once and shared by every tender in a scoring run"""

    def __init__(self, company: CompanyData, contracts: Optional[Iterable[ContractRecord]] = None):
        self.company = company
        self.contracts = list(contracts or [])
        self.capacity = calculate_capacity(company)
        self.experience = get_experience_by_unspsc(self.contracts)
        self.average_contract_value = average_contract_value(self.experience)

# ========== BANDED SCORE ==========

def score_breakdown(
    company: CompanyData,
    tender: TenderListing,
    company_experience_by_code: Dict[str, ExperienceStat]
) -> ScoreBreakdown:
    """
    Score a tender against the company on three components:
    - Financial fit (0-40): tender amount relative to bidding capacity
    - Experience (0-40): share of required UNSPSC categories covered by past contracts
    - Size (0-20): tender amount relative to the average executed contract
    """
    return _banded_breakdown(
        tender,
        calculate_capacity(company),
        company_experience_by_code,
        average_contract_value(company_experience_by_code)
    )


def _banded_breakdown(
    tender: TenderListing,
    capacity: float,
    experience_by_code: Dict[str, ExperienceStat],
    average: Optional[float]
) -> ScoreBreakdown:
    reasons: List[str] = []
    warnings: List[str] = []
    amount = tender.amount

    financial = _financial_fit(amount, capacity, reasons, warnings)
    experience = _experience_fit(tender, experience_by_code, reasons, warnings)
    size = _size_fit(amount, average, reasons, warnings)

    total = min(round_half_up(financial + experience + size), MAX_SCORE)

    return ScoreBreakdown(
        financial=financial,
        experience=experience,
        size=size,
        total=total,
        reasons=reasons,
        warnings=warnings
    )


def calculate_match_score(
    company: CompanyData,
    tender: TenderListing,
    company_experience_by_code: Dict[str, ExperienceStat]
) -> int:
    """Single source of truth for the 0-100 banded match score"""
    return score_breakdown(company, tender, company_experience_by_code).total


def _financial_fit(amount: float, capacity: float, reasons: List[str], warnings: List[str]) -> int:
    if capacity <= 0:
        warnings.append("Configura tus indicadores financieros para validar capacidad")
        return 0
    if amount <= 0:
        warnings.append("El proceso no publica presupuesto oficial")
        return 0

    ratio = amount / capacity
    if ratio <= 1.0:
        reasons.append(f"Capacidad financiera suficiente ({round_half_up(capacity / amount * 100)}%)")
        return FINANCIAL_MAX_POINTS
    if ratio <= 1.5:
        reasons.append("Capacidad financiera ajustada")
        warnings.append(f"Requiere {format_currency(amount)} pero tienes {format_currency(capacity)}")
        return 25
    if ratio <= 2.0:
        warnings.append(f"Requiere {format_currency(amount)} pero tienes {format_currency(capacity)}")
        return 10

    warnings.append(f"El presupuesto supera el doble de tu capacidad ({format_currency(capacity)})")
    return 0


def _experience_fit(
    tender: TenderListing,
    experience: Dict[str, ExperienceStat],
    reasons: List[str],
    warnings: List[str]
) -> int:
    required = extract_unspsc_from_process(tender)
    if not required:
        warnings.append("El proceso no declara códigos UNSPSC")
        return EXPERIENCE_NO_CODES_POINTS

    matched = matching_codes(required, experience.keys())
    if matched:
        reasons.append(f"Experiencia en categoría UNSPSC: {', '.join(matched)}")
    else:
        warnings.append("No hay coincidencia en códigos UNSPSC")

    return round_half_up(EXPERIENCE_MAX_POINTS * len(matched) / len(required))


def _size_fit(
    amount: float,
    average: Optional[float],
    reasons: List[str],
    warnings: List[str]
) -> int:
    if not average:
        warnings.append("Sin historial de contratos para comparar tamaño")
        return 0

    size_ratio = amount / average
    if 0.5 <= size_ratio <= 2.0:
        reasons.append(f"Tamaño similar a tus contratos ejecutados (promedio {format_currency(average)})")
        return SIZE_MAX_POINTS
    if 0.3 <= size_ratio <= 3.0:
        reasons.append(f"Tamaño comparable a tus contratos ejecutados (promedio {format_currency(average)})")
        return 10

    warnings.append(f"Tamaño muy distinto a tu promedio de contratos ({format_currency(average)})")
    return 0

# ========== GO / NO-GO ANALYSIS ==========

def analyze_tender_match(
    process: TenderListing,
    company: CompanyData,
    existing_contracts: Optional[Iterable[ContractRecord]] = None
) -> MatchAnalysis:
    """
    Single-tender go/no-go: UNSPSC (40), financial capacity (30),
    prior experience (20), location (10). A match needs 50 points.
    """
    return _go_no_go(
        process,
        company,
        calculate_capacity(company),
        get_experience_by_unspsc(existing_contracts or [])
    )


def _go_no_go(
    process: TenderListing,
    company: CompanyData,
    capacity: float,
    experience: Dict[str, ExperienceStat]
) -> MatchAnalysis:
    reasons: List[str] = []
    warnings: List[str] = []
    match_score = 0

    # 1. UNSPSC Code Match (40 points)
    unspsc_matched = _analyze_unspsc_match(process, company)
    if unspsc_matched:
        match_score += GO_UNSPSC_POINTS
        reasons.append(f"Código UNSPSC compatible: {', '.join(unspsc_matched)}")
    else:
        warnings.append("No hay coincidencia en códigos UNSPSC")

    # 2. Financial Capacity (30 points)
    amount = process.amount
    if company.financial_indicators and amount > 0 and capacity >= amount:
        match_score += GO_FINANCIAL_POINTS
        reasons.append(f"Capacidad financiera suficiente ({round_half_up(capacity / amount * 100)}%)")
    elif company.financial_indicators:
        warnings.append(f"Requiere {format_currency(amount)} pero tienes {format_currency(capacity)}")
    else:
        warnings.append("Configura tus indicadores financieros para validar capacidad")

    # 3. Experience Match (20 points)
    contract_count = _count_similar_contracts(process, experience)
    if contract_count > 0:
        match_score += GO_EXPERIENCE_POINTS
        reasons.append(f"Experiencia previa: {contract_count} contratos similares")
    else:
        warnings.append("Sin experiencia previa en este sector")

    # 4. Location (10 points) - any published location counts
    region = process.region
    if region:
        match_score += GO_LOCATION_POINTS
        reasons.append(f"Ubicación favorable: {region}")

    return MatchAnalysis(
        is_match=match_score >= GO_MATCH_THRESHOLD,
        match_score=match_score,
        reasons=reasons,
        warnings=warnings
    )


def _analyze_unspsc_match(process: TenderListing, company: CompanyData) -> List[str]:
    """Company codes sharing a category with the process"""
    if not company.unspsc_codes:
        return []
    return matching_codes(company.unspsc_codes, extract_unspsc_from_process(process))


def _count_similar_contracts(process: TenderListing, experience: Dict[str, ExperienceStat]) -> int:
    process_codes = extract_unspsc_from_process(process)
    if not process_codes:
        return 0

    contract_count = 0
    for process_code in process_codes:
        for company_code, stat in experience.items():
            if categories_match(process_code, company_code):
                contract_count += stat.count
    return contract_count

# ========== STRATEGIES ==========

class ScoringStrategy(ABC):
    """Turns a tender plus company context into a MatchAnalysis"""

    name: str = ""

    @abstractmethod
    def analyze(self, tender: TenderListing, context: CompanyMatchContext) -> MatchAnalysis:
        pass


class BandedScoringStrategy(ScoringStrategy):
    """Ranked-list scoring: financial fit, UNSPSC experience, contract size"""

    name = "banded"

    def analyze(self, tender: TenderListing, context: CompanyMatchContext) -> MatchAnalysis:
        breakdown = _banded_breakdown(
            tender,
            context.capacity,
            context.experience,
            context.average_contract_value
        )
        return MatchAnalysis(
            is_match=breakdown.total >= OPPORTUNITY_THRESHOLD,
            match_score=breakdown.total,
            reasons=breakdown.reasons,
            warnings=breakdown.warnings
        )


class GoNoGoScoringStrategy(ScoringStrategy):
    """Single-tender go/no-go with a binary match at 50 points"""

    name = "go_no_go"

    def analyze(self, tender: TenderListing, context: CompanyMatchContext) -> MatchAnalysis:
        return _go_no_go(tender, context.company, context.capacity, context.experience)


STRATEGIES = {
    BandedScoringStrategy.name: BandedScoringStrategy,
    GoNoGoScoringStrategy.name: GoNoGoScoringStrategy,
}


def get_strategy(name: str) -> ScoringStrategy:
    if name not in STRATEGIES:
        raise ValueError(f"Unknown scoring strategy: {name}")
    return STRATEGIES[name]()

# ========== SCORING RUN & CLASSIFICATION ==========

def score_tenders(
    context: CompanyMatchContext,
    tenders: List[TenderListing],
    strategy: Optional[ScoringStrategy] = None,
    max_workers: int = 8,
    parallel_threshold: int = 200
) -> List[ScoredTender]:
    """
    Score every tender once. Results keep input order; large listings are
    scored on a thread pool since tenders are independent.
    """
    strategy = strategy or BandedScoringStrategy()

    def _score(tender: TenderListing) -> ScoredTender:
        return ScoredTender(
            tender=tender,
            analysis=strategy.analyze(tender, context),
            strategy=strategy.name
        )

    if len(tenders) >= parallel_threshold and max_workers > 1:
        logger.info(f"Scoring {len(tenders)} tenders on {max_workers} workers ({strategy.name})")
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            return list(executor.map(_score, tenders))

    return [_score(tender) for tender in tenders]


def classify_score(score: int) -> str:
    """'opportunity', 'risk' or 'neutral' (50-69 and below 30 are neither)"""
    if score >= OPPORTUNITY_THRESHOLD:
        return "opportunity"
    if RISK_MIN_SCORE <= score < RISK_MAX_SCORE:
        return "risk"
    return "neutral"


def rank_opportunities(scored: List[ScoredTender], limit: Optional[int] = None) -> List[Opportunity]:
    """Opportunities by descending score; equal scores keep input order"""
    candidates = [item for item in scored if classify_score(item.analysis.match_score) == "opportunity"]
    ranked = sorted(candidates, key=lambda item: item.analysis.match_score, reverse=True)
    if limit is not None:
        ranked = ranked[:limit]

    return [
        Opportunity(
            secop_id=item.tender.id_del_proceso,
            title=item.tender.title,
            entity=item.tender.entidad,
            amount=item.tender.amount,
            match_score=item.analysis.match_score,
            reasons=item.analysis.reasons
        )
        for item in ranked
    ]


def detect_risks(scored: List[ScoredTender], capacity: float, limit: Optional[int] = None) -> List[RiskItem]:
    """Tenders in the [30, 50) band, with severity from the capacity gap"""
    risks: List[RiskItem] = []

    for item in scored:
        score = item.analysis.match_score
        if classify_score(score) != "risk":
            continue

        amount = item.tender.amount
        severity = "high" if amount > capacity * HIGH_SEVERITY_CAPACITY_FACTOR else "medium"

        if amount > capacity:
            risk_type = "capacity_shortfall"
            description = f"Presupuesto de {format_currency(amount)} supera tu capacidad de {format_currency(capacity)}"
        else:
            risk_type = "experience_gap"
            description = f"Puntaje {score}/100: experiencia o tamaño de contratos insuficiente"

        risks.append(RiskItem(
            secop_id=item.tender.id_del_proceso,
            title=item.tender.title,
            description=description,
            severity=severity,
            risk_type=risk_type,
            match_score=score
        ))

    if limit is not None:
        risks = risks[:limit]
    return risks


def summarize_scores(scored: List[ScoredTender]) -> PredictionStats:
    if not scored:
        return PredictionStats()

    scores = [item.analysis.match_score for item in scored]
    bands = [classify_score(score) for score in scores]

    return PredictionStats(
        opportunities=bands.count("opportunity"),
        risks=bands.count("risk"),
        avg_score=round_half_up(sum(scores) / len(scores)),
        total_scored=len(scores)
    )

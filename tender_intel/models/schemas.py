from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Any, Literal
from datetime import datetime, date

# ========== COMPANY MODELS ==========

class FinancialIndicators(BaseModel):
    liquidity_index: Optional[float] = None
    indebtedness_index: Optional[float] = None
    working_capital: Optional[float] = None
    equity: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return self.working_capital is None and self.equity is None


class CompanyData(BaseModel):
    """
    Company profile as seen by the scoring engine.
    Bidding capacity is derived from financial_indicators, never stored.
    """
    id: Optional[int] = None
    company_name: str = ""
    unspsc_codes: List[str] = Field(default_factory=list, description="8-digit UNSPSC codes")
    city: Optional[str] = None
    department: Optional[str] = None
    financial_indicators: Optional[FinancialIndicators] = None

    @classmethod
    def from_profile(cls, profile) -> "CompanyData":
        """Build from a CompanyProfile row"""
        indicators = FinancialIndicators(
            liquidity_index=_to_float(profile.liquidity_index),
            indebtedness_index=_to_float(profile.indebtedness_index),
            working_capital=_to_float(profile.working_capital),
            equity=_to_float(profile.equity),
        )
        return cls(
            id=profile.id,
            company_name=profile.company_name,
            unspsc_codes=list(profile.unspsc_codes or []),
            city=profile.city,
            department=profile.department,
            financial_indicators=None if indicators.is_empty else indicators,
        )


class ContractRecord(BaseModel):
    """One contract from the company's own execution history"""
    client_name: str = ""
    contract_value: float = Field(0.0, ge=0, description="Executed contract value")
    execution_date: Optional[date] = None
    description: Optional[str] = None
    unspsc_codes: List[str] = Field(default_factory=list)

    class Config:
        from_attributes = True


class ExperienceStat(BaseModel):
    count: int = 0
    total_value: float = 0.0

# ========== TENDER MODELS ==========

class TenderListing(BaseModel):
    """A SECOP II process as published on datos.gov.co"""
    id_del_proceso: str = Field(..., description="External process ID")
    referencia_del_proceso: Optional[str] = None
    entidad: Optional[str] = None
    departamento_entidad: Optional[str] = None
    ciudad_entidad: Optional[str] = None
    descripci_n_del_procedimiento: Optional[str] = None
    codigo_principal_de_categoria: Optional[str] = None
    precio_base: Optional[str] = None
    fase: Optional[str] = None
    tipo_de_contrato: Optional[str] = None
    fecha_de_publicacion_del: Optional[datetime] = None
    urlproceso: Optional[Any] = None

    @field_validator("precio_base", "codigo_principal_de_categoria", mode="before")
    @classmethod
    def _stringify(cls, value):
        if value is None:
            return None
        return str(value)

    @property
    def amount(self) -> float:
        try:
            return float(self.precio_base) if self.precio_base else 0.0
        except ValueError:
            return 0.0

    @property
    def title(self) -> str:
        return self.referencia_del_proceso or "Sin título"

    @property
    def region(self) -> str:
        return self.departamento_entidad or self.ciudad_entidad or ""

    @property
    def required_unspsc_codes(self) -> List[str]:
        # unspsc imports this module
        from tender_intel.services.unspsc import extract_unspsc_from_process
        return extract_unspsc_from_process(self)

    @classmethod
    def from_historical(cls, row) -> "TenderListing":
        """Rebuild a listing from a HistoricalTender cache row"""
        return cls(
            id_del_proceso=row.secop_id,
            referencia_del_proceso=row.title,
            entidad=row.entity_name,
            departamento_entidad=row.region,
            descripci_n_del_procedimiento=row.description,
            codigo_principal_de_categoria=row.unspsc_code,
            precio_base=str(row.amount) if row.amount is not None else None,
            fase=row.status,
            tipo_de_contrato=row.category,
            fecha_de_publicacion_del=row.published_at,
        )

# ========== SCORING MODELS ==========

class ScoreBreakdown(BaseModel):
    financial: int = 0
    experience: int = 0
    size: int = 0
    total: int = 0
    reasons: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class MatchAnalysis(BaseModel):
    is_match: bool
    match_score: int = Field(..., ge=0, le=100)
    reasons: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ScoredTender(BaseModel):
    tender: TenderListing
    analysis: MatchAnalysis
    strategy: str


class Opportunity(BaseModel):
    secop_id: str
    title: str
    entity: Optional[str] = None
    amount: float = 0.0
    match_score: int
    reasons: List[str] = Field(default_factory=list)


class RiskItem(BaseModel):
    secop_id: str
    title: str
    description: str
    severity: Literal["high", "medium"]
    risk_type: Literal["capacity_shortfall", "experience_gap"]
    match_score: int


class PredictionStats(BaseModel):
    opportunities: int = 0
    risks: int = 0
    avg_score: int = 0
    total_scored: int = 0


class MarketReport(BaseModel):
    company_id: int
    strategy: str
    opportunities: List[Opportunity] = Field(default_factory=list)
    risks: List[RiskItem] = Field(default_factory=list)
    stats: PredictionStats = Field(default_factory=PredictionStats)

# ========== AI MODELS ==========

class TokenUsage(BaseModel):
    total_tokens: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    model: str = "gpt-4o-mini"
    provider: Literal["openai", "ollama"] = "openai"
    feature: Optional[str] = None
    request_type: Literal["chat", "completion", "embedding", "analysis"] = "completion"
    estimated_cost: Optional[float] = None


class AIResponse(BaseModel):
    """Result of every AI capability call: data on success, error otherwise"""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    usage: Optional[TokenUsage] = None


class ProcessClassification(BaseModel):
    id: str
    is_corporate: bool = Field(False, alias="isCorporate")
    is_actionable: bool = Field(False, alias="isActionable")
    advice: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return str(value)

    class Config:
        populate_by_name = True


class TenderAnalysis(BaseModel):
    deliverables: List[str] = Field(default_factory=list)
    technical_requirements: List[str] = Field(default_factory=list, alias="technicalRequirements")
    timeline: List[str] = Field(default_factory=list)
    summary: str = ""

    class Config:
        populate_by_name = True


class ProcessSummary(BaseModel):
    """Minimal process view sent for AI classification"""
    id: str
    title: str = ""
    description: str = ""


class TenderAnalysisRequest(BaseModel):
    title: str
    description: str


class CompetitorSearchRequest(BaseModel):
    unspsc_codes: List[str] = Field(..., min_length=1, description="UNSPSC codes to look up awarded contracts for")


class CompetitorInfo(BaseModel):
    name: str
    award_value: float = 0.0
    contract_date: Optional[str] = None
    entity: Optional[str] = None
    description: Optional[str] = None
    unspsc_code: Optional[str] = None

# ========== PIPELINE MODELS ==========

class IngestionResult(BaseModel):
    success: bool
    total: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: bool = False
    error: Optional[str] = None


class ProcessingResult(BaseModel):
    processed: int = 0
    failed: int = 0
    cancelled: bool = False


class SimilarTender(BaseModel):
    secop_id: str
    title: str
    score: float


def _to_float(value) -> Optional[float]:
    return float(value) if value is not None else None

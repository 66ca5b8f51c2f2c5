from typing import Dict, Iterable, Optional

from tender_intel.models.schemas import CompanyData, ContractRecord, ExperienceStat
from tender_intel.services.unspsc import normalize_code


def calculate_capacity(company: CompanyData) -> float:
    """
    Bidding capacity: working capital plus equity, negatives counted as zero.
    Returns 0 when the company has not filled in its financial indicators.
    """
    indicators = company.financial_indicators
    if indicators is None or indicators.is_empty:
        return 0.0

    working_capital = max(indicators.working_capital or 0.0, 0.0)
    equity = max(indicators.equity or 0.0, 0.0)
    return working_capital + equity


def get_experience_by_unspsc(contracts: Iterable[ContractRecord]) -> Dict[str, ExperienceStat]:
    """Group contract history by recorded UNSPSC code (no category collapsing)"""
    experience: Dict[str, ExperienceStat] = {}

    for contract in contracts:
        for raw_code in contract.unspsc_codes or []:
            code = normalize_code(raw_code)
            if not code:
                continue
            stat = experience.setdefault(code, ExperienceStat())
            stat.count += 1
            stat.total_value += contract.contract_value

    return experience


def average_contract_value(experience: Dict[str, ExperienceStat]) -> Optional[float]:
    """Average value per contract across the experience aggregation, None without history"""
    total_count = sum(stat.count for stat in experience.values())
    if total_count == 0:
        return None
    total_value = sum(stat.total_value for stat in experience.values())
    return total_value / total_count


def format_currency(amount: float) -> str:
    """COP formatting without decimals: 1234567 -> $1.234.567"""
    rounded = int(round(amount or 0))
    sign = "-" if rounded < 0 else ""
    return f"{sign}${abs(rounded):,}".replace(",", ".")

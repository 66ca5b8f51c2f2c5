from tender_intel.models.company import CompanyProfile, CompanyContract
from tender_intel.models.historical import HistoricalTender, AIUsageRecord

__all__ = [
    "CompanyProfile",
    "CompanyContract",
    "HistoricalTender",
    "AIUsageRecord",
]

"""
AI token usage ledger.

The AIEngine calls UsageLedger.record after every request so costs and usage
patterns can be monitored per feature.
"""
import logging
from typing import Any, Dict

from sqlalchemy import func
from sqlalchemy.orm import sessionmaker

from tender_intel.database import SessionLocal
from tender_intel.models.historical import AIUsageRecord
from tender_intel.models.schemas import TokenUsage

logger = logging.getLogger(__name__)

# Pricing per 1M tokens (USD)
PRICING = {
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4-turbo": {"input": 10.00, "output": 30.00},
    "gpt-3.5-turbo": {"input": 0.50, "output": 1.50},
    "text-embedding-3-small": {"input": 0.02, "output": 0.0},
    "text-embedding-3-large": {"input": 0.13, "output": 0.0},
}
DEFAULT_MODEL = "gpt-4o-mini"


def calculate_cost(usage: TokenUsage) -> float:
    """Estimated cost in USD; local Ollama models are free"""
    if usage.provider == "ollama":
        return 0.0

    model_pricing = PRICING.get(usage.model, PRICING[DEFAULT_MODEL])
    input_cost = (usage.prompt_tokens / 1_000_000) * model_pricing["input"]
    output_cost = (usage.completion_tokens / 1_000_000) * model_pricing["output"]
    return round(input_cost + output_cost, 6)


def format_token_count(count: int) -> str:
    if count >= 1_000_000:
        return f"{count / 1_000_000:.2f}M"
    elif count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)


class UsageLedger:
    """Writes one AIUsageRecord per AI call using its own short-lived session"""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory

    def __call__(self, usage: TokenUsage) -> bool:
        return self.record(usage)

    def record(self, usage: TokenUsage) -> bool:
        db = self.session_factory()
        try:
            db.add(AIUsageRecord(
                model=usage.model,
                provider=usage.provider,
                feature=usage.feature,
                request_type=usage.request_type,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                total_tokens=usage.total_tokens,
                estimated_cost=usage.estimated_cost if usage.estimated_cost is not None else calculate_cost(usage)
            ))
            db.commit()
            return True
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to record token usage: {str(e)}")
            return False
        finally:
            db.close()

    def totals(self) -> Dict[str, Any]:
        """Aggregate usage; zeros when nothing was recorded yet"""
        db = self.session_factory()
        try:
            row = db.query(
                func.count(AIUsageRecord.id),
                func.coalesce(func.sum(AIUsageRecord.total_tokens), 0),
                func.coalesce(func.sum(AIUsageRecord.prompt_tokens), 0),
                func.coalesce(func.sum(AIUsageRecord.completion_tokens), 0),
                func.coalesce(func.sum(AIUsageRecord.estimated_cost), 0.0),
            ).one()
            return {
                "total_requests": row[0],
                "total_tokens": row[1],
                "prompt_tokens": row[2],
                "completion_tokens": row[3],
                "total_cost": round(float(row[4]), 6),
            }
        finally:
            db.close()

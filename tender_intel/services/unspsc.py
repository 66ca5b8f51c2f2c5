"""
UNSPSC category matching shared by every scoring path.

Two codes match when their first 4 digits (the category) are equal.
"""
from typing import Iterable, List, Optional

from tender_intel.models.schemas import TenderListing

CATEGORY_LENGTH = 4
LEGACY_PREFIX = "V1."


def normalize_code(code: Optional[object]) -> str:
    """Strip whitespace and the SECOP 'V1.' prefix (V1.80111600 -> 80111600)"""
    if code is None:
        return ""
    text = str(code).strip()
    if text.startswith(LEGACY_PREFIX):
        text = text[len(LEGACY_PREFIX):]
    return text


def categories_match(code_a: Optional[object], code_b: Optional[object]) -> bool:
    """Category-level comparison. Codes shorter than 4 characters never match."""
    a = normalize_code(code_a)
    b = normalize_code(code_b)
    if len(a) < CATEGORY_LENGTH or len(b) < CATEGORY_LENGTH:
        return False
    return a[:CATEGORY_LENGTH] == b[:CATEGORY_LENGTH]


def matching_codes(candidates: Iterable[str], targets: Iterable[str]) -> List[str]:
    """Candidate codes that share a category with at least one target, in input order"""
    target_list = list(targets)
    return [code for code in candidates if any(categories_match(code, target) for target in target_list)]


def extract_unspsc_from_process(process: TenderListing) -> List[str]:
    """Extract the UNSPSC codes a SECOP process declares"""
    code = normalize_code(process.codigo_principal_de_categoria)
    if len(code) >= CATEGORY_LENGTH:
        return [code]
    return []

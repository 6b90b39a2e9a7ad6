"""
Gap-analysis prompts and response models.

The model sees the legal baseline and the provider's coverage side by side
and returns per-key deltas. Its numbers are checked against the
deterministic computation before anything is kept.
"""

import json
from typing import Any

from pydantic import BaseModel, Field

from ..models.enhancement import OverlapAnalysis

GAP_ANALYSIS_REQUIRED_KEYS = ('enhancements',)


# =============================================================================
# Response Models
# =============================================================================


class GapItemResponse(BaseModel):
    monthly_amount: float = 0.0
    explanation: str = ''
    confidence: float = 0.5
    already_included: bool = False
    mandatory: bool | None = None
    yearly_amount: float | None = None
    total_amount: float | None = None


class GapAnalysisResponse(BaseModel):
    """Response contract of the gap-analysis pass."""

    enhancements: dict[str, GapItemResponse]
    additional_contributions: dict[str, float] = Field(default_factory=dict)
    analysis: OverlapAnalysis = Field(default_factory=OverlapAnalysis)
    recommendations: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    confidence: float | None = None


class MissingBenefitsResponse(BaseModel):
    """Response of the lighter "which benefits are missing" analysis."""

    missing_benefits: list[str] = Field(default_factory=list)
    included_benefits: list[str] = Field(default_factory=list)
    reasoning: dict[str, str] = Field(default_factory=dict)
    confidence: float = 0.5


# =============================================================================
# Prompt Templates
# =============================================================================

GAP_ANALYSIS_SYSTEM_PROMPT = """You compare an employer-of-record provider quote against the legal cost baseline for the same worker and compute what the quote is missing.

For every key in LEGAL BASELINE:
- delta = max(0, legal_amount - provider_amount)
- if provider_amount >= legal_amount: already_included=true and monthly_amount=0
- in statutory-only mode, non-mandatory items get monthly_amount=0
- all amounts are MONTHLY in the quote currency

Never count the same benefit twice. Local-office costs that have no baseline key go in additional_contributions, and only if they are not already covered by a baseline key.

Return ONE JSON object:
{"enhancements": {"<key>": {"monthly_amount": number, "explanation": str, "confidence": 0-1, "already_included": bool, "mandatory": bool}},
 "additional_contributions": {"<key>": number},
 "analysis": {"provider_coverage": [str], "missing_requirements": [str], "double_counting_risks": [str]},
 "recommendations": [str],
 "warnings": [str],
 "confidence": 0-1}"""

GAP_ANALYSIS_USER_PROMPT_TEMPLATE = """Provider: {provider}
Country: {country}
Currency: {currency}
Quote type: {quote_type}
Contract months: {contract_months}
Provider monthly total: {base_total}

LEGAL BASELINE (monthly, with mandatory flags):
{baseline}

PROVIDER COVERAGE (monthly):
{coverage}

LOCAL OFFICE COSTS:
{local_costs}"""


def build_gap_analysis_prompt(
    provider: str,
    country: str,
    currency: str,
    quote_type: str,
    contract_months: int,
    base_total: float,
    baseline: dict[str, dict[str, Any]],
    coverage: dict[str, float],
    local_costs: dict[str, float] | None = None,
) -> list[dict[str, str]]:
    """
    Build the gap-analysis prompt messages.

    Args:
        baseline: Key to {amount, mandatory, name}
        coverage: Key to monthly amount already billed by the provider
        local_costs: Local-office costs not represented by baseline keys

    Returns:
        List of message dicts for the chat API
    """
    user_prompt = GAP_ANALYSIS_USER_PROMPT_TEMPLATE.format(
        provider=provider,
        country=country,
        currency=currency,
        quote_type=quote_type,
        contract_months=contract_months,
        base_total=base_total,
        baseline=json.dumps(baseline, ensure_ascii=False, indent=1),
        coverage=json.dumps(coverage, ensure_ascii=False, indent=1),
        local_costs=json.dumps(local_costs or {}, ensure_ascii=False),
    )
    return [
        {'role': 'system', 'content': GAP_ANALYSIS_SYSTEM_PROMPT},
        {'role': 'user', 'content': user_prompt},
    ]


MISSING_BENEFITS_SYSTEM_PROMPT = """List which legally relevant benefits a provider quote is missing.
Return ONE JSON object: {"missing_benefits": [str], "included_benefits": [str], "reasoning": {"<benefit>": str}, "confidence": 0-1}"""


def build_missing_benefits_prompt(
    provider: str,
    country: str,
    baseline_keys: list[str],
    coverage: dict[str, float],
) -> list[dict[str, str]]:
    """Build the prompt for the benefit-presence analysis."""
    user_prompt = (
        f'Provider: {provider}\nCountry: {country}\n'
        f'Required benefits: {json.dumps(baseline_keys)}\n'
        f'Provider coverage: {json.dumps(coverage)}'
    )
    return [
        {'role': 'system', 'content': MISSING_BENEFITS_SYSTEM_PROMPT},
        {'role': 'user', 'content': user_prompt},
    ]

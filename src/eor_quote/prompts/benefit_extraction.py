"""
Provider inclusion extraction prompts and response models.

The model is asked to extract, never estimate: a benefit counts as included
only when a non-zero amount appears in the quote document.
"""

import json
from typing import Any

from pydantic import BaseModel, Field

from ..normalization import SYNONYMS

EXTRACTION_REQUIRED_KEYS = ('included_benefits',)


# =============================================================================
# Response Models
# =============================================================================


class ExtractedBenefit(BaseModel):
    """Raw extracted benefit; amounts are checked and clamped after parsing."""

    amount: float = 0.0
    frequency: str = 'monthly'
    confidence: float = 0.5
    description: str | None = None


class ExtractedBenefits(BaseModel):
    """Response contract of the extraction pass."""

    currency: str | None = None
    country: str | None = None
    base_salary: float | None = None
    monthly_total: float | None = None
    included_benefits: dict[str, ExtractedBenefit] = Field(default_factory=dict)
    extraction_notes: str | None = None


# =============================================================================
# Prompt Templates
# =============================================================================

EXTRACTION_SYSTEM_PROMPT = """You read an employer-of-record provider's cost quote and report which legally relevant benefits it ALREADY bills for.

EXTRACT, NEVER ESTIMATE:
- Include a benefit only when a non-zero amount for it appears in the document, verbatim or by direct unit conversion (yearly / 12).
- If a benefit is not itemized, leave it out. Do not infer amounts from law or custom.
- Report every amount as a positive monthly figure in the quote's currency.

Use these benefit keys only:
{benefit_keys}

Return ONE JSON object:
{{"currency": str, "country": str, "base_salary": number, "monthly_total": number,
  "included_benefits": {{"<key>": {{"amount": number, "frequency": "monthly", "confidence": 0-1, "description": str}}}},
  "extraction_notes": str}}"""

EXTRACTION_USER_PROMPT_TEMPLATE = """Provider: {provider}
Country: {country}
Currency: {currency}

QUOTE DOCUMENT:
{document}"""

MAX_DOCUMENT_CHARS = 12000


def build_extraction_prompt(
    provider: str,
    country: str,
    currency: str,
    document: Any,
) -> list[dict[str, str]]:
    """
    Build the inclusion-extraction prompt messages.

    Args:
        provider: Provider identifier
        country: Country of employment
        currency: Quote currency
        document: Raw quote JSON (truncated when very large)

    Returns:
        List of message dicts for the chat API
    """
    rendered = json.dumps(document, ensure_ascii=False, default=str)
    if len(rendered) > MAX_DOCUMENT_CHARS:
        rendered = rendered[:MAX_DOCUMENT_CHARS] + '...'

    system_prompt = EXTRACTION_SYSTEM_PROMPT.format(
        benefit_keys=', '.join(key for key, _ in SYNONYMS),
    )
    user_prompt = EXTRACTION_USER_PROMPT_TEMPLATE.format(
        provider=provider,
        country=country,
        currency=currency,
        document=rendered,
    )
    return [
        {'role': 'system', 'content': system_prompt},
        {'role': 'user', 'content': user_prompt},
    ]

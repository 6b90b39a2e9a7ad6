"""
Legal-profile prompts and response models.

The model receives deterministic hints plus presence-gated reference
excerpts and must answer with a single JSON object.
"""

import json
from typing import Any

from pydantic import BaseModel, Field

from ..models.legal import EmploymentParameters, LegalItem

LEGAL_PROFILE_REQUIRED_KEYS = ('items',)


# =============================================================================
# Response Models
# =============================================================================


class LegalProfileResponse(BaseModel):
    """Shape the legal-profile model must return."""

    meta: dict[str, Any] = Field(default_factory=dict)
    availability: dict[str, bool] = Field(default_factory=dict)
    items: list[LegalItem] = Field(
        ...,
        description='Monthly cost items, each with key, name, category, mandatory and '
        'monthly_amount_local.',
    )
    subtotals: dict[str, float] | None = None
    total_monthly_local: float | None = None
    warnings: list[str] = Field(default_factory=list)


# =============================================================================
# Prompt Templates
# =============================================================================

LEGAL_PROFILE_SYSTEM_PROMPT = """You are a payroll compliance analyst. You build the monthly employer cost profile that a country's labour law and payroll custom impose on top of a worker's base salary.

Return ONE JSON object and nothing else, with exactly these top-level keys:
- meta: {country_code, country, currency, base_salary_monthly, contract_months, quote_type}
- availability: object echoing the availability flags you were given
- items: array of {key, name, category, mandatory, formula, variables, monthly_amount_local, source, notes}
- subtotals: {contributions, bonuses, allowances, termination}
- total_monthly_local: number
- warnings: array of strings

Rules:
- category MUST be one of: contributions, bonuses, allowances, termination
- Every amount is MONTHLY in the local currency. Divide yearly amounts by 12, multiply per-working-day amounts by 22, and use the midpoint of ranges.
- Only create items for sections present in REFERENCE EXCERPTS. If a section is absent, do not invent items for it.
- Use the DETERMINISTIC HINTS for notice days, severance months, 13th/14th salary and contribution rates; do not contradict them.
- 13th and 14th salaries are base_salary_monthly / 12 each per month when mandatory.
- Mark mandatory=true only for amounts required by law or a binding collective agreement.
- If quote_type is statutory-only, include ONLY mandatory items.
- Do not include the base salary itself as an item."""

LEGAL_PROFILE_USER_PROMPT_TEMPLATE = """Build the legal cost profile.

META:
{meta}

AVAILABILITY FLAGS:
{availability}

DETERMINISTIC HINTS:
{hints}

REFERENCE EXCERPTS:
{excerpts}"""


def build_legal_profile_prompt(
    params: EmploymentParameters,
    currency: str,
    country_name: str | None,
    availability: dict[str, bool],
    hints: dict[str, Any],
    excerpts: dict[str, str],
) -> list[dict[str, str]]:
    """
    Build the legal-profile prompt messages.

    Args:
        params: Employment parameters of the request
        currency: Local currency code
        country_name: Country display name, when known
        availability: Availability flags of the country
        hints: Deterministic numeric hints
        excerpts: Presence-gated reference sections

    Returns:
        List of message dicts for the chat API
    """
    meta = {
        'country_code': params.country_code,
        'country': country_name,
        'currency': currency,
        'base_salary_monthly': params.base_salary_monthly,
        'contract_months': params.contract_months,
        'quote_type': params.quote_type.value,
        'employment_type': params.employment_type,
    }
    excerpt_text = '\n\n'.join(f'[{label}]\n{text}' for label, text in excerpts.items())

    user_prompt = LEGAL_PROFILE_USER_PROMPT_TEMPLATE.format(
        meta=json.dumps(meta, ensure_ascii=False),
        availability=json.dumps(availability),
        hints=json.dumps(hints, ensure_ascii=False),
        excerpts=excerpt_text or '(none)',
    )

    return [
        {'role': 'system', 'content': LEGAL_PROFILE_SYSTEM_PROMPT},
        {'role': 'user', 'content': user_prompt},
    ]

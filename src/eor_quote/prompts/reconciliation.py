"""
Reconciliation narrative prompts and response models.

The model only contributes prose. Any numbers it echoes are compared with
the local computation and replaced when they differ.
"""

import json
from typing import Any

from pydantic import BaseModel, Field

RECONCILIATION_REQUIRED_KEYS = ('items',)


class RankedProvider(BaseModel):
    provider: str
    total: float | None = None
    delta: float | None = None
    pct: float | None = None
    within_band: bool | None = None
    notes: list[str] = Field(default_factory=list)


class ReconciliationNarrative(BaseModel):
    items: list[RankedProvider] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


RECONCILIATION_SYSTEM_PROMPT = """You review a cross-provider employer-of-record price comparison that has ALREADY been computed.

Do not recompute anything. Echo each provider's total, delta, pct and within_band exactly as given, and add short notes explaining coverage gaps and double-counting risks. Then give 1-3 recommendations.

Return ONE JSON object:
{"items": [{"provider": str, "total": number, "delta": number, "pct": number, "within_band": bool, "notes": [str]}],
 "recommendations": [str],
 "warnings": [str]}"""


def build_reconciliation_prompt(
    currency: str,
    threshold: float,
    computed: list[dict[str, Any]],
) -> list[dict[str, str]]:
    """
    Build the reconciliation narrative prompt.

    Args:
        currency: Target currency of every total
        threshold: Variance threshold as a fraction
        computed: Deterministic per-provider rows with coverage details

    Returns:
        List of message dicts for the chat API
    """
    user_prompt = (
        f'Currency: {currency}\n'
        f'Variance threshold: {threshold:.2%}\n\n'
        f'COMPUTED COMPARISON:\n{json.dumps(computed, ensure_ascii=False, indent=1)}'
    )
    return [
        {'role': 'system', 'content': RECONCILIATION_SYSTEM_PROMPT},
        {'role': 'user', 'content': user_prompt},
    ]

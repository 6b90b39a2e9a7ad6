"""
Provider-side models: the raw quote as received and the standardized
benefit map extracted from it.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .legal import QuoteType


class ProviderQuote(BaseModel):
    """A third-party quote, carried as an opaque JSON document plus headline numbers."""

    provider: str = Field(..., min_length=1)
    base_cost: float = Field(..., ge=0, description='Monthly base salary quoted by the provider.')
    monthly_total: float = Field(..., ge=0, description='Monthly employer total quoted by the provider.')
    currency: str
    country: str
    quote_type: QuoteType = QuoteType.ALL_INCLUSIVE
    breakdown: dict[str, Any] | None = None
    original_response: Any = None


class BenefitEntry(BaseModel):
    """One benefit a provider already bills for, normalized to a monthly amount."""

    model_config = ConfigDict(frozen=True)

    amount: float = Field(..., ge=0)
    frequency: str = 'monthly'
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    description: str | None = None


class StandardizedBenefitMap(BaseModel):
    """
    What a provider's quote already includes.

    Produced once per raw quote and never mutated; cached by provider plus
    quote identity.
    """

    model_config = ConfigDict(frozen=True)

    provider: str
    base_salary: float = Field(..., ge=0)
    currency: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    monthly_total: float = Field(..., ge=0)
    included_benefits: dict[str, BenefitEntry] = Field(default_factory=dict)
    total_monthly_benefits: float = Field(default=0.0, ge=0)
    extraction_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    extracted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    warnings: tuple[str, ...] = ()

    def covered_amount(self, key: str) -> float:
        entry = self.included_benefits.get(key)
        return entry.amount if entry else 0.0

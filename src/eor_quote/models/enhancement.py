"""
Enhancement set models: the monthly gap between what the law requires and
what a provider's quote already covers.
"""

from typing import Any

from pydantic import BaseModel, Field, model_validator

from ..money import round_half_up
from .legal import QuoteType


class EnhancementItem(BaseModel):
    """
    One missing (or already covered) legal cost.

    An item marked ``already_included`` never carries a monthly amount.
    """

    monthly_amount: float = Field(default=0.0, ge=0)
    explanation: str = ''
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    already_included: bool = False
    mandatory: bool | None = None
    yearly_amount: float | None = None
    total_amount: float | None = None
    source: str = 'deterministic'

    @model_validator(mode='after')
    def _zero_when_included(self) -> 'EnhancementItem':
        if self.already_included:
            self.monthly_amount = 0.0
            if self.yearly_amount is not None:
                self.yearly_amount = 0.0
        self.monthly_amount = round_half_up(self.monthly_amount)
        return self


class EnhancementTotals(BaseModel):
    total_monthly_enhancement: float = 0.0
    total_yearly_enhancement: float = 0.0
    final_monthly_total: float = 0.0


class OverlapAnalysis(BaseModel):
    """Narrative coverage analysis kept from the generative pass."""

    provider_coverage: list[str] = Field(default_factory=list)
    missing_requirements: list[str] = Field(default_factory=list)
    double_counting_risks: list[str] = Field(default_factory=list)


class EnhancementSet(BaseModel):
    """
    A provider's enhancement items plus derived totals.

    ``additional_contributions`` holds local-office costs reported outside
    the primary keys. It only exists on raw sets: the deduplication pass
    either drops each entry as a duplicate or promotes it to a primary item.
    """

    provider: str
    country_code: str
    currency: str
    quote_type: QuoteType = QuoteType.ALL_INCLUSIVE
    base_monthly_total: float = Field(..., ge=0)
    items: dict[str, EnhancementItem] = Field(default_factory=dict)
    additional_contributions: dict[str, float] = Field(default_factory=dict)
    totals: EnhancementTotals = Field(default_factory=EnhancementTotals)
    overlap: OverlapAnalysis = Field(default_factory=OverlapAnalysis)
    recommendations: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    strategy: str = 'deterministic'

    def recompute_totals(self) -> 'EnhancementSet':
        """Derive totals from the items, in place."""
        monthly = round_half_up(
            sum(i.monthly_amount for i in self.items.values() if not i.already_included)
        )
        self.totals = EnhancementTotals(
            total_monthly_enhancement=monthly,
            total_yearly_enhancement=round_half_up(monthly * 12),
            final_monthly_total=round_half_up(self.base_monthly_total + monthly),
        )
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return self.model_dump(mode='json')

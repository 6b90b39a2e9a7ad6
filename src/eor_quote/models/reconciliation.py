"""
Reconciliation models: normalized per-provider candidates in, ranked
variance analysis and a winner out.
"""

from typing import Any

from pydantic import BaseModel, Field

from .legal import QuoteType


class Coverage(BaseModel):
    includes: list[str] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)
    double_counting_risk: list[str] = Field(default_factory=list)


class ReconciliationCandidate(BaseModel):
    """A provider's final monthly total, already in the target currency."""

    provider: str
    normalized_monthly_total: float = Field(..., ge=0)
    original_monthly_total: float = Field(..., ge=0)
    original_currency: str
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    coverage: Coverage = Field(default_factory=Coverage)
    quote_type: QuoteType = QuoteType.ALL_INCLUSIVE


class ReconciliationSettings(BaseModel):
    currency: str = 'USD'
    threshold: float = Field(default=0.04, ge=0.0)
    risk_mode: bool = False


class ReconciliationItem(BaseModel):
    provider: str
    total: float
    delta: float
    pct: float
    within_band: bool
    confidence: float = 0.5
    critical_missing: list[str] = Field(default_factory=list)
    risk_adjusted_total: float | None = None
    notes: list[str] = Field(default_factory=list)


class ReconciliationSummary(BaseModel):
    cheapest: str | None = None
    most_expensive: str | None = None
    average: float = 0.0
    median: float = 0.0
    std_dev: float = 0.0
    within_band_count: int = 0


class ExcludedProvider(BaseModel):
    provider: str
    reason: str


class ReconciliationResult(BaseModel):
    """Variance analysis across providers, sorted cheapest first."""

    settings: ReconciliationSettings
    items: list[ReconciliationItem] = Field(default_factory=list)
    summary: ReconciliationSummary = Field(default_factory=ReconciliationSummary)
    winner: str | None = None
    recommendations: list[str] = Field(default_factory=list)
    excluded: list[ExcludedProvider] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    engine: str = 'local-only'

    def item(self, provider: str) -> ReconciliationItem | None:
        return next((i for i in self.items if i.provider == provider), None)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return self.model_dump(mode='json')

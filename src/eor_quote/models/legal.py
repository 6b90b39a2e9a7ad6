"""
Legal cost profile models.

A LegalCostProfile is the normalized monthly cost breakdown a country's
legal and customary payroll rules imply for one worker. Subtotals and the
monthly total are always derived from the items (see ``recompute``), so the
per-category sums and the grand total can never drift apart.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ..money import parse_amount, round_half_up

ITEM_TOLERANCE = 0.01


class QuoteType(str, Enum):
    """How much of the legal profile a quote must cover."""

    ALL_INCLUSIVE = 'all-inclusive'
    STATUTORY_ONLY = 'statutory-only'


class LegalCategory(str, Enum):
    """The four cost categories a legal item may belong to."""

    CONTRIBUTIONS = 'contributions'
    BONUSES = 'bonuses'
    ALLOWANCES = 'allowances'
    TERMINATION = 'termination'


class EmploymentParameters(BaseModel):
    """Per-request employment inputs."""

    country_code: str = Field(..., min_length=2, max_length=3)
    base_salary_monthly: float = Field(..., ge=0)
    contract_months: int = Field(default=12, ge=1)
    quote_type: QuoteType = QuoteType.ALL_INCLUSIVE
    employment_type: str = 'full-time'
    currency: str | None = None

    @field_validator('country_code')
    @classmethod
    def _upper_country(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def statutory_only(self) -> bool:
        return self.quote_type == QuoteType.STATUTORY_ONLY


class ProfileMeta(BaseModel):
    country_code: str
    country: str | None = None
    currency: str
    base_salary_monthly: float
    contract_months: int = Field(default=12, ge=1)
    quote_type: QuoteType = QuoteType.ALL_INCLUSIVE


class LegalItem(BaseModel):
    """A single monthly cost line of the legal profile."""

    key: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    category: LegalCategory
    mandatory: bool = False
    monthly_amount_local: float = Field(..., ge=0)
    formula: str | None = None
    variables: dict[str, Any] | None = None
    source: str | None = None
    notes: str | None = None

    @field_validator('monthly_amount_local', mode='before')
    @classmethod
    def _coerce_amount(cls, v: Any) -> Any:
        if isinstance(v, str):
            parsed = parse_amount(v)
            return parsed if parsed is not None else v
        return v

    @field_validator('monthly_amount_local')
    @classmethod
    def _round_amount(cls, v: float) -> float:
        return round_half_up(v)


class LegalCostProfile(BaseModel):
    """Normalized monthly legal cost breakdown for one country and salary."""

    meta: ProfileMeta
    availability_flags: dict[str, bool] = Field(default_factory=dict)
    items: list[LegalItem] = Field(default_factory=list)
    subtotals: dict[str, float] = Field(default_factory=dict)
    total_monthly: float = 0.0
    warnings: list[str] = Field(default_factory=list)

    def recompute(self) -> 'LegalCostProfile':
        """Derive subtotals and total from the items, in place."""
        subtotals = {category.value: 0.0 for category in LegalCategory}
        for item in self.items:
            subtotals[item.category.value] += item.monthly_amount_local
        self.subtotals = {k: round_half_up(v) for k, v in subtotals.items()}
        self.total_monthly = round_half_up(sum(self.subtotals.values()))
        return self

    def is_consistent(self) -> bool:
        """Check the subtotal and total invariants within rounding tolerance."""
        tolerance = ITEM_TOLERANCE * max(1, len(self.items))
        for category in LegalCategory:
            expected = sum(
                i.monthly_amount_local for i in self.items if i.category == category
            )
            if abs(self.subtotals.get(category.value, 0.0) - expected) > tolerance:
                return False
        return abs(sum(self.subtotals.values()) - self.total_monthly) <= tolerance

    def item(self, key: str) -> LegalItem | None:
        return next((i for i in self.items if i.key == key), None)

    def items_in(self, category: LegalCategory) -> list[LegalItem]:
        return [i for i in self.items if i.category == category]

"""
Acid-test models: cost buckets, projection over the contract term, and the
profitability verdict.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class CostBucket(str, Enum):
    """The five disjoint buckets every cost item lands in."""

    BASE_SALARY = 'baseSalary'
    STATUTORY_MANDATORY = 'statutoryMandatory'
    ALLOWANCES_BENEFITS = 'allowancesBenefits'
    TERMINATION_COSTS = 'terminationCosts'
    ONE_TIME_FEES = 'oneTimeFees'


class CostItem(BaseModel):
    """
    A monthly cost line of the winning quote.

    For one-time fees ``monthly_amount`` holds the full fee.
    """

    key: str
    name: str
    monthly_amount: float = Field(..., ge=0)


class CostBuckets(BaseModel):
    """Item key to amount, per bucket. Every item appears in exactly one bucket."""

    base_salary: dict[str, float] = Field(default_factory=dict)
    statutory_mandatory: dict[str, float] = Field(default_factory=dict)
    allowances_benefits: dict[str, float] = Field(default_factory=dict)
    termination_costs: dict[str, float] = Field(default_factory=dict)
    one_time_fees: dict[str, float] = Field(default_factory=dict)

    def bucket(self, bucket: CostBucket) -> dict[str, float]:
        return {
            CostBucket.BASE_SALARY: self.base_salary,
            CostBucket.STATUTORY_MANDATORY: self.statutory_mandatory,
            CostBucket.ALLOWANCES_BENEFITS: self.allowances_benefits,
            CostBucket.TERMINATION_COSTS: self.termination_costs,
            CostBucket.ONE_TIME_FEES: self.one_time_fees,
        }[bucket]

    def total(self, bucket: CostBucket) -> float:
        return sum(self.bucket(bucket).values())

    def all_keys(self) -> list[str]:
        keys: list[str] = []
        for bucket in CostBucket:
            keys.extend(self.bucket(bucket).keys())
        return keys


class AcidTestRequest(BaseModel):
    provider: str
    country: str
    currency: str
    cost_items: list[CostItem]
    bill_rate_monthly: float = Field(..., ge=0)
    contract_months: int = Field(..., ge=1)
    reference_currency: str | None = None
    min_profit_threshold: float | None = None


class AcidTestProjection(BaseModel):
    recurring_monthly: float
    recurring_total: float
    one_time_total: float
    total_cost: float
    revenue_total: float
    profit_local: float
    margin_monthly: float
    margin_total: float


class AcidTestResult(BaseModel):
    """Profitability verdict for one provider over the contract term."""

    provider: str
    currency: str
    contract_months: int
    bill_rate_monthly: float
    buckets: CostBuckets
    categorization_method: str = 'model'
    projection: AcidTestProjection
    reference_currency: str
    revenue_reference: float | None = None
    cost_reference: float | None = None
    profit_reference: float | None = None
    min_profit_threshold: float
    meets_positive: bool
    meets_minimum: bool | None = None
    warnings: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return self.model_dump(mode='json')

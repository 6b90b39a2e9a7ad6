"""
Quote request: everything one pipeline run needs.
"""

from pydantic import BaseModel, Field

from .benefits import ProviderQuote
from .legal import EmploymentParameters
from .reconciliation import ReconciliationSettings


class QuoteRequest(BaseModel):
    """
    One end-to-end run: a country and salary, the provider quotes to compare,
    and optionally a client bill rate for the acid test.
    """

    params: EmploymentParameters
    quotes: list[ProviderQuote] = Field(default_factory=list)
    inactive_providers: list[str] = Field(default_factory=list)
    local_office_costs: dict[str, float] = Field(default_factory=dict)
    reconciliation: ReconciliationSettings = Field(default_factory=ReconciliationSettings)
    bill_rate_monthly: float | None = Field(default=None, ge=0)
    bill_rate_currency: str | None = None
    one_time_fees: dict[str, float] = Field(default_factory=dict)
    session_id: str | None = None
    trace_id: str | None = None

"""
Acid-test cost categorization prompts and response models.
"""

import json

from pydantic import BaseModel, ConfigDict, Field

from ..models.acid_test import CostBucket, CostItem

CATEGORIZATION_REQUIRED_KEYS = tuple(b.value for b in CostBucket)


class CategorizationResponse(BaseModel):
    """Five buckets of item key to monthly amount, using the wire (camelCase) names."""

    model_config = ConfigDict(populate_by_name=True)

    base_salary: dict[str, float] = Field(default_factory=dict, alias='baseSalary')
    statutory_mandatory: dict[str, float] = Field(default_factory=dict, alias='statutoryMandatory')
    allowances_benefits: dict[str, float] = Field(default_factory=dict, alias='allowancesBenefits')
    termination_costs: dict[str, float] = Field(default_factory=dict, alias='terminationCosts')
    one_time_fees: dict[str, float] = Field(default_factory=dict, alias='oneTimeFees')


CATEGORIZATION_SYSTEM_PROMPT = """You sort employment cost items into exactly five buckets:
- baseSalary: the worker's base salary only
- statutoryMandatory: employer contributions, social security, payroll taxes, mandatory insurance, 13th and 14th salaries and other legally required pay
- allowancesBenefits: allowances, meal vouchers, transport, remote work, optional insurance and perks
- terminationCosts: severance, notice and termination provisions
- oneTimeFees: setup, onboarding, background checks and other non-recurring fees

Every input key must appear in exactly one bucket with its original amount. Do not add, rename or drop keys.

Return ONE JSON object with exactly the keys baseSalary, statutoryMandatory, allowancesBenefits, terminationCosts, oneTimeFees, each mapping item key to amount."""


def build_categorization_prompt(
    provider: str,
    country: str,
    currency: str,
    items: list[CostItem],
) -> list[dict[str, str]]:
    """Build the categorization prompt messages."""
    payload = {
        'provider': provider,
        'country': country,
        'currency': currency,
        'costItems': [
            {'key': i.key, 'name': i.name, 'monthlyAmount': i.monthly_amount} for i in items
        ],
    }
    return [
        {'role': 'system', 'content': CATEGORIZATION_SYSTEM_PROMPT},
        {'role': 'user', 'content': json.dumps(payload, ensure_ascii=False)},
    ]

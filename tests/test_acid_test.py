"""
Tests for the acid-test profitability calculator.

Tests cover:
- Keyword categorization rules
- Model categorization with amounts taken from the input and keyword fill-in
- Projection over the contract term
- Reference-currency verdict and conversion failures
- Cost item assembly from a quote and its enhancement set

Run with: pytest tests/test_acid_test.py -v
"""

import json

import pytest

from eor_quote.errors import ModelTimeoutError
from eor_quote.models.acid_test import AcidTestRequest, CostBucket, CostBuckets, CostItem
from eor_quote.models.benefits import BenefitEntry, StandardizedBenefitMap
from eor_quote.models.enhancement import EnhancementItem, EnhancementSet
from eor_quote.normalization import (
    EMPLOYER_CONTRIBUTIONS_TOTAL,
    MEAL_VOUCHERS,
    THIRTEENTH_SALARY,
    VACATION_BONUS,
)
from eor_quote.pipeline.acid_test import (
    OTHER_PROVIDER_COSTS_KEY,
    AcidTestCalculator,
    build_cost_items,
    categorize_by_keywords,
    keyword_bucket,
    project,
)


ITEMS = [
    CostItem(key='base_salary', name='Base salary', monthly_amount=3000),
    CostItem(key='employer_contributions_total', name='Employer contributions', monthly_amount=600),
    CostItem(key='meal_vouchers', name='Meal vouchers', monthly_amount=150),
    CostItem(key='severance_provision', name='Termination provision', monthly_amount=50),
    CostItem(key='one_time_setup', name='setup setup fee', monthly_amount=200),
]


def _request(**overrides) -> AcidTestRequest:
    fields = {
        'provider': 'deel',
        'country': 'BR',
        'currency': 'USD',
        'cost_items': ITEMS,
        'bill_rate_monthly': 5000,
        'contract_months': 6,
    }
    fields.update(overrides)
    return AcidTestRequest(**fields)


def _categorization(**buckets) -> str:
    body = {b.value: {} for b in CostBucket}
    body.update(buckets)
    return json.dumps(body)


# =============================================================================
# Categorization
# =============================================================================


class TestKeywordCategorization:
    @pytest.mark.parametrize('key,name,expected', [
        ('base_salary', 'Base salary', CostBucket.BASE_SALARY),
        ('inss', 'INSS employer', CostBucket.STATUTORY_MANDATORY),
        ('meal_vouchers', 'Meal vouchers', CostBucket.ALLOWANCES_BENEFITS),
        ('remote', 'Home office allowance', CostBucket.ALLOWANCES_BENEFITS),
        ('severance_provision', 'Termination provision', CostBucket.TERMINATION_COSTS),
        ('onboarding', 'Onboarding fee', CostBucket.ONE_TIME_FEES),
        ('thirteenth_salary', '13th salary', CostBucket.STATUTORY_MANDATORY),
    ])
    def test_keyword_bucket(self, key, name, expected):
        assert keyword_bucket(CostItem(key=key, name=name, monthly_amount=1)) == expected

    def test_every_item_in_exactly_one_bucket(self):
        buckets = categorize_by_keywords(ITEMS)

        assert sorted(buckets.all_keys()) == sorted(i.key for i in ITEMS)
        assert buckets.base_salary == {'base_salary': 3000}
        assert buckets.one_time_fees == {'one_time_setup': 200}


class TestModelCategorization:
    @pytest.mark.asyncio
    async def test_model_assignment_with_input_amounts(self, mock_openai):
        mock_openai.complete_json.return_value = _categorization(
            baseSalary={'base_salary': 3000},
            statutoryMandatory={'employer_contributions_total': 999, 'base_salary': 3000},
            allowancesBenefits={'meal_vouchers': 150, 'ghost': 10},
            terminationCosts={'severance_provision': 50},
            oneTimeFees={'one_time_setup': 200},
        )

        buckets, method, warnings = await AcidTestCalculator(mock_openai).categorize(_request())

        assert method == 'model'
        assert warnings == []
        assert buckets.statutory_mandatory == {'employer_contributions_total': 600}
        assert buckets.base_salary == {'base_salary': 3000}
        assert 'ghost' not in buckets.all_keys()
        assert len(buckets.all_keys()) == len(ITEMS)

    @pytest.mark.asyncio
    async def test_unplaced_items_use_keywords(self, mock_openai):
        mock_openai.complete_json.return_value = _categorization(
            baseSalary={'base_salary': 3000},
            statutoryMandatory={'employer_contributions_total': 600},
        )

        buckets, method, warnings = await AcidTestCalculator(mock_openai).categorize(_request())

        assert method == 'model+keyword'
        assert buckets.one_time_fees == {'one_time_setup': 200}
        assert buckets.termination_costs == {'severance_provision': 50}
        assert any('not categorized by the model' in w for w in warnings)

    @pytest.mark.asyncio
    async def test_nothing_recognized(self, mock_openai):
        mock_openai.complete_json.return_value = _categorization()

        buckets, method, warnings = await AcidTestCalculator(mock_openai).categorize(_request())

        assert method == 'keyword'
        assert buckets == categorize_by_keywords(ITEMS)
        assert any('no recognized items' in w for w in warnings)

    @pytest.mark.asyncio
    async def test_missing_bucket_key_falls_back(self, mock_openai):
        mock_openai.complete_json.return_value = json.dumps({'baseSalary': {'base_salary': 3000}})

        _, method, warnings = await AcidTestCalculator(mock_openai).categorize(_request())

        assert method == 'keyword'
        assert any('Cost categorization failed' in w for w in warnings)

    @pytest.mark.asyncio
    async def test_model_error_falls_back(self, mock_openai):
        mock_openai.complete_json.side_effect = ModelTimeoutError('Model call timed out')

        buckets, method, _ = await AcidTestCalculator(mock_openai).categorize(_request())

        assert method == 'keyword'
        assert buckets.allowances_benefits == {'meal_vouchers': 150}


# =============================================================================
# Projection and verdict
# =============================================================================


class TestProjection:
    def test_six_month_engagement(self):
        projection = project(categorize_by_keywords(ITEMS), bill_rate_monthly=5000, months=6)

        assert projection.recurring_monthly == 3800
        assert projection.recurring_total == 22800
        assert projection.one_time_total == 200
        assert projection.total_cost == 23000
        assert projection.revenue_total == 30000
        assert projection.profit_local == 7000
        assert projection.margin_monthly == 1200
        assert projection.margin_total == 7000

    def test_empty_buckets(self):
        projection = project(CostBuckets(), bill_rate_monthly=100, months=3)

        assert projection.total_cost == 0
        assert projection.profit_local == 300


class TestAcidTestRun:
    @pytest.mark.asyncio
    async def test_same_currency(self):
        result = await AcidTestCalculator(reference_currency='USD', min_profit_threshold=1000).run(_request())

        assert result.categorization_method == 'keyword'
        assert result.revenue_reference == 30000
        assert result.cost_reference == 23000
        assert result.profit_reference == 7000
        assert result.meets_positive is True
        assert result.meets_minimum is True

    @pytest.mark.asyncio
    async def test_converted_to_reference_currency(self, currency):
        calculator = AcidTestCalculator(currency_normalizer=currency, reference_currency='USD', min_profit_threshold=1000)

        result = await calculator.run(_request(currency='BRL'))

        assert result.revenue_reference == 6000
        assert result.cost_reference == 4600
        assert result.profit_reference == 1400
        assert result.meets_minimum is True

    @pytest.mark.asyncio
    async def test_request_threshold_overrides_default(self, currency):
        calculator = AcidTestCalculator(currency_normalizer=currency, reference_currency='USD', min_profit_threshold=1000)

        result = await calculator.run(_request(currency='BRL', min_profit_threshold=2000))

        assert result.min_profit_threshold == 2000
        assert result.meets_positive is True
        assert result.meets_minimum is False

    @pytest.mark.asyncio
    async def test_conversion_failure_is_a_warning(self, currency):
        calculator = AcidTestCalculator(currency_normalizer=currency, reference_currency='USD', min_profit_threshold=1000)

        result = await calculator.run(_request(currency='XYZ'))

        assert result.profit_reference is None
        assert result.meets_minimum is None
        assert result.meets_positive is True
        assert len(result.warnings) == 2
        assert all('XYZ' in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_unprofitable(self):
        result = await AcidTestCalculator(reference_currency='USD', min_profit_threshold=1000).run(
            _request(bill_rate_monthly=3500),
        )

        assert result.projection.profit_local == -2000
        assert result.meets_positive is False
        assert result.meets_minimum is False


# =============================================================================
# Cost items
# =============================================================================


class TestBuildCostItems:
    def test_quote_plus_enhancement(self):
        benefit_map = StandardizedBenefitMap(
            provider='deel',
            base_salary=10000,
            currency='BRL',
            country='BR',
            monthly_total=14000,
            included_benefits={
                EMPLOYER_CONTRIBUTIONS_TOTAL: BenefitEntry(amount=2000, description='Social security (INSS)'),
                THIRTEENTH_SALARY: BenefitEntry(amount=833.33),
                MEAL_VOUCHERS: BenefitEntry(amount=300),
            },
        )
        enhancement = EnhancementSet(
            provider='deel',
            country_code='BR',
            currency='BRL',
            base_monthly_total=14000,
            items={
                EMPLOYER_CONTRIBUTIONS_TOTAL: EnhancementItem(monthly_amount=1580),
                THIRTEENTH_SALARY: EnhancementItem(monthly_amount=833.33, already_included=True),
                MEAL_VOUCHERS: EnhancementItem(monthly_amount=300),
                VACATION_BONUS: EnhancementItem(monthly_amount=277.75),
            },
        )

        items = {i.key: i for i in build_cost_items(benefit_map, enhancement, {'setup': 500})}

        assert items['base_salary'].monthly_amount == 10000
        assert items[EMPLOYER_CONTRIBUTIONS_TOTAL].monthly_amount == 3580
        assert items[EMPLOYER_CONTRIBUTIONS_TOTAL].name == 'Social security (INSS)'
        assert items[THIRTEENTH_SALARY].monthly_amount == 833.33
        assert items[MEAL_VOUCHERS].monthly_amount == 600
        assert items[VACATION_BONUS].monthly_amount == 277.75
        assert items[OTHER_PROVIDER_COSTS_KEY].monthly_amount == 866.67
        assert items['one_time_setup'].monthly_amount == 500
        assert keyword_bucket(items['one_time_setup']) == CostBucket.ONE_TIME_FEES

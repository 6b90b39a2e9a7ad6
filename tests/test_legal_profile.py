"""
Tests for legal cost profile assembly.

Tests cover:
- Deterministic profile from the Brazil reference hints
- Termination provision formula and its precedence over model output
- Tolerant coercion of model items (strings, ranges, yearly amounts, unknown categories)
- Statutory-only filtering and subtotal/total consistency
- Fallback when the model is unavailable, fatal error when it answers garbage

Run with: pytest tests/test_legal_profile.py -v

No API keys required: the model client is mocked.
"""

import json

import pytest

from eor_quote.errors import ModelTimeoutError, ProfileAssemblyError, ReferenceDataMissingError
from eor_quote.models.legal import (
    EmploymentParameters,
    LegalCategory,
    LegalCostProfile,
    LegalItem,
    ProfileMeta,
    QuoteType,
)
from eor_quote.normalization import SEVERANCE_PROVISION, THIRTEENTH_SALARY, VACATION_BONUS
from eor_quote.pipeline.legal_profile import (
    LegalProfileAssembler,
    prepare_profile_payload,
    termination_monthly_provision,
)


MODEL_PROFILE = {
    'legal_profile': {
        'meta': {'country_code': 'BR', 'currency': 'BRL'},
        'items': [
            {'key': 'INSS', 'name': 'INSS social security', 'category': 'social_security',
             'mandatory': 'yes', 'monthly_amount_local': '2,000.00'},
            {'key': 'thirteenth_salary', 'name': '13th salary', 'category': 'bonuses',
             'mandatory': True, 'monthly_amount_local': 10000, 'frequency': 'yearly'},
            {'key': 'base_salary', 'name': 'Base salary', 'category': 'allowances',
             'mandatory': True, 'monthly_amount_local': 10000},
            {'key': 'severance', 'name': 'Severance', 'category': 'termination',
             'mandatory': True, 'monthly_amount_local': 99999},
            {'key': 'meal_vouchers', 'name': 'Meal vouchers', 'category': 'benefits',
             'mandatory': False, 'monthly_amount_local': '500-700'},
            {'key': 'gym', 'name': 'Gym', 'category': 'allowances', 'mandatory': False},
        ],
        'total_monthly_local': 1,
    },
}


def _model_text() -> str:
    return 'Here is the profile:\n```json\n' + json.dumps(MODEL_PROFILE) + '\n```'


# =============================================================================
# Formulas and models
# =============================================================================


class TestTerminationProvision:
    def test_formula(self):
        # ((30 / 30) + 1) x 10000 / 12
        assert termination_monthly_provision(30, 1, 10000, 12) == 1666.67

    def test_short_contract_spreads_liability_over_fewer_months(self):
        assert termination_monthly_provision(30, 1, 10000, 6) == 3333.33

    def test_contract_months_floor_of_one(self):
        assert termination_monthly_provision(15, 0, 3000, 0) == 1500.0


class TestProfileConsistency:
    def _profile(self) -> LegalCostProfile:
        return LegalCostProfile(
            meta=ProfileMeta(country_code='BR', currency='BRL', base_salary_monthly=1000),
            items=[
                LegalItem(key='a', name='A', category=LegalCategory.CONTRIBUTIONS, monthly_amount_local=100.004),
                LegalItem(key='b', name='B', category=LegalCategory.CONTRIBUTIONS, monthly_amount_local=50),
                LegalItem(key='c', name='C', category=LegalCategory.BONUSES, monthly_amount_local=83.33),
            ],
        )

    def test_recompute_derives_subtotals_and_total(self):
        profile = self._profile().recompute()

        assert profile.subtotals == {'contributions': 150.0, 'bonuses': 83.33, 'allowances': 0.0, 'termination': 0.0}
        assert profile.total_monthly == 233.33
        assert profile.is_consistent()

    def test_tampered_total_is_inconsistent(self):
        profile = self._profile().recompute()
        profile.total_monthly = 300

        assert not profile.is_consistent()

    def test_item_amount_strings_are_coerced(self):
        item = LegalItem(key='x', name='X', category=LegalCategory.ALLOWANCES, monthly_amount_local='~ 1,234.567')
        assert item.monthly_amount_local == 1234.57


class TestPreparePayload:
    def test_items_as_mapping(self):
        body = prepare_profile_payload({'items': {'meal': {'name': 'Meal', 'amount': '300', 'category': 'x'}}})

        assert body['items'][0]['key'] == 'meal'
        assert body['items'][0]['monthly_amount_local'] == 300.0
        assert body['items'][0]['category'] == 'allowances'

    def test_variables_flattened(self):
        body = prepare_profile_payload({'items': [{
            'key': 'inss', 'amount': 10,
            'variables': {'rate': [20, 22], 'notes': ['a', 'b'], 'nested': {'x': 1}},
        }]})

        variables = body['items'][0]['variables']
        assert variables['rate'] == 21
        assert variables['notes'] == 'a | b'
        assert variables['nested'] == '{"x": 1}'

    def test_negative_amounts_clamped(self):
        body = prepare_profile_payload({'items': [{'key': 'x', 'amount': -5}]})
        assert body['items'][0]['monthly_amount_local'] == 0.0


# =============================================================================
# Assembler
# =============================================================================


class TestDeterministicProfile:
    @pytest.mark.asyncio
    async def test_brazil_profile(self, reference_store, br_params):
        profile = await LegalProfileAssembler(reference_store).assemble(br_params)

        assert profile.meta.currency == 'BRL'
        assert profile.meta.country == 'Brazil'
        assert profile.subtotals == {
            'contributions': 3580.0,
            'bonuses': 1111.08,
            'allowances': 850.0,
            'termination': 1666.67,
        }
        assert profile.total_monthly == 7207.75
        assert profile.is_consistent()
        assert profile.item(THIRTEENTH_SALARY).monthly_amount_local == 833.33
        assert profile.item(VACATION_BONUS).monthly_amount_local == 277.75
        assert profile.item(SEVERANCE_PROVISION).variables == {
            'notice_days': 30, 'severance_months': 1.0, 'contract_months': 12,
        }

    @pytest.mark.asyncio
    async def test_statutory_only_drops_non_mandatory(self, reference_store):
        params = EmploymentParameters(
            country_code='br', base_salary_monthly=10000, quote_type=QuoteType.STATUTORY_ONLY,
        )

        profile = await LegalProfileAssembler(reference_store).assemble(params)

        assert all(item.mandatory for item in profile.items)
        assert profile.item('meal_vouchers') is None
        assert profile.total_monthly == 6607.75
        assert any('Statutory-only' in w for w in profile.warnings)

    @pytest.mark.asyncio
    async def test_currency_override(self, reference_store):
        params = EmploymentParameters(country_code='BR', base_salary_monthly=2000, currency='USD')

        profile = await LegalProfileAssembler(reference_store).assemble(params)

        assert profile.meta.currency == 'USD'

    @pytest.mark.asyncio
    async def test_missing_reference_data(self, reference_store):
        params = EmploymentParameters(country_code='ZZ', base_salary_monthly=1000)

        with pytest.raises(ReferenceDataMissingError) as exc_info:
            await LegalProfileAssembler(reference_store).assemble(params)
        assert exc_info.value.stage == 'legal_profile'


class TestModelProfile:
    @pytest.mark.asyncio
    async def test_model_items_coerced_and_termination_enforced(self, reference_store, br_params, mock_openai):
        mock_openai.complete_json.return_value = _model_text()

        profile = await LegalProfileAssembler(reference_store, mock_openai).assemble(br_params)

        keys = [i.key for i in profile.items]
        assert 'base_salary' not in keys
        assert 'gym' not in keys
        assert profile.item('inss').category == LegalCategory.CONTRIBUTIONS
        assert profile.item('inss').mandatory is True
        assert profile.item(THIRTEENTH_SALARY).monthly_amount_local == 833.33
        assert profile.item('meal_vouchers').monthly_amount_local == 600.0
        # The model's termination line is replaced by the deterministic provision
        assert profile.item(SEVERANCE_PROVISION).monthly_amount_local == 1666.67
        assert 'severance' not in keys
        assert profile.total_monthly == 5100.0
        assert profile.is_consistent()
        assert any('item sum used' in w for w in profile.warnings)

    @pytest.mark.asyncio
    async def test_prompt_carries_only_present_sections(self, reference_store, br_params, mock_openai):
        mock_openai.complete_json.return_value = _model_text()

        await LegalProfileAssembler(reference_store, mock_openai).assemble(br_params)

        messages = mock_openai.complete_json.call_args.args[0]
        user = messages[1]['content']
        assert '[EMPLOYER_CONTRIBUTIONS]' in user
        assert '[AUTHORITY_PAYMENTS]' not in user
        assert mock_openai.complete_json.call_args.kwargs['context']['stage'] == 'legal_profile'

    @pytest.mark.asyncio
    async def test_statutory_only_filters_model_items(self, reference_store, mock_openai):
        mock_openai.complete_json.return_value = _model_text()
        params = EmploymentParameters(
            country_code='BR', base_salary_monthly=10000, quote_type=QuoteType.STATUTORY_ONLY,
        )

        profile = await LegalProfileAssembler(reference_store, mock_openai).assemble(params)

        assert all(item.mandatory for item in profile.items)
        assert profile.total_monthly == 4500.0

    @pytest.mark.asyncio
    async def test_model_unavailable_falls_back(self, reference_store, br_params, mock_openai):
        mock_openai.complete_json.side_effect = ModelTimeoutError('Model call timed out')

        profile = await LegalProfileAssembler(reference_store, mock_openai).assemble(br_params)

        assert profile.total_monthly == 7207.75
        assert any('deterministic fallback' in w for w in profile.warnings)

    @pytest.mark.asyncio
    async def test_unparseable_answer_is_fatal(self, reference_store, br_params, mock_openai):
        mock_openai.complete_json.return_value = 'I am unable to produce a profile for Brazil.'

        with pytest.raises(ProfileAssemblyError) as exc_info:
            await LegalProfileAssembler(reference_store, mock_openai).assemble(br_params)
        assert exc_info.value.stage == 'legal_profile'

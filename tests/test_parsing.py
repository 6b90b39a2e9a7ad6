"""
Tests for tolerant model-output parsing, amount coercion and the benefit vocabulary.

Run with: pytest tests/test_parsing.py -v
"""

import pytest
from pydantic import BaseModel

from eor_quote.errors import SchemaValidationFailedError
from eor_quote.models.legal import LegalCategory
from eor_quote.money import parse_amount, round_half_up, to_monthly, within_tolerance
from eor_quote.normalization import (
    EMPLOYER_CONTRIBUTIONS_TOTAL,
    MEAL_VOUCHERS,
    THIRTEENTH_SALARY,
    VACATION_BONUS,
    canonical_key,
    is_contribution_like,
    normalize_key,
    remap_category,
)
from eor_quote.parsing import (
    decode_embedded_json,
    extract_json_candidates,
    parse_first_valid,
    scrub,
    unwrap,
)


class _Doc(BaseModel):
    items: list[int]


# =============================================================================
# Candidate enumeration
# =============================================================================


class TestCandidates:
    def test_fenced_block_with_prose(self):
        text = 'Here is the profile:\n```json\n{"items": [1, 2]}\n```\nLet me know.'
        assert {'items': [1, 2]} in extract_json_candidates(text)

    def test_top_level_array_of_one(self):
        assert extract_json_candidates('[{"items": [3]}]')[0] == {'items': [3]}

    def test_reasoning_blocks_are_removed(self):
        text = '<think>maybe {"items": ["x"]}</think>{"items": [4]}'
        assert extract_json_candidates(text) == [{'items': [4]}]

    def test_unclosed_reasoning_block_swallows_rest(self):
        assert scrub('{"items": [5]} <think> {"items": [6]}') == '{"items": [5]}'

    def test_balanced_spans_inside_prose(self):
        text = 'Result: {"items": [7], "note": "brace } in string"} done'
        candidates = extract_json_candidates(text)
        assert candidates[0] == {'items': [7], 'note': 'brace } in string'}

    def test_duplicates_dropped(self):
        text = '```json\n{"items": [1]}\n```'
        assert len(extract_json_candidates(text)) == 1

    def test_no_json(self):
        assert extract_json_candidates('I cannot help with that.') == []


class TestUnwrapAndDecode:
    def test_unwrap_container_keys(self):
        obj = {'result': {'profile': {'items': [1]}}}
        assert unwrap(obj, required_keys=('items',)) == {'items': [1]}

    def test_unwrap_single_key_object(self):
        obj = {'anything': {'items': [1]}}
        assert unwrap(obj, required_keys=('items',)) == {'items': [1]}

    def test_unwrap_returns_original_when_nothing_matches(self):
        obj = {'a': 1, 'b': 2}
        assert unwrap(obj, required_keys=('items',)) is obj

    def test_decode_string_encoded_objects(self):
        decoded = decode_embedded_json({'items': '[1, 2]', 'meta': '{"x": "1"}', 'name': 'plain'})
        assert decoded == {'items': [1, 2], 'meta': {'x': '1'}, 'name': 'plain'}


class TestParseFirstValid:
    def test_first_valid_candidate_wins(self):
        text = '{"items": ["not a number"]} and then {"items": [1, 2, 3]}'
        assert parse_first_valid(text, _Doc, required_keys=('items',)).items == [1, 2, 3]

    def test_prepare_hook_applied(self):
        text = '{"items": "1,2"}'
        result = parse_first_valid(
            text,
            _Doc,
            prepare=lambda body: {'items': [int(x) for x in str(body['items']).split(',')]},
        )
        assert result.items == [1, 2]

    def test_failure_collects_candidate_errors(self):
        with pytest.raises(SchemaValidationFailedError) as exc_info:
            parse_first_valid('{"other": 1} {"items": "x"}', _Doc, required_keys=('items',), context={'stage': 'test'})

        error = exc_info.value
        assert len(error.candidate_errors) == 2
        assert error.stage == 'test'
        assert error.context['candidates'] == 2


# =============================================================================
# Amounts
# =============================================================================


class TestMoney:
    def test_round_half_up(self):
        assert round_half_up(0.005) == 0.01
        assert round_half_up(2.675) == 2.68
        assert round_half_up(1666.665) == 1666.67
        assert round_half_up(0.12345, 4) == 0.1235

    @pytest.mark.parametrize('raw,expected', [
        (350, 350.0),
        ('~ 350 BRL', 350.0),
        ('20-50', 35.0),
        ('1,234.50', 1234.5),
        ('12,5', 12.5),
        ('EUR 1,000', 1000.0),
    ])
    def test_parse_amount(self, raw, expected):
        assert parse_amount(raw) == pytest.approx(expected)

    @pytest.mark.parametrize('raw', [None, True, '', 'n/a', {'amount': 1}])
    def test_parse_amount_nothing_numeric(self, raw):
        assert parse_amount(raw) is None

    def test_to_monthly(self):
        assert to_monthly(1200, 'yearly') == 100
        assert to_monthly(1200, 'annual') == 100
        assert to_monthly(10, 'per working day') == 220
        assert to_monthly(300, 'quarterly') == 100
        assert to_monthly(12, 'weekly') == pytest.approx(52)
        assert to_monthly(500, None) == 500

    def test_within_tolerance(self):
        assert within_tolerance(101, 100)
        assert not within_tolerance(101.5, 100)
        assert within_tolerance(0.01, 0)
        assert not within_tolerance(0.02, 0)


# =============================================================================
# Benefit vocabulary
# =============================================================================


class TestNormalization:
    def test_normalize_key(self):
        assert normalize_key('Vale-Refeição (meal)') == 'vale_refeicao_meal'
        assert normalize_key('mealVoucher') == 'meal_voucher'

    @pytest.mark.parametrize('name,expected', [
        ('Aguinaldo', THIRTEENTH_SALARY),
        ('13th month pay', THIRTEENTH_SALARY),
        ('Holiday allowance', VACATION_BONUS),
        ('Social Security', EMPLOYER_CONTRIBUTIONS_TOTAL),
        ('mealVoucher', MEAL_VOUCHERS),
        ('thirteenth_salary', THIRTEENTH_SALARY),
    ])
    def test_canonical_key(self, name, expected):
        assert canonical_key(name) == expected

    def test_canonical_key_unknown(self):
        assert canonical_key('office rent') is None
        assert canonical_key(None, '') is None

    def test_contribution_like(self):
        assert is_contribution_like('fgts_deposit')
        assert is_contribution_like('pension')
        assert not is_contribution_like('office_rent')
        assert not is_contribution_like('meal')

    def test_remap_category(self):
        assert remap_category('Termination') == LegalCategory.TERMINATION
        assert remap_category('benefits') == LegalCategory.ALLOWANCES
        assert remap_category('other', name='Pension fund') == LegalCategory.CONTRIBUTIONS
        assert remap_category(None, name='Christmas bonus') == LegalCategory.BONUSES
        assert remap_category('misc', name='Gym') == LegalCategory.ALLOWANCES

"""
Tests for the legal reference store and deterministic requirement hints.

Run with: pytest tests/test_requirements.py -v
"""

import json

import pytest

from eor_quote.errors import ReferenceDataMissingError
from eor_quote.normalization import MEAL_VOUCHERS, TRANSPORTATION_ALLOWANCE
from eor_quote.reference.requirements import (
    CONSERVATIVE_SEVERANCE_MONTHS,
    build_reference_excerpts,
    detect_mandatory_salary,
    extract_amount,
    extract_days,
    extract_legal_requirements,
    extract_months,
    extract_percentage,
    is_mandatory_benefit,
)
from eor_quote.reference.store import (
    AvailabilityFlags,
    CountryReference,
    InMemoryReferenceStore,
    JsonDirectoryReferenceStore,
    resolve_country_code,
)


# =============================================================================
# Store
# =============================================================================


class TestReferenceStore:
    def test_missing_country_raises(self, reference_store):
        with pytest.raises(ReferenceDataMissingError) as exc_info:
            reference_store.get_country('ZZ')
        assert exc_info.value.context['country_code'] == 'ZZ'

    def test_code_aliases(self):
        assert resolve_country_code(' uk ') == 'GB'
        assert resolve_country_code('br') == 'BR'

    def test_in_memory_lookup_is_case_insensitive(self, reference_store):
        assert reference_store.get_country('br').currency == 'BRL'
        assert reference_store.countries() == ['BR']

    def test_json_directory_store_reads_shipped_data(self, legal_data_dir):
        store = JsonDirectoryReferenceStore(legal_data_dir)

        reference = store.get_country('BR')

        assert reference.country_name == 'Brazil'
        assert 'BR' in store.countries()

    def test_json_directory_store_unwraps_results(self, tmp_path, br_reference):
        (tmp_path / 'BR.json').write_text(json.dumps({'results': [br_reference]}), encoding='utf-8')

        assert JsonDirectoryReferenceStore(tmp_path).get_country('BR').currency == 'BRL'

    def test_json_directory_store_unreadable_file(self, tmp_path):
        (tmp_path / 'MX.json').write_text('{not json', encoding='utf-8')

        with pytest.raises(ReferenceDataMissingError):
            JsonDirectoryReferenceStore(tmp_path).get_country('MX')

    def test_json_directory_store_missing_directory(self, tmp_path):
        store = JsonDirectoryReferenceStore(tmp_path / 'nowhere')

        assert store.countries() == []
        with pytest.raises(ReferenceDataMissingError):
            store.get_country('BR')


class TestAvailabilityFlags:
    def test_flags_from_brazil(self, br_reference):
        flags = AvailabilityFlags.from_data(br_reference['data'])

        assert flags.contribution_employer_contributions
        assert flags.payroll_13th_salary
        assert not flags.payroll_14th_salary
        assert flags.termination_notice_period
        assert flags.termination_severance_pay
        assert flags.common_benefits
        assert not flags.authority_payments
        assert flags.has_termination

    def test_blank_sections_are_absent(self):
        flags = AvailabilityFlags.from_data({'termination': {'notice_period': '  '}, 'common_benefits': []})

        assert not flags.termination_notice_period
        assert not flags.common_benefits
        assert not flags.has_termination

    def test_combined_13th_and_14th_section(self):
        flags = AvailabilityFlags.from_data({'payroll': {'13th_&_14th_salaries': 'Both mandatory'}})

        assert flags.payroll_13th_salary and flags.payroll_14th_salary and flags.payroll_13th_and_14th


# =============================================================================
# Text helpers
# =============================================================================


class TestTextHelpers:
    @pytest.mark.parametrize('text,expected', [
        ('30 days', 30),
        ('1 month', 30),
        ('4 weeks', 28),
        ('Depends on tenure', 0),
    ])
    def test_extract_days(self, text, expected):
        assert extract_days(text) == expected

    def test_extract_months(self):
        assert extract_months('3 months') == 3
        assert extract_months("1 month's salary per year of service") == 1
        assert extract_months('Statutory scale') == 0

    @pytest.mark.parametrize('text,expected', [
        ('20%', 20.0),
        ('20% to 26.8%', 23.4),
        ('7.3% + 0.85%', 8.15),
        ('none', 0.0),
    ])
    def test_extract_percentage(self, text, expected):
        assert extract_percentage(text) == pytest.approx(expected)

    @pytest.mark.parametrize('text,expected', [
        ('~ 350 BRL', 350.0),
        ('20-50 BRL', 35.0),
        ('30 BRL per working day', 660.0),
        ('20-30 BRL per working day', 550.0),
        ('500 EUR', 500.0),
        ('no amount', 0.0),
    ])
    def test_extract_amount(self, text, expected):
        assert extract_amount(text) == pytest.approx(expected)

    def test_mandatory_salary_needs_signal_without_soft_negative(self):
        assert detect_mandatory_salary('The 13th salary is mandatory by law', '13th')
        assert not detect_mandatory_salary('A 13th salary is customary', '13th')
        assert not detect_mandatory_salary('13th salary is not mandatory', '13th')
        assert not detect_mandatory_salary('Paid monthly', '13th')
        assert not detect_mandatory_salary('The 13th salary is mandatory by law', '14th')

    def test_mandatory_benefit(self):
        assert is_mandatory_benefit('Transport voucher required by law')
        assert not is_mandatory_benefit('Meal vouchers are customary')
        assert not is_mandatory_benefit('Gym membership may be offered by law firms')


# =============================================================================
# Extraction
# =============================================================================


class TestExtractLegalRequirements:
    def test_brazil_hints(self, reference_store):
        req = extract_legal_requirements(reference_store.get_country('BR'))

        assert req.notice_period_days == 30
        assert req.severance_months == 1
        assert req.probation_period_days == 90
        assert req.has_13th_salary is True
        assert req.has_14th_salary is False
        assert req.vacation_bonus_percentage == pytest.approx(33.33)
        assert req.vacation_bonus_mandatory is True
        assert req.employer_rate_total == pytest.approx(35.8)
        assert 'total_employment_cost' not in req.employer_rates

    def test_brazil_allowances(self, reference_store):
        req = extract_legal_requirements(reference_store.get_country('BR'))

        assert req.allowances[TRANSPORTATION_ALLOWANCE].amount == 250
        assert req.allowances[TRANSPORTATION_ALLOWANCE].mandatory is True
        assert req.allowances[MEAL_VOUCHERS].amount == 600
        assert req.allowances[MEAL_VOUCHERS].mandatory is False

    @pytest.mark.parametrize('line,expected', [
        ('Business lunch stipend of 300 BRL for client-facing roles', None),
        ('Bus pass worth 120 BRL per month', 120),
        ('Commuting support of 150 BRL is mandatory', 150),
    ])
    def test_transport_allowance_matches_whole_words(self, line, expected):
        reference = CountryReference(country_code='XX', currency='XXX', data={'common_benefits': [line]})

        req = extract_legal_requirements(reference)

        hint = req.allowances.get(TRANSPORTATION_ALLOWANCE)
        assert (hint.amount if hint else None) == expected

    def test_conservative_severance_when_text_has_no_figure(self):
        reference = CountryReference(
            country_code='XX',
            currency='XXX',
            data={'termination': {'severance_pay': 'Depends on tenure and reason for dismissal'}},
        )

        req = extract_legal_requirements(reference)

        assert req.severance_months == CONSERVATIVE_SEVERANCE_MONTHS
        assert any('conservative' in w for w in req.warnings)

    def test_empty_document(self):
        req = extract_legal_requirements(CountryReference(country_code='XX', currency='XXX'))

        assert req.notice_period_days == 0
        assert req.severance_months == 0
        assert req.employer_rates == {}
        assert req.allowances == {}


class TestReferenceExcerpts:
    def test_only_present_sections_are_shown(self, reference_store):
        excerpts = build_reference_excerpts(reference_store.get_country('BR'))

        assert set(excerpts) == {'EMPLOYER_CONTRIBUTIONS', 'PAYROLL', 'TERMINATION', 'COMMON_BENEFITS', 'REMOTE_WORK'}
        assert '- INSS (social security): 20%' in excerpts['EMPLOYER_CONTRIBUTIONS']
        assert 'Notice period: 30 days' in excerpts['TERMINATION']
        assert '14th' not in excerpts['PAYROLL']

    def test_flags_gate_sections(self, reference_store):
        reference = reference_store.get_country('BR')
        flags = reference.flags().model_copy(update={'termination_notice_period': False, 'termination_severance_pay': False})

        excerpts = build_reference_excerpts(reference, flags)

        assert 'Notice period' not in excerpts['TERMINATION']
        assert 'Probation period' in excerpts['TERMINATION']

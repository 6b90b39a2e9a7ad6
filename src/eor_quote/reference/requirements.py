"""
Deterministic legal requirement hints parsed from reference text.

These numbers are the system of record for termination provisions and the
fallback for everything else when the legal-profile model is unavailable.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any

from ..normalization import (
    MEAL_VOUCHERS,
    REMOTE_WORK_ALLOWANCE,
    TRANSPORTATION_ALLOWANCE,
    normalize_key,
)
from .store import AvailabilityFlags, CountryReference

# Applied when the law grants severance but the text gives no usable figure
CONSERVATIVE_SEVERANCE_MONTHS = 3.0

_THIRTEENTH_MENTIONS = ('13th', 'thirteenth', '13-month', 'christmas bonus', 'aguinaldo', 'décimo terceiro')
_FOURTEENTH_MENTIONS = ('14th', 'fourteenth', '14-month')

_SOFT_NEGATIVE = (
    'customary', 'customarily', 'commonly', 'common', 'typical', 'typically',
    'discretionary', 'at employer discretion', 'may be paid', 'might be paid', 'can be paid',
    'optional', 'not mandatory', 'not required', 'not obligated', 'no legal requirement',
    'depends on company policy', 'case by case', 'subject to contract', 'n/a',
)
_MANDATORY_SIGNALS = (
    'mandatory', 'required', 'must', 'obligatory', 'by law', 'legal requirement',
    'statutory', 'entitled', 'guaranteed', 'shall', 'is paid',
)
_BENEFIT_OPTIONAL = ('optional', 'may', 'can', 'discretionary', 'voluntary')
_BENEFIT_MANDATORY = (
    'mandatory', 'required', 'compulsory', 'obligatory', 'must', 'law', 'legal',
    'regulation', 'statutory', 'collective bargaining', 'cba', 'union requirement',
)

_ALLOWANCE_PATTERNS = {
    MEAL_VOUCHERS: (
        'meal voucher', 'food voucher', 'ticket restaurant', 'meal ticket', 'food ticket',
        'grocery voucher', 'restaurant voucher', 'alimentação',
    ),
    TRANSPORTATION_ALLOWANCE: (
        'transport*', 'auto allowance', 'gas allowance', 'commut*', 'bus', 'metro', 'transit',
        'car allowance', 'vehicle allowance', 'travel allowance',
    ),
    REMOTE_WORK_ALLOWANCE: (
        'home office', 'remote work', 'work from home', 'wfh', 'telework', 'remote allowance',
    ),
}


def _word_pattern(phrase: str) -> re.Pattern:
    # whole words with an optional plural; a trailing * matches any word ending
    if phrase.endswith('*'):
        return re.compile(rf'\b{re.escape(phrase[:-1])}\w*', re.IGNORECASE)
    return re.compile(rf'\b{re.escape(phrase)}s?\b', re.IGNORECASE)


_ALLOWANCE_MATCHERS = {
    key: tuple(_word_pattern(p) for p in patterns) for key, patterns in _ALLOWANCE_PATTERNS.items()
}


@dataclass
class AllowanceHint:
    amount: float
    mandatory: bool


@dataclass
class LegalRequirements:
    """Numeric hints extracted from a country's reference document."""

    notice_period_days: int = 0
    severance_months: float = 0.0
    probation_period_days: int = 0
    has_13th_salary: bool = False
    has_14th_salary: bool = False
    vacation_bonus_percentage: float | None = None
    vacation_bonus_mandatory: bool = False
    allowances: dict[str, AllowanceHint] = field(default_factory=dict)
    employer_rates: dict[str, float] = field(default_factory=dict)
    employee_rates: dict[str, float] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def employer_rate_total(self) -> float:
        return sum(self.employer_rates.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            'termination': {
                'notice_period_days': self.notice_period_days,
                'severance_months': self.severance_months,
                'probation_period_days': self.probation_period_days,
            },
            'mandatory_salaries': {
                'has_13th_salary': self.has_13th_salary,
                'has_14th_salary': self.has_14th_salary,
            },
            'vacation_bonus_percentage': self.vacation_bonus_percentage,
            'allowances': {
                k: {'amount': v.amount, 'mandatory': v.mandatory} for k, v in self.allowances.items()
            },
            'employer_contribution_rates': self.employer_rates,
            'employer_contribution_rate_total': round(self.employer_rate_total, 4),
        }


# =============================================================================
# Text helpers
# =============================================================================


def extract_days(text: str) -> int:
    """'30 days' -> 30, '2 months' -> 60, '4 weeks' -> 28, otherwise 0."""
    t = text or ''
    match = re.search(r'(\d+)\s*days?', t, re.IGNORECASE)
    if match:
        return int(match.group(1))
    match = re.search(r'(\d+)\s*months?', t, re.IGNORECASE)
    if match:
        return int(match.group(1)) * 30
    match = re.search(r'(\d+)\s*weeks?', t, re.IGNORECASE)
    if match:
        return int(match.group(1)) * 7
    return 0


def extract_months(text: str) -> float:
    """'3 months' -> 3, "1 month's salary" -> 1, otherwise 0."""
    t = text or ''
    match = re.search(r'(\d+(?:\.\d+)?)\s*months?', t, re.IGNORECASE)
    if match:
        return float(match.group(1))
    match = re.search(r"(\d+(?:\.\d+)?)\s*month(?:'|’)?s?\s*salary", t, re.IGNORECASE)
    if match:
        return float(match.group(1))
    return 0.0


def extract_percentage(text: str) -> float:
    """
    Percentage from rate text.

    '20% to 26.8%' averages the ends, '7.3% + 0.85%' sums the terms,
    otherwise the first percentage wins.
    """
    t = str(text or '')
    match = re.search(r'([\d.]+)%\s*(?:to|-|–)\s*([\d.]+)%', t, re.IGNORECASE)
    if match:
        try:
            return (float(match.group(1)) + float(match.group(2))) / 2
        except ValueError:
            pass

    if '+' in t:
        values = []
        for part in t.split('+'):
            m = re.search(r'([\d.]+)\s*%', part)
            if m:
                try:
                    values.append(float(m.group(1)))
                except ValueError:
                    continue
        if len(values) >= 2:
            return sum(values)

    match = re.search(r'([\d.]+)\s*%', t)
    if match:
        try:
            return float(match.group(1))
        except ValueError:
            return 0.0
    return 0.0


def _clean_number(token: str) -> float:
    return float(token.replace(',', ''))


def extract_amount(text: str) -> float:
    """
    Monetary amount from free text, as a monthly figure.

    Handles '~ 350 BRL', '20-50 BRL' (midpoint), '30 BRL per working day'
    (x22), '500 EUR' and finally any bare number.
    """
    t = text or ''
    number = r'(\d[\d,]*\.?\d*)'
    match = re.search(rf'[~≈]\s*{number}\s*[A-Z]{{3}}', t)
    if match:
        return _clean_number(match.group(1))
    match = re.search(rf'{number}\s*[-–]\s*{number}\s*[A-Z]{{3}}', t)
    if match:
        amount = (_clean_number(match.group(1)) + _clean_number(match.group(2))) / 2
        if re.search(r'per\s*working\s*day', t, re.IGNORECASE):
            amount *= 22
        return amount
    match = re.search(rf'{number}\s*[A-Z]{{3}}\s*per\s*working\s*day', t, re.IGNORECASE)
    if match:
        return _clean_number(match.group(1)) * 22
    match = re.search(rf'{number}\s*[A-Z]{{3}}', t)
    if match:
        return _clean_number(match.group(1))
    match = re.search(number, t)
    if match:
        return _clean_number(match.group(1))
    return 0.0


def detect_mandatory_salary(text: str, salary_type: str) -> bool:
    """
    True only when a 13th/14th salary is explicitly mentioned with a mandatory
    signal and without any soft-negative wording.
    """
    lower = (text or '').lower()
    mentions = _THIRTEENTH_MENTIONS if salary_type == '13th' else _FOURTEENTH_MENTIONS
    if not any(m in lower for m in mentions):
        return False
    if any(w in lower for w in _SOFT_NEGATIVE):
        return False
    return any(w in lower for w in _MANDATORY_SIGNALS)


def is_mandatory_benefit(description: str, full_text: str = '') -> bool:
    text = f'{description} {full_text}'.lower()
    if any(re.search(rf'\b{re.escape(p)}\b', text) for p in _BENEFIT_OPTIONAL):
        return False
    return any(p in text for p in _BENEFIT_MANDATORY)


def _is_aggregate_row(description: str) -> bool:
    lower = description.lower()
    return (
        'total employment cost' in lower
        or 'total employee cost' in lower
        or ('total' in lower and 'cost' in lower)
        or 'overall' in lower
    )


def _allowance_kind(text: str) -> str | None:
    for key, matchers in _ALLOWANCE_MATCHERS.items():
        if any(m.search(text) for m in matchers):
            return key
    return None


# =============================================================================
# Extraction
# =============================================================================


def _parse_rates(rows: Any) -> dict[str, float]:
    rates: dict[str, float] = {}
    for row in rows if isinstance(rows, list) else []:
        if not isinstance(row, dict):
            continue
        description = str(row.get('description') or '')
        if _is_aggregate_row(description):
            continue
        rate = extract_percentage(row.get('rate', ''))
        if rate > 0:
            rates[normalize_key(description) or f'contribution_{len(rates) + 1}'] = rate
    return rates


def extract_legal_requirements(reference: CountryReference) -> LegalRequirements:
    """
    Build deterministic hints from a country reference document.

    Args:
        reference: Country reference with its ``data`` sections

    Returns:
        LegalRequirements; fields stay at zero/False when the text is silent
    """
    data = reference.data or {}
    flags = reference.flags()
    req = LegalRequirements()

    termination = data.get('termination') or {}
    if termination.get('notice_period'):
        req.notice_period_days = extract_days(str(termination['notice_period']))
    severance_text = str(termination.get('severance_pay') or termination.get('severance') or '')
    if severance_text:
        req.severance_months = extract_months(severance_text)
    if termination.get('probation_period'):
        req.probation_period_days = extract_days(str(termination['probation_period']))
    if flags.termination_severance_pay and req.severance_months == 0:
        req.severance_months = CONSERVATIVE_SEVERANCE_MONTHS
        req.warnings.append(
            f'Severance depends on tenure; assuming a conservative {CONSERVATIVE_SEVERANCE_MONTHS:g} months'
        )

    payroll = data.get('payroll') or {}
    salary_text = ' '.join(
        str(t) for t in (
            payroll.get('payroll_cycle'),
            payroll.get('13th_salary'),
            data.get('13th_salary'),
            payroll.get('14th_salary'),
            data.get('14th_salary'),
            payroll.get('13th_&_14th_salaries'),
        ) if t
    )
    req.has_13th_salary = detect_mandatory_salary(salary_text, '13th')
    req.has_14th_salary = detect_mandatory_salary(salary_text, '14th')

    contribution = data.get('contribution') or {}
    employer_rows = contribution.get('employer_contributions') or []
    req.employer_rates = _parse_rates(employer_rows)
    req.employee_rates = _parse_rates(contribution.get('employee_contributions') or [])

    benefits = data.get('common_benefits') or []
    benefit_lines = [str(b) for b in benefits] if isinstance(benefits, list) else [str(benefits)]

    for row in employer_rows if isinstance(employer_rows, list) else []:
        if isinstance(row, dict) and 'vacation bonus' in str(row.get('description', '')).lower():
            req.vacation_bonus_percentage = extract_percentage(row.get('rate', '')) or None
            req.vacation_bonus_mandatory = req.vacation_bonus_percentage is not None
    for line in benefit_lines:
        if 'vacation' in line.lower() and '%' in line:
            req.vacation_bonus_percentage = extract_percentage(line) or None
            req.vacation_bonus_mandatory = is_mandatory_benefit(line)

    sources: list[tuple[str, str]] = []
    for row in employer_rows if isinstance(employer_rows, list) else []:
        if isinstance(row, dict):
            sources.append((str(row.get('description') or ''), str(row.get('rate') or '')))
    sources.extend((line, line) for line in benefit_lines)
    if data.get('remote_work'):
        sources.append(('remote work ' + str(data['remote_work']), str(data['remote_work'])))

    for description, amount_text in sources:
        kind = _allowance_kind(description)
        if kind is None or kind in req.allowances:
            continue
        amount = extract_amount(amount_text)
        if amount > 0:
            req.allowances[kind] = AllowanceHint(
                amount=amount,
                mandatory=is_mandatory_benefit(description, amount_text),
            )

    return req


# =============================================================================
# Presence-gated excerpts
# =============================================================================


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        lines = []
        for v in value:
            if isinstance(v, dict) and ('rate' in v or 'description' in v):
                lines.append(f"- {v.get('description', '')}: {v.get('rate', '')}")
            else:
                lines.append(f'- {_render(v)}')
        return '\n'.join(lines)
    return json.dumps(value, ensure_ascii=False)


def build_reference_excerpts(reference: CountryReference, flags: AvailabilityFlags | None = None) -> dict[str, str]:
    """
    Reference text sections for the prompt, keeping only flagged sections.

    Returns:
        Section label to excerpt text; absent sections are omitted entirely
    """
    flags = flags or reference.flags()
    data = reference.data or {}
    contribution = data.get('contribution') or {}
    payroll = data.get('payroll') or {}
    termination = data.get('termination') or {}
    excerpts: dict[str, str] = {}

    if flags.contribution_employer_contributions:
        excerpts['EMPLOYER_CONTRIBUTIONS'] = _render(contribution.get('employer_contributions'))

    payroll_parts = []
    if flags.payroll_cycle and (payroll.get('payroll_cycle') or payroll.get('payroll_frequency')):
        payroll_parts.append(f"Payroll cycle: {payroll.get('payroll_cycle') or payroll.get('payroll_frequency')}")
    if flags.payroll_13th_salary and (payroll.get('13th_salary') or data.get('13th_salary')):
        payroll_parts.append(f"13th salary: {payroll.get('13th_salary') or data.get('13th_salary')}")
    if flags.payroll_14th_salary and (payroll.get('14th_salary') or data.get('14th_salary')):
        payroll_parts.append(f"14th salary: {payroll.get('14th_salary') or data.get('14th_salary')}")
    if flags.payroll_13th_and_14th and payroll.get('13th_&_14th_salaries'):
        payroll_parts.append(f"13th & 14th salaries: {payroll['13th_&_14th_salaries']}")
    if payroll_parts:
        excerpts['PAYROLL'] = '\n'.join(payroll_parts)

    termination_parts = []
    if flags.termination_notice_period and termination.get('notice_period'):
        termination_parts.append(f"Notice period: {termination['notice_period']}")
    if flags.termination_severance_pay and (termination.get('severance_pay') or termination.get('severance')):
        termination_parts.append(f"Severance: {termination.get('severance_pay') or termination.get('severance')}")
    if flags.termination_probation_period and termination.get('probation_period'):
        termination_parts.append(f"Probation period: {termination['probation_period']}")
    if termination_parts:
        excerpts['TERMINATION'] = '\n'.join(termination_parts)

    if flags.common_benefits:
        excerpts['COMMON_BENEFITS'] = _render(data.get('common_benefits'))
    if flags.remote_work:
        excerpts['REMOTE_WORK'] = _render(data.get('remote_work'))
    if flags.authority_payments:
        excerpts['AUTHORITY_PAYMENTS'] = _render(data.get('authority_payments'))

    return {k: v for k, v in excerpts.items() if v and v.strip()}

"""
Benefit vocabulary shared by extraction, gap analysis and deduplication.

Every legally relevant cost has one canonical key. Free-form names and keys
from model output or provider quotes are normalized to lowercase tokens and
matched against a synonym table to find that key.
"""

import re

from .models.legal import LegalCategory

# Canonical keys
EMPLOYER_CONTRIBUTIONS_TOTAL = 'employer_contributions_total'
THIRTEENTH_SALARY = 'thirteenth_salary'
FOURTEENTH_SALARY = 'fourteenth_salary'
VACATION_BONUS = 'vacation_bonus'
TRANSPORTATION_ALLOWANCE = 'transportation_allowance'
REMOTE_WORK_ALLOWANCE = 'remote_work_allowance'
MEAL_VOUCHERS = 'meal_vouchers'
MEDICAL_EXAM = 'medical_exam'
HEALTH_INSURANCE = 'health_insurance'
SEVERANCE_PROVISION = 'severance_provision'

TERMINATION_KEYS = frozenset({SEVERANCE_PROVISION})
MANDATORY_SIGNAL_KEYS = frozenset({
    EMPLOYER_CONTRIBUTIONS_TOTAL, THIRTEENTH_SALARY, FOURTEENTH_SALARY, SEVERANCE_PROVISION,
})

# Ordered: the first canonical key whose phrase matches wins, so specific
# phrases ("holiday allowance") come before generic ones ("allowance").
SYNONYMS: list[tuple[str, tuple[str, ...]]] = [
    (THIRTEENTH_SALARY, (
        '13th', '13th salary', '13th month', 'thirteenth', 'aguinaldo', 'christmas bonus',
        'year end bonus', 'yearend bonus', '13 month', '13th month pay', 'decimo terceiro',
        'tredicesima', 'gratificacion navidad',
    )),
    (FOURTEENTH_SALARY, (
        '14th', '14th salary', '14th month', 'fourteenth', '14 month', 'quattordicesima',
        'decimo cuarto',
    )),
    (VACATION_BONUS, (
        'vacation bonus', 'holiday bonus', 'holiday allowance', 'vacation allowance',
        'vacation pay', 'holiday pay', 'prima vacacional', 'ferias',
    )),
    (REMOTE_WORK_ALLOWANCE, (
        'remote work', 'home office', 'work from home', 'wfh', 'telework', 'remote allowance',
    )),
    (MEAL_VOUCHERS, (
        'meal', 'meals', 'food', 'lunch', 'ticket restaurant', 'vale refeicao', 'vale alimentacao',
    )),
    (TRANSPORTATION_ALLOWANCE, (
        'transport', 'transportation', 'commute', 'commuting', 'travel allowance', 'vale transporte',
    )),
    (MEDICAL_EXAM, ('medical exam', 'medical check', 'occupational health', 'health check')),
    (HEALTH_INSURANCE, ('health insurance', 'medical insurance', 'private health', 'health plan')),
    (SEVERANCE_PROVISION, (
        'severance', 'termination', 'notice period', 'notice pay', 'dismissal', 'redundancy',
    )),
    (EMPLOYER_CONTRIBUTIONS_TOTAL, (
        'employer contributions', 'employer contribution', 'social security', 'social charges',
        'social contributions', 'payroll tax', 'employer tax', 'employer taxes', 'pension',
        'national insurance', 'unemployment insurance', 'contributions total',
    )),
]

_CONTRIBUTION_TOKENS = frozenset({
    'contribution', 'contributions', 'social', 'security', 'pension', 'tax', 'taxes',
    'unemployment', 'levy', 'fund', 'accident', 'insurance', 'fgts', 'inss', 'afp', 'imss',
    'infonavit', 'cpf', 'ssnit', 'nhif', 'nssf',
})

_CATEGORY_SYNONYMS = {
    'common_benefits': LegalCategory.ALLOWANCES,
    'benefit': LegalCategory.ALLOWANCES,
    'benefits': LegalCategory.ALLOWANCES,
    'allowance': LegalCategory.ALLOWANCES,
    'salary': LegalCategory.BONUSES,
    'salaries': LegalCategory.BONUSES,
    'bonus': LegalCategory.BONUSES,
    'contribution': LegalCategory.CONTRIBUTIONS,
    'terminations': LegalCategory.TERMINATION,
}

_ACCENTS = str.maketrans('áàâãäéèêëíìîïóòôõöúùûüçñ', 'aaaaaeeeeiiiiooooouuuucn')


def normalize_tokens(text: str) -> list[str]:
    """Lowercase, strip accents and punctuation, split camelCase and snake_case."""
    spaced = re.sub(r'([a-z])([A-Z])', r'\1 \2', text or '')
    lowered = spaced.lower().translate(_ACCENTS)
    return re.sub(r'[^a-z0-9]+', ' ', lowered).split()


def normalize_key(text: str, max_length: int = 50) -> str:
    """Normalize a free-form name into a snake_case key."""
    return '_'.join(normalize_tokens(text))[:max_length].strip('_')


def _contains_phrase(tokens: list[str], phrase: str) -> bool:
    wanted = phrase.split()
    size = len(wanted)
    return any(tokens[i:i + size] == wanted for i in range(len(tokens) - size + 1))


def canonical_key(*names: str | None) -> str | None:
    """Map names or keys to a canonical benefit key, or None when nothing matches."""
    for name in names:
        if not name:
            continue
        tokens = normalize_tokens(name)
        if not tokens:
            continue
        joined = '_'.join(tokens)
        for key, phrases in SYNONYMS:
            if joined == key or any(_contains_phrase(tokens, p) for p in phrases):
                return key
    return None


def is_contribution_like(name: str) -> bool:
    """True when a key or name reads like an employer contribution line."""
    canonical = canonical_key(name)
    if canonical is not None:
        return canonical == EMPLOYER_CONTRIBUTIONS_TOTAL
    return bool(_CONTRIBUTION_TOKENS.intersection(normalize_tokens(name)))


def remap_category(raw: str | None, name: str = '', key: str = '') -> LegalCategory:
    """
    Coerce a model-reported category into one of the four legal categories.

    Known values pass through, common synonyms are mapped, anything else is
    guessed from keywords in the item's name and key.
    """
    value = (raw or '').strip().lower()
    try:
        return LegalCategory(value)
    except ValueError:
        pass
    if value in _CATEGORY_SYNONYMS:
        return _CATEGORY_SYNONYMS[value]

    text = f'{name} {key}'.lower()
    if any(w in text for w in ('contribution', 'social', 'tax', 'pension', 'insurance')):
        return LegalCategory.CONTRIBUTIONS
    if any(w in text for w in ('13th', '14th', 'thirteenth', 'fourteenth', 'salary', 'bonus')):
        return LegalCategory.BONUSES
    if any(w in text for w in ('termination', 'severance', 'notice')):
        return LegalCategory.TERMINATION
    return LegalCategory.ALLOWANCES

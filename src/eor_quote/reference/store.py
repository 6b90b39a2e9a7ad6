"""
Legal reference store: per-country legal and customary payroll facts.

Country documents are semi-structured JSON with a ``data`` object holding
sections such as ``contribution``, ``payroll``, ``termination``,
``common_benefits`` and ``remote_work``. Availability flags record which of
those sections actually exist for a country; only flagged sections are ever
shown to the legal-profile model.
"""

import json
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field

from ..errors import ReferenceDataMissingError
from ..logging import get_logger

logger = get_logger(__name__)

# Non-ISO codes seen in inputs
CODE_ALIASES = {
    'UK': 'GB',
    'EL': 'GR',
}


def resolve_country_code(code: str) -> str:
    raw = (code or '').strip().upper()
    return CODE_ALIASES.get(raw, raw)


class AvailabilityFlags(BaseModel):
    """Which reference sections are present for a country."""

    contribution_employer_contributions: bool = False
    contribution_employee_contributions: bool = False
    contribution_income_tax: bool = False
    payroll_13th_salary: bool = False
    payroll_14th_salary: bool = False
    payroll_13th_and_14th: bool = False
    payroll_cycle: bool = False
    termination_notice_period: bool = False
    termination_severance_pay: bool = False
    termination_probation_period: bool = False
    common_benefits: bool = False
    remote_work: bool = False
    authority_payments: bool = False
    minimum_wage: bool = False

    @classmethod
    def from_data(cls, data: dict[str, Any]) -> 'AvailabilityFlags':
        """Derive flags from the sections present in a country's data object."""

        def present(value: Any) -> bool:
            if isinstance(value, str):
                return bool(value.strip())
            return bool(value)

        contribution = data.get('contribution') or {}
        payroll = data.get('payroll') or {}
        termination = data.get('termination') or {}
        both = present(payroll.get('13th_&_14th_salaries'))
        return cls(
            contribution_employer_contributions=present(contribution.get('employer_contributions')),
            contribution_employee_contributions=present(contribution.get('employee_contributions')),
            contribution_income_tax=present(contribution.get('income_tax')),
            payroll_13th_salary=present(payroll.get('13th_salary')) or present(data.get('13th_salary')) or both,
            payroll_14th_salary=present(payroll.get('14th_salary')) or present(data.get('14th_salary')) or both,
            payroll_13th_and_14th=both,
            payroll_cycle=present(payroll.get('payroll_cycle')) or present(payroll.get('payroll_frequency')),
            termination_notice_period=present(termination.get('notice_period')),
            termination_severance_pay=present(termination.get('severance_pay')) or present(termination.get('severance')),
            termination_probation_period=present(termination.get('probation_period')) or present(termination.get('probation')),
            common_benefits=present(data.get('common_benefits')),
            remote_work=present(data.get('remote_work')),
            authority_payments=present(data.get('authority_payments')),
            minimum_wage=present(data.get('minimum_wage')),
        )

    @property
    def has_termination(self) -> bool:
        return self.termination_notice_period or self.termination_severance_pay

    @property
    def has_contributions(self) -> bool:
        return self.contribution_employer_contributions

    @property
    def has_mandatory_salary_section(self) -> bool:
        return self.payroll_13th_salary or self.payroll_14th_salary or self.payroll_cycle


class CountryReference(BaseModel):
    """One country's reference document."""

    country_code: str
    country_name: str | None = None
    currency: str
    data: dict[str, Any] = Field(default_factory=dict)
    availability: AvailabilityFlags | None = None

    def flags(self) -> AvailabilityFlags:
        return self.availability or AvailabilityFlags.from_data(self.data)


class LegalReferenceStore(Protocol):
    def get_country(self, country_code: str) -> CountryReference:
        ...

    def availability(self, country_code: str) -> AvailabilityFlags:
        ...


class InMemoryReferenceStore:
    """Reference store backed by a dict, keyed by ISO2 code."""

    def __init__(self, countries: dict[str, CountryReference | dict[str, Any]] | None = None):
        self._countries: dict[str, CountryReference] = {}
        for code, doc in (countries or {}).items():
            self.add(code, doc)

    def add(self, code: str, doc: CountryReference | dict[str, Any]) -> None:
        ref = doc if isinstance(doc, CountryReference) else CountryReference.model_validate(
            {'country_code': code, **doc}
        )
        self._countries[resolve_country_code(code)] = ref

    def get_country(self, country_code: str) -> CountryReference:
        resolved = resolve_country_code(country_code)
        ref = self._countries.get(resolved)
        if ref is None:
            raise ReferenceDataMissingError(
                f'No legal reference data for {country_code}',
                context={'country_code': country_code, 'resolved': resolved},
            )
        return ref

    def availability(self, country_code: str) -> AvailabilityFlags:
        return self.get_country(country_code).flags()

    def countries(self) -> list[str]:
        return sorted(self._countries)


class JsonDirectoryReferenceStore(InMemoryReferenceStore):
    """
    Reference store reading ``<CODE>.json`` files lazily from a directory.

    A file may hold the document directly or wrapped as ``{"results": [doc]}``.
    """

    def __init__(self, directory: str | Path):
        super().__init__()
        self.directory = Path(directory)

    def get_country(self, country_code: str) -> CountryReference:
        resolved = resolve_country_code(country_code)
        if resolved not in self._countries:
            self._load(country_code, resolved)
        return super().get_country(country_code)

    def _load(self, requested: str, resolved: str) -> None:
        for code in dict.fromkeys([resolved, (requested or '').strip().upper()]):
            path = self.directory / f'{code}.json'
            if not path.exists():
                continue
            try:
                raw = json.loads(path.read_text(encoding='utf-8'))
            except (OSError, json.JSONDecodeError) as e:
                raise ReferenceDataMissingError(
                    f'Unreadable legal reference data for {requested}',
                    context={'country_code': requested, 'path': str(path), 'error': str(e)},
                ) from e
            doc = (raw.get('results') or [raw])[0] if isinstance(raw, dict) else {}
            doc.setdefault('country_code', resolved)
            self._countries[resolved] = CountryReference.model_validate(doc)
            logger.debug('reference.loaded', country_code=resolved, path=str(path))
            return

    def countries(self) -> list[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem.upper() for p in self.directory.glob('*.json'))

"""
Legal-profile assembly.

Turns a country's reference data plus employment parameters into a
LegalCostProfile:

1. Load reference data and availability flags (missing data is fatal)
2. Derive deterministic hints (notice, severance, 13th/14th, rates)
3. Ask the legal-profile model for the itemized profile, showing only the
   reference sections that exist for the country
4. Parse tolerantly, then enforce the deterministic termination provision,
   statutory-only filtering and recomputed subtotals

When the model cannot be reached the profile is built from the hints alone.
"""

import json
from typing import Any

from ..clients.openai_client import OpenAIClient
from ..errors import (
    ModelError,
    ProfileAssemblyError,
    ReferenceDataMissingError,
    SchemaValidationFailedError,
)
from ..logging import get_logger
from ..models.legal import (
    EmploymentParameters,
    LegalCategory,
    LegalCostProfile,
    LegalItem,
    ProfileMeta,
)
from ..money import parse_amount, round_half_up, to_monthly
from ..normalization import (
    FOURTEENTH_SALARY,
    SEVERANCE_PROVISION,
    THIRTEENTH_SALARY,
    VACATION_BONUS,
    normalize_key,
    remap_category,
)
from ..parsing import parse_first_valid
from ..prompts.legal_profile import (
    LEGAL_PROFILE_REQUIRED_KEYS,
    LegalProfileResponse,
    build_legal_profile_prompt,
)
from ..reference.requirements import (
    LegalRequirements,
    build_reference_excerpts,
    extract_legal_requirements,
)
from ..reference.store import AvailabilityFlags, CountryReference, LegalReferenceStore
from ..resilience import StageBudget

logger = get_logger(__name__)

STAGE = 'legal_profile'
_BASE_SALARY_KEYS = {'base_salary', 'base_salary_monthly', 'gross_salary', 'salary'}


def termination_monthly_provision(
    notice_days: float,
    severance_months: float,
    base_salary_monthly: float,
    contract_months: int,
) -> float:
    """((notice_days / 30) + severance_months) x base / contract_months, half-up to cents."""
    if contract_months < 1:
        contract_months = 1
    liability = ((notice_days / 30) + severance_months) * base_salary_monthly
    return round_half_up(liability / contract_months)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', 'yes', 'y', '1', 'mandatory', 'required')
    return bool(value)


def _normalize_variables(raw: Any) -> dict[str, Any] | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        return {'value': raw if isinstance(raw, (int, float, str)) else json.dumps(raw, default=str)}
    out: dict[str, Any] = {}
    for key, value in raw.items():
        if isinstance(value, list):
            numbers = [v for v in value if isinstance(v, (int, float)) and not isinstance(v, bool)]
            if value and len(numbers) == len(value):
                out[key] = sum(numbers) / len(numbers)
            else:
                out[key] = ' | '.join(str(v) for v in value)
        elif isinstance(value, dict):
            out[key] = json.dumps(value, ensure_ascii=False, default=str)
        else:
            out[key] = value
    return out


def prepare_profile_payload(body: dict[str, Any]) -> dict[str, Any]:
    """
    Coerce a raw legal-profile candidate into the response schema.

    Numeric strings become numbers, ranges their midpoint, yearly and daily
    amounts monthly figures; unknown categories are remapped instead of
    rejected; items without any usable amount are dropped.
    """
    body = dict(body)
    raw_items = body.get('items')
    if isinstance(raw_items, dict):
        raw_items = [{'key': k, **v} for k, v in raw_items.items() if isinstance(v, dict)]

    items = []
    for raw in raw_items if isinstance(raw_items, list) else []:
        if not isinstance(raw, dict):
            continue
        name = str(raw.get('name') or raw.get('key') or '').strip()
        key = normalize_key(str(raw.get('key') or name))
        if not key:
            continue
        amount = parse_amount(
            next(
                (raw[f] for f in ('monthly_amount_local', 'monthly_amount', 'amount') if raw.get(f) is not None),
                None,
            )
        )
        if amount is None:
            continue
        if raw.get('frequency'):
            amount = to_monthly(amount, str(raw['frequency']))
        item = {
            'key': key,
            'name': name or key,
            'category': remap_category(str(raw.get('category') or ''), name, key).value,
            'mandatory': _as_bool(raw.get('mandatory')),
            'monthly_amount_local': max(0.0, amount),
            'variables': _normalize_variables(raw.get('variables')),
        }
        for text_field in ('formula', 'source', 'notes'):
            value = raw.get(text_field)
            if value is not None:
                item[text_field] = value if isinstance(value, str) else json.dumps(value, default=str)
        items.append(item)
    body['items'] = items

    subtotals = body.get('subtotals')
    if isinstance(subtotals, dict):
        body['subtotals'] = {k: parse_amount(v) or 0.0 for k, v in subtotals.items()}
    else:
        body['subtotals'] = None
    body['total_monthly_local'] = parse_amount(body.get('total_monthly_local'))
    warnings = body.get('warnings')
    body['warnings'] = [str(w) for w in warnings] if isinstance(warnings, list) else []
    availability = body.get('availability')
    body['availability'] = (
        {k: _as_bool(v) for k, v in availability.items()} if isinstance(availability, dict) else {}
    )
    if not isinstance(body.get('meta'), dict):
        body['meta'] = {}
    return body


def build_deterministic_items(
    params: EmploymentParameters,
    req: LegalRequirements,
    flags: AvailabilityFlags,
) -> list[LegalItem]:
    """Profile items computed in-process from the reference hints alone."""
    base = params.base_salary_monthly
    items: list[LegalItem] = []

    if flags.contribution_employer_contributions:
        for key, rate in req.employer_rates.items():
            items.append(LegalItem(
                key=f'employer_{key}'[:50],
                name=key.replace('_', ' ').capitalize(),
                category=LegalCategory.CONTRIBUTIONS,
                mandatory=True,
                monthly_amount_local=base * rate / 100,
                formula='base_salary_monthly * rate / 100',
                variables={'rate': rate},
                source='reference:contribution',
            ))

    for has, key, name in (
        (req.has_13th_salary, THIRTEENTH_SALARY, '13th salary'),
        (req.has_14th_salary, FOURTEENTH_SALARY, '14th salary'),
    ):
        if has:
            items.append(LegalItem(
                key=key,
                name=name,
                category=LegalCategory.BONUSES,
                mandatory=True,
                monthly_amount_local=base / 12,
                formula='base_salary_monthly / 12',
                source='reference:payroll',
            ))

    if req.vacation_bonus_percentage:
        items.append(LegalItem(
            key=VACATION_BONUS,
            name='Vacation bonus',
            category=LegalCategory.BONUSES,
            mandatory=req.vacation_bonus_mandatory,
            monthly_amount_local=base * req.vacation_bonus_percentage / 100 / 12,
            formula='base_salary_monthly * pct / 100 / 12',
            variables={'pct': req.vacation_bonus_percentage},
            source='reference:benefits',
        ))

    for key, hint in req.allowances.items():
        items.append(LegalItem(
            key=key,
            name=key.replace('_', ' ').capitalize(),
            category=LegalCategory.ALLOWANCES,
            mandatory=hint.mandatory,
            monthly_amount_local=hint.amount,
            source='reference:benefits',
        ))

    termination = termination_item(params, req, flags)
    if termination is not None:
        items.append(termination)

    return items


def termination_item(
    params: EmploymentParameters,
    req: LegalRequirements,
    flags: AvailabilityFlags,
) -> LegalItem | None:
    """The deterministic termination provision, or None when the law sets none."""
    if not flags.has_termination:
        return None
    if req.notice_period_days <= 0 and req.severance_months <= 0:
        return None
    amount = termination_monthly_provision(
        req.notice_period_days,
        req.severance_months,
        params.base_salary_monthly,
        params.contract_months,
    )
    return LegalItem(
        key=SEVERANCE_PROVISION,
        name='Termination provision (notice + severance)',
        category=LegalCategory.TERMINATION,
        mandatory=True,
        monthly_amount_local=amount,
        formula='((notice_days / 30) + severance_months) * base_salary_monthly / contract_months',
        variables={
            'notice_days': req.notice_period_days,
            'severance_months': req.severance_months,
            'contract_months': params.contract_months,
        },
        source='reference:termination',
    )


class LegalProfileAssembler:
    """
    Builds a LegalCostProfile for one country and salary.

    The model is optional: without a client every profile is deterministic.
    """

    def __init__(
        self,
        reference_store: LegalReferenceStore,
        openai_client: OpenAIClient | None = None,
    ):
        """
        Initialize the assembler.

        Args:
            reference_store: Source of country reference data
            openai_client: Generative model client, None for deterministic-only
        """
        self.reference_store = reference_store
        self.openai_client = openai_client

    def load_reference(self, country_code: str) -> CountryReference:
        try:
            return self.reference_store.get_country(country_code)
        except ReferenceDataMissingError as e:
            e.context.setdefault('stage', STAGE)
            raise

    async def assemble(
        self,
        params: EmploymentParameters,
        budget: StageBudget | None = None,
    ) -> LegalCostProfile:
        """
        Assemble the legal cost profile.

        Args:
            params: Employment parameters
            budget: Stage budget for the model call

        Returns:
            LegalCostProfile with recomputed subtotals

        Raises:
            ReferenceDataMissingError: No reference data for the country
            ProfileAssemblyError: Model answered but no candidate validated
        """
        reference = self.load_reference(params.country_code)
        flags = reference.flags()
        req = extract_legal_requirements(reference)
        warnings = list(req.warnings)
        log = logger.bind(country_code=params.country_code, quote_type=params.quote_type.value)

        meta = ProfileMeta(
            country_code=reference.country_code,
            country=reference.country_name,
            currency=params.currency or reference.currency,
            base_salary_monthly=params.base_salary_monthly,
            contract_months=params.contract_months,
            quote_type=params.quote_type,
        )

        if self.openai_client is None:
            items = build_deterministic_items(params, req, flags)
            return self._finalize(meta, flags, items, warnings, params, req)

        messages = build_legal_profile_prompt(
            params=params,
            currency=meta.currency,
            country_name=reference.country_name,
            availability=flags.model_dump(),
            hints=req.to_dict(),
            excerpts=build_reference_excerpts(reference, flags),
        )
        context = {'stage': STAGE, 'country_code': params.country_code}

        try:
            text = await self.openai_client.complete_json(messages, budget=budget, context=context)
        except ModelError as e:
            log.warning('legal_profile.deterministic_fallback', error=str(e), error_type=type(e).__name__)
            warnings.append(f'Legal profile model unavailable ({type(e).__name__}); used deterministic fallback')
            items = build_deterministic_items(params, req, flags)
            return self._finalize(meta, flags, items, warnings, params, req)

        try:
            response = parse_first_valid(
                text,
                LegalProfileResponse,
                required_keys=LEGAL_PROFILE_REQUIRED_KEYS,
                prepare=prepare_profile_payload,
                context=context,
            )
        except SchemaValidationFailedError as e:
            log.error('legal_profile.schema_failed', candidate_errors=e.candidate_errors[:5])
            raise ProfileAssemblyError(
                f'Legal profile response for {params.country_code} did not match the schema',
                context={**context, 'candidate_errors': e.candidate_errors[:5]},
            ) from e

        warnings.extend(response.warnings)
        profile = self._finalize(meta, flags, list(response.items), warnings, params, req)

        if response.total_monthly_local is not None and abs(
            response.total_monthly_local - profile.total_monthly
        ) > 0.01 * max(1, len(profile.items)):
            profile.warnings.append(
                f'Model total {response.total_monthly_local:.2f} differed from item sum '
                f'{profile.total_monthly:.2f}; item sum used'
            )

        log.info('legal_profile.assembled', items=len(profile.items), total_monthly=profile.total_monthly)
        return profile

    def _finalize(
        self,
        meta: ProfileMeta,
        flags: AvailabilityFlags,
        items: list[LegalItem],
        warnings: list[str],
        params: EmploymentParameters,
        req: LegalRequirements,
    ) -> LegalCostProfile:
        kept: dict[str, LegalItem] = {}
        for item in items:
            if item.key in _BASE_SALARY_KEYS:
                continue
            # Termination is never taken from the model
            if item.category == LegalCategory.TERMINATION:
                continue
            kept.setdefault(item.key, item)

        for key, has, name in (
            (THIRTEENTH_SALARY, req.has_13th_salary, '13th salary'),
            (FOURTEENTH_SALARY, req.has_14th_salary, '14th salary'),
        ):
            if has and key not in kept:
                kept[key] = LegalItem(
                    key=key,
                    name=name,
                    category=LegalCategory.BONUSES,
                    mandatory=True,
                    monthly_amount_local=params.base_salary_monthly / 12,
                    formula='base_salary_monthly / 12',
                    source='reference:payroll',
                )

        termination = termination_item(params, req, flags)
        if termination is not None:
            kept[termination.key] = termination

        final_items = list(kept.values())
        if params.statutory_only:
            dropped = [i.key for i in final_items if not i.mandatory]
            final_items = [i for i in final_items if i.mandatory]
            if dropped:
                warnings.append(f'Statutory-only quote: excluded non-mandatory items {dropped}')

        profile = LegalCostProfile(
            meta=meta,
            availability_flags=flags.model_dump(),
            items=final_items,
            warnings=warnings,
        )
        return profile.recompute()

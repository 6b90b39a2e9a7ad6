"""
Gap analysis: what a provider quote is missing compared with the law.

Two strategies compute the same per-key deltas:

- Deterministic (system of record): delta = max(0, legal - covered)
- Generative: the gap-analysis model sees both sides and returns deltas

The model's numbers are kept only when they agree with the deterministic
value within 1% or 0.01, whichever is larger. Termination provisions are
always deterministic. Any model failure falls back to the deterministic
result with a warning. The raw set then goes through deduplication.
"""

from dataclasses import dataclass

from ..clients.currency_client import CurrencyNormalizer
from ..clients.openai_client import OpenAIClient
from ..errors import GapAnalysisError, ModelError, SchemaValidationFailedError
from ..logging import get_logger
from ..models.benefits import StandardizedBenefitMap
from ..models.enhancement import EnhancementItem, EnhancementSet, OverlapAnalysis
from ..models.legal import LegalCategory, LegalCostProfile, QuoteType
from ..money import round_half_up, within_tolerance
from ..normalization import (
    EMPLOYER_CONTRIBUTIONS_TOTAL,
    SEVERANCE_PROVISION,
    TERMINATION_KEYS,
    canonical_key,
)
from ..parsing import parse_first_valid
from ..prompts.gap_analysis import (
    GAP_ANALYSIS_REQUIRED_KEYS,
    GapAnalysisResponse,
    MissingBenefitsResponse,
    build_gap_analysis_prompt,
    build_missing_benefits_prompt,
)
from ..resilience import StageBudget
from .dedup import deduplicate

logger = get_logger(__name__)

STAGE = 'gap_analysis'


@dataclass
class BaselineEntry:
    """Legal requirement for one canonical key, in the quote currency."""

    key: str
    name: str
    amount: float
    mandatory: bool
    category: LegalCategory
    member_keys: tuple[str, ...] = ()


def build_baseline(profile: LegalCostProfile, rate: float = 1.0) -> dict[str, BaselineEntry]:
    """
    Collapse legal items into canonical keys.

    All contribution items become one ``employer_contributions_total`` entry;
    termination items become ``severance_provision``.
    """
    baseline: dict[str, BaselineEntry] = {}
    for item in profile.items:
        if item.category == LegalCategory.CONTRIBUTIONS:
            key = EMPLOYER_CONTRIBUTIONS_TOTAL
        elif item.category == LegalCategory.TERMINATION:
            key = SEVERANCE_PROVISION
        else:
            key = canonical_key(item.key, item.name) or item.key
            if key == EMPLOYER_CONTRIBUTIONS_TOTAL:
                key = item.key

        amount = item.monthly_amount_local * rate
        # Aggregated lines match coverage by their own key only ("FGTS (severance fund)" is not severance)
        if item.category in (LegalCategory.CONTRIBUTIONS, LegalCategory.TERMINATION):
            member = item.key
        else:
            member = canonical_key(item.key, item.name) or item.key
        entry = baseline.get(key)
        if entry is None:
            baseline[key] = BaselineEntry(
                key=key,
                name='Employer contributions' if key == EMPLOYER_CONTRIBUTIONS_TOTAL else item.name,
                amount=amount,
                mandatory=item.mandatory,
                category=item.category,
                member_keys=(member,),
            )
        else:
            entry.amount += amount
            entry.mandatory = entry.mandatory or item.mandatory
            entry.member_keys = entry.member_keys + (member,)

    for entry in baseline.values():
        entry.amount = round_half_up(entry.amount)
    return baseline


def coverage_for(entry: BaselineEntry, benefit_map: StandardizedBenefitMap) -> float:
    """Provider coverage for a baseline key, including aggregated member keys."""
    keys = {entry.key, *entry.member_keys}
    return round_half_up(sum(benefit_map.covered_amount(k) for k in keys))


def compute_deterministic(
    baseline: dict[str, BaselineEntry],
    benefit_map: StandardizedBenefitMap,
    quote_type: QuoteType,
    contract_months: int,
) -> dict[str, EnhancementItem]:
    """Per-key deltas computed in-process."""
    statutory_only = quote_type == QuoteType.STATUTORY_ONLY
    items: dict[str, EnhancementItem] = {}
    for key, entry in baseline.items():
        covered = coverage_for(entry, benefit_map)
        already_included = covered >= entry.amount
        monthly = 0.0 if already_included else round_half_up(entry.amount - covered)

        if statutory_only and not entry.mandatory:
            monthly = 0.0
            explanation = f'{entry.name} is not mandatory; excluded from a statutory-only quote'
        elif already_included:
            explanation = f'{entry.name} already covered by the provider ({covered:.2f} >= {entry.amount:.2f})'
        elif covered > 0:
            explanation = f'{entry.name} partially covered: requires {entry.amount:.2f}, provider bills {covered:.2f}'
        else:
            explanation = f'{entry.name} required at {entry.amount:.2f} per month; not in provider quote'

        items[key] = EnhancementItem(
            monthly_amount=monthly,
            explanation=explanation,
            confidence=0.9 if entry.mandatory else 0.7,
            already_included=already_included,
            mandatory=entry.mandatory,
            yearly_amount=None if key in TERMINATION_KEYS else round_half_up(monthly * 12),
            total_amount=round_half_up(monthly * contract_months) if key in TERMINATION_KEYS else None,
            source='deterministic',
        )
    return items


def reconcile_with_model(
    deterministic: dict[str, EnhancementItem],
    response: GapAnalysisResponse,
    warnings: list[str],
) -> dict[str, EnhancementItem]:
    """
    Merge model output into the deterministic items.

    Agreeing model items contribute explanation and confidence; disagreeing
    ones are replaced by the deterministic value and a warning is recorded.
    Model keys with no legal baseline are ignored.
    """
    by_key: dict[str, object] = {}
    unmatched: list[str] = []
    for raw_key, model_item in response.enhancements.items():
        key = raw_key if raw_key in deterministic else canonical_key(raw_key)
        if key in deterministic and key not in by_key:
            by_key[key] = model_item
        else:
            unmatched.append(raw_key)
    if unmatched:
        warnings.append(f'Model items without a legal baseline ignored: {sorted(unmatched)}')

    merged: dict[str, EnhancementItem] = {}
    for key, det in deterministic.items():
        model_item = by_key.get(key)
        if model_item is None or key in TERMINATION_KEYS:
            merged[key] = det
            continue
        model_amount = 0.0 if model_item.already_included else max(0.0, model_item.monthly_amount)
        if within_tolerance(model_amount, det.monthly_amount):
            merged[key] = det.model_copy(update={
                'explanation': model_item.explanation or det.explanation,
                'confidence': min(1.0, max(0.0, model_item.confidence)),
                'source': 'model',
            })
        else:
            warnings.append(
                f'Model amount for {key} ({model_amount:.2f}) disagreed with computed '
                f'{det.monthly_amount:.2f}; computed value used'
            )
            merged[key] = det
    return merged


class GapAnalysisEngine:
    """
    Computes a provider's enhancement set from a legal profile and benefit map.

    Usage:
        engine = GapAnalysisEngine(openai_client, currency_normalizer)
        enhancement = await engine.analyze(profile, benefit_map)
    """

    def __init__(
        self,
        openai_client: OpenAIClient | None = None,
        currency_normalizer: CurrencyNormalizer | None = None,
    ):
        self.openai_client = openai_client
        self.currency_normalizer = currency_normalizer

    async def _baseline_rate(self, profile: LegalCostProfile, benefit_map: StandardizedBenefitMap) -> float:
        source, target = profile.meta.currency.upper(), benefit_map.currency.upper()
        if source == target:
            return 1.0
        context = {'stage': STAGE, 'provider': benefit_map.provider, 'from': source, 'to': target}
        if self.currency_normalizer is None:
            raise GapAnalysisError('Legal profile and quote currencies differ and no converter is set', context=context)
        result = await self.currency_normalizer.convert(1.0, source, target)
        if not result.success or not result.rate:
            raise GapAnalysisError(
                f'Could not convert legal baseline from {source} to {target}: {result.error}',
                context=context,
            )
        return result.rate

    async def analyze(
        self,
        profile: LegalCostProfile,
        benefit_map: StandardizedBenefitMap,
        quote_type: QuoteType | None = None,
        contract_months: int | None = None,
        local_office_costs: dict[str, float] | None = None,
        budget: StageBudget | None = None,
    ) -> EnhancementSet:
        """
        Compute the deduplicated enhancement set for one provider.

        Args:
            profile: Legal cost profile of the country
            benefit_map: What the provider already includes
            quote_type: Overrides the profile's quote type
            contract_months: Overrides the profile's contract duration
            local_office_costs: Local-office costs reported outside the legal baseline
            budget: Stage budget for model calls

        Returns:
            EnhancementSet after deduplication with recomputed totals

        Raises:
            GapAnalysisError: The baseline cannot be expressed in the quote currency
        """
        quote_type = quote_type or profile.meta.quote_type
        contract_months = contract_months or profile.meta.contract_months
        log = logger.bind(provider=benefit_map.provider, quote_type=quote_type.value)
        warnings: list[str] = list(benefit_map.warnings)

        rate = await self._baseline_rate(profile, benefit_map)
        baseline = build_baseline(profile, rate)
        deterministic = compute_deterministic(baseline, benefit_map, quote_type, contract_months)

        items = deterministic
        overlap = OverlapAnalysis(
            provider_coverage=[k for k, i in deterministic.items() if i.already_included],
            missing_requirements=[k for k, i in deterministic.items() if i.monthly_amount > 0],
        )
        recommendations: list[str] = []
        confidence = benefit_map.extraction_confidence
        strategy = 'deterministic'

        if self.openai_client is not None and baseline:
            response = await self._model_pass(
                profile, benefit_map, baseline, quote_type, contract_months,
                local_office_costs, budget, warnings,
            )
            if response is not None:
                items = reconcile_with_model(deterministic, response, warnings)
                overlap = response.analysis
                recommendations = response.recommendations
                warnings.extend(response.warnings)
                if response.additional_contributions:
                    warnings.append(
                        'Model-proposed additional contributions ignored: '
                        f'{sorted(response.additional_contributions)}'
                    )
                if response.confidence is not None:
                    confidence = round((confidence + min(1.0, max(0.0, response.confidence))) / 2, 2)
                strategy = 'model+deterministic'

        raw = EnhancementSet(
            provider=benefit_map.provider,
            country_code=profile.meta.country_code,
            currency=benefit_map.currency,
            quote_type=quote_type,
            base_monthly_total=benefit_map.monthly_total,
            items=items,
            additional_contributions={
                k: round_half_up(v) for k, v in (local_office_costs or {}).items() if v and v > 0
            },
            overlap=overlap,
            recommendations=recommendations,
            warnings=warnings,
            confidence=confidence,
            strategy=strategy,
        )
        result = deduplicate(raw)
        log.info(
            'gap_analysis.completed',
            strategy=strategy,
            total_monthly_enhancement=result.totals.total_monthly_enhancement,
            final_monthly_total=result.totals.final_monthly_total,
        )
        return result

    async def _model_pass(
        self,
        profile: LegalCostProfile,
        benefit_map: StandardizedBenefitMap,
        baseline: dict[str, BaselineEntry],
        quote_type: QuoteType,
        contract_months: int,
        local_office_costs: dict[str, float] | None,
        budget: StageBudget | None,
        warnings: list[str],
    ) -> GapAnalysisResponse | None:
        context = {'stage': STAGE, 'provider': benefit_map.provider}
        messages = build_gap_analysis_prompt(
            provider=benefit_map.provider,
            country=profile.meta.country or profile.meta.country_code,
            currency=benefit_map.currency,
            quote_type=quote_type.value,
            contract_months=contract_months,
            base_total=benefit_map.monthly_total,
            baseline={
                k: {'name': e.name, 'amount': e.amount, 'mandatory': e.mandatory} for k, e in baseline.items()
            },
            coverage={k: coverage_for(e, benefit_map) for k, e in baseline.items()},
            local_costs=local_office_costs,
        )

        try:
            text = await self.openai_client.complete_json(messages, budget=budget, context=context)
            try:
                return parse_first_valid(
                    text, GapAnalysisResponse, required_keys=GAP_ANALYSIS_REQUIRED_KEYS, context=context,
                )
            except SchemaValidationFailedError:
                logger.warning('gap_analysis.retry_without_json_mode', provider=benefit_map.provider)
                text = await self.openai_client.complete_json(
                    messages, json_mode=False, budget=budget, context=context,
                )
                return parse_first_valid(
                    text, GapAnalysisResponse, required_keys=GAP_ANALYSIS_REQUIRED_KEYS, context=context,
                )
        except (ModelError, SchemaValidationFailedError) as e:
            logger.warning(
                'gap_analysis.fallback_used',
                provider=benefit_map.provider,
                error_type=type(e).__name__,
                error=str(e),
            )
            warnings.append(f'Gap-analysis model unavailable ({type(e).__name__}); deterministic deltas used')
            return None

    async def analyze_missing_benefits(
        self,
        profile: LegalCostProfile,
        benefit_map: StandardizedBenefitMap,
        budget: StageBudget | None = None,
    ) -> MissingBenefitsResponse:
        """
        Which legally relevant benefits the quote lacks, with reasoning.

        The deterministic answer is returned whenever the model is absent or fails.
        """
        baseline = build_baseline(profile, await self._baseline_rate(profile, benefit_map))
        included = [k for k, e in baseline.items() if coverage_for(e, benefit_map) >= e.amount]
        missing = [k for k in baseline if k not in included]
        deterministic = MissingBenefitsResponse(
            missing_benefits=missing,
            included_benefits=included,
            reasoning={
                k: f'requires {baseline[k].amount:.2f}, provider covers {coverage_for(baseline[k], benefit_map):.2f}'
                for k in baseline
            },
            confidence=benefit_map.extraction_confidence,
        )
        if self.openai_client is None or not baseline:
            return deterministic

        context = {'stage': 'missing_benefits', 'provider': benefit_map.provider}
        messages = build_missing_benefits_prompt(
            benefit_map.provider,
            profile.meta.country_code,
            list(baseline),
            {k: coverage_for(e, benefit_map) for k, e in baseline.items()},
        )
        try:
            text = await self.openai_client.complete_json(messages, budget=budget, context=context)
            response = parse_first_valid(text, MissingBenefitsResponse, context=context)
        except (ModelError, SchemaValidationFailedError) as e:
            logger.warning('gap_analysis.missing_benefits_fallback', error=str(e))
            return deterministic

        # Membership is computed locally; only the reasoning comes from the model
        return deterministic.model_copy(update={
            'reasoning': {**deterministic.reasoning, **{
                k: v for k, v in response.reasoning.items() if k in baseline
            }},
            'confidence': min(1.0, max(0.0, response.confidence)),
        })

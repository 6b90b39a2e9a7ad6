"""
Cross-provider reconciliation.

Totals are compared against the cheapest provider. Providers within the
variance threshold, and with no critical coverage gap left open, are
"in band"; the winner is the most expensive in-band provider. An optional
model pass adds notes and recommendations but never numbers.
"""

import statistics
from typing import Iterable

from ..clients.currency_client import CurrencyNormalizer
from ..clients.openai_client import OpenAIClient
from ..errors import ModelError, SchemaValidationFailedError
from ..logging import get_logger
from ..models.enhancement import EnhancementSet
from ..models.reconciliation import (
    Coverage,
    ExcludedProvider,
    ReconciliationCandidate,
    ReconciliationItem,
    ReconciliationResult,
    ReconciliationSettings,
    ReconciliationSummary,
)
from ..money import round_half_up
from ..parsing import parse_first_valid
from ..prompts.reconciliation import (
    RECONCILIATION_REQUIRED_KEYS,
    ReconciliationNarrative,
    build_reconciliation_prompt,
)
from ..resilience import StageBudget

logger = get_logger(__name__)

STAGE = 'reconciliation'

CRITICAL_KEYWORDS = (
    'social security', 'mandatory', 'statutory', 'health insurance', 'pension',
    'tax', 'termination', 'notice', 'severance',
)
AMOUNT_TOLERANCE = 0.01
PCT_TOLERANCE = 0.001
RISK_PENALTY = 0.10


def critical_missing(missing: Iterable[str]) -> list[str]:
    """Missing coverage entries that mention a statutory concern."""
    found = []
    for entry in missing:
        text = str(entry or '').lower().replace('_', ' ')
        if any(word in text for word in CRITICAL_KEYWORDS):
            found.append(entry)
    return found


def build_notes(coverage: Coverage) -> list[str]:
    notes = []
    if coverage.missing:
        more = '…' if len(coverage.missing) > 3 else ''
        notes.append(f"Missing: {', '.join(coverage.missing[:3])}{more}")
    if coverage.double_counting_risk:
        more = '…' if len(coverage.double_counting_risk) > 2 else ''
        notes.append(f"Double-counting risk: {', '.join(coverage.double_counting_risk[:2])}{more}")
    return notes


def coverage_from(enhancement: EnhancementSet) -> Coverage:
    """
    Coverage view of an enhancement set.

    Requirements that received an enhancement item are closed by the
    enhancement, so only requirements without any item stay missing.
    """
    closed = set(enhancement.items)
    includes = enhancement.overlap.provider_coverage or [
        k for k, i in enhancement.items.items() if i.already_included
    ]
    return Coverage(
        includes=list(includes),
        missing=[m for m in enhancement.overlap.missing_requirements if m not in closed],
        double_counting_risk=list(enhancement.overlap.double_counting_risks),
    )


async def build_candidates(
    enhancements: Iterable[EnhancementSet],
    settings: ReconciliationSettings,
    currency_normalizer: CurrencyNormalizer,
) -> tuple[list[ReconciliationCandidate], list[ExcludedProvider]]:
    """
    Normalize every provider's final monthly total to the target currency.

    Providers whose total cannot be converted are excluded, not zeroed.
    """
    candidates: list[ReconciliationCandidate] = []
    excluded: list[ExcludedProvider] = []
    for enhancement in enhancements:
        original = enhancement.totals.final_monthly_total
        result = await currency_normalizer.convert(original, enhancement.currency, settings.currency)
        if not result.success or result.target_amount is None:
            logger.warning(
                'reconciliation.conversion_failed',
                provider=enhancement.provider,
                error=result.error,
            )
            excluded.append(ExcludedProvider(
                provider=enhancement.provider,
                reason=f'Currency conversion {enhancement.currency}->{settings.currency} failed: {result.error}',
            ))
            continue
        candidates.append(ReconciliationCandidate(
            provider=enhancement.provider,
            normalized_monthly_total=round_half_up(result.target_amount),
            original_monthly_total=original,
            original_currency=enhancement.currency,
            confidence=enhancement.confidence,
            coverage=coverage_from(enhancement),
            quote_type=enhancement.quote_type,
        ))
    return candidates, excluded


def summarize(items: list[ReconciliationItem]) -> ReconciliationSummary:
    if not items:
        return ReconciliationSummary()
    totals = [i.total for i in items]
    ordered = sorted(items, key=lambda i: i.provider)
    cheapest = min(ordered, key=lambda i: i.total)
    most_expensive = max(ordered, key=lambda i: i.total)
    return ReconciliationSummary(
        cheapest=cheapest.provider,
        most_expensive=most_expensive.provider,
        average=round_half_up(statistics.fmean(totals)),
        median=round_half_up(statistics.median(totals)),
        std_dev=round_half_up(statistics.stdev(totals)) if len(totals) > 1 else 0.0,
        within_band_count=sum(1 for i in items if i.within_band),
    )


def select_winner(items: list[ReconciliationItem]) -> str | None:
    """Highest in-band total; identical totals go to the smallest provider id."""
    in_band = [i for i in items if i.within_band]
    if not in_band:
        return None
    best = max(i.total for i in in_band)
    return min(i.provider for i in in_band if i.total == best)


def compute_local(
    candidates: list[ReconciliationCandidate],
    settings: ReconciliationSettings,
) -> list[ReconciliationItem]:
    """Deterministic variance analysis, sorted cheapest first."""
    if not candidates:
        return []
    minimum = round_half_up(min(c.normalized_monthly_total for c in candidates))
    items = []
    for candidate in candidates:
        total = round_half_up(candidate.normalized_monthly_total)
        delta = round_half_up(total - minimum)
        pct = round_half_up(delta / minimum, 4) if minimum > 0 else 0.0
        critical = critical_missing(candidate.coverage.missing)
        confidence = min(1.0, max(0.0, candidate.confidence))
        items.append(ReconciliationItem(
            provider=candidate.provider,
            total=total,
            delta=delta,
            pct=pct,
            within_band=pct <= settings.threshold and not critical,
            confidence=confidence,
            critical_missing=critical,
            risk_adjusted_total=(
                round_half_up(total * (1 + (1 - confidence) * RISK_PENALTY)) if settings.risk_mode else None
            ),
            notes=build_notes(candidate.coverage),
        ))
    items.sort(key=lambda i: (i.total, i.provider))
    return items


def _differs(model_value: float | None, local_value: float, tolerance: float) -> bool:
    return model_value is not None and abs(model_value - local_value) > tolerance


def merge_narrative(
    items: list[ReconciliationItem],
    narrative: ReconciliationNarrative,
    warnings: list[str],
) -> tuple[list[ReconciliationItem], list[str]]:
    """Keep model prose, discard model numbers that drift from the local values."""
    by_provider = {i.provider: i for i in items}
    overridden = []
    unknown = []
    merged = {i.provider: i for i in items}
    for ranked in narrative.items:
        local = by_provider.get(ranked.provider)
        if local is None:
            unknown.append(ranked.provider)
            continue
        if (
            _differs(ranked.total, local.total, AMOUNT_TOLERANCE)
            or _differs(ranked.delta, local.delta, AMOUNT_TOLERANCE)
            or _differs(ranked.pct, local.pct, PCT_TOLERANCE)
            or (ranked.within_band is not None and ranked.within_band != local.within_band)
        ):
            overridden.append(ranked.provider)
        notes = list(dict.fromkeys(n.strip() for n in [*local.notes, *ranked.notes] if n and n.strip()))
        merged[local.provider] = local.model_copy(update={'notes': notes})

    if overridden:
        warnings.append(f'Model figures replaced by computed values for: {sorted(overridden)}')
    if unknown:
        warnings.append(f'Model mentioned unknown providers, ignored: {sorted(unknown)}')
    return [merged[i.provider] for i in items], list(narrative.recommendations)


class ReconciliationEngine:
    """
    Ranks provider totals and picks a representative price.

    Usage:
        engine = ReconciliationEngine(openai_client)
        result = await engine.reconcile(candidates, settings)
    """

    def __init__(self, openai_client: OpenAIClient | None = None):
        self.openai_client = openai_client

    async def reconcile(
        self,
        candidates: list[ReconciliationCandidate],
        settings: ReconciliationSettings | None = None,
        excluded: list[ExcludedProvider] | None = None,
        budget: StageBudget | None = None,
    ) -> ReconciliationResult:
        settings = settings or ReconciliationSettings()
        warnings: list[str] = []
        items = compute_local(candidates, settings)
        recommendations: list[str] = []
        engine = 'local-only'

        if self.openai_client is not None and items:
            narrative = await self._narrative(items, candidates, settings, budget, warnings)
            if narrative is not None:
                items, recommendations = merge_narrative(items, narrative, warnings)
                warnings.extend(narrative.warnings)
                engine = 'local+llm'

        winner = select_winner(items)
        if not recommendations:
            recommendations = self._local_recommendations(items, winner, settings)

        result = ReconciliationResult(
            settings=settings,
            items=items,
            summary=summarize(items),
            winner=winner,
            recommendations=recommendations,
            excluded=list(excluded or []),
            warnings=warnings,
            engine=engine,
        )
        logger.info(
            'reconciliation.completed',
            providers=len(items),
            excluded=len(result.excluded),
            winner=winner,
            within_band=result.summary.within_band_count,
            engine=engine,
        )
        return result

    async def _narrative(
        self,
        items: list[ReconciliationItem],
        candidates: list[ReconciliationCandidate],
        settings: ReconciliationSettings,
        budget: StageBudget | None,
        warnings: list[str],
    ) -> ReconciliationNarrative | None:
        coverage = {c.provider: c.coverage.model_dump() for c in candidates}
        computed = [
            {**i.model_dump(include={'provider', 'total', 'delta', 'pct', 'within_band', 'confidence'}),
             'coverage': coverage.get(i.provider, {})}
            for i in items
        ]
        messages = build_reconciliation_prompt(settings.currency, settings.threshold, computed)
        context = {'stage': STAGE}
        try:
            text = await self.openai_client.complete_json(messages, budget=budget, context=context)
            return parse_first_valid(
                text,
                ReconciliationNarrative,
                required_keys=RECONCILIATION_REQUIRED_KEYS,
                context=context,
            )
        except (ModelError, SchemaValidationFailedError) as e:
            logger.warning('reconciliation.narrative_failed', error_type=type(e).__name__, error=str(e))
            warnings.append('Reconciliation narrative unavailable; computed ranking only')
            return None

    @staticmethod
    def _local_recommendations(
        items: list[ReconciliationItem],
        winner: str | None,
        settings: ReconciliationSettings,
    ) -> list[str]:
        if not items:
            return []
        if winner is None:
            return [f'No provider is within {settings.threshold:.0%} of the cheapest quote; review the outliers manually']
        return [f'{winner} is the highest quote within {settings.threshold:.0%} of the cheapest and is selected']

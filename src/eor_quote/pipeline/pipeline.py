"""
Main pipeline orchestrator for EOR quote enhancement and reconciliation.

Provides end-to-end processing:
1. Assemble the legal cost profile for the country and salary
2. Per provider (concurrently): extract inclusions, run gap analysis
3. Join: wait for every provider to reach a terminal state
4. Reconcile provider totals and pick a winner
5. Run the acid test on the winner when a bill rate is given
"""

from __future__ import annotations

import asyncio
import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from ..clients.currency_client import (
    CurrencyNormalizer,
    HttpCurrencyNormalizer,
    StaticRateCurrencyNormalizer,
)
from ..clients.openai_client import OpenAIClient
from ..config import config
from ..errors import EorQuoteError, PartialSuccessResult, PipelineError, ValidationError
from ..logging import PipelineTimer, get_logger, logging_context
from ..models.acid_test import AcidTestRequest, AcidTestResult
from ..models.benefits import ProviderQuote, StandardizedBenefitMap
from ..models.enhancement import EnhancementSet
from ..models.legal import EmploymentParameters, LegalCostProfile
from ..models.reconciliation import ExcludedProvider, ReconciliationResult
from ..models.request import QuoteRequest
from ..reference.store import JsonDirectoryReferenceStore, LegalReferenceStore
from ..resilience import StageBudget
from .acid_test import AcidTestCalculator, build_cost_items
from .gap_analysis import GapAnalysisEngine
from .inclusions import ProviderInclusionExtractor, quote_fingerprint
from .legal_profile import LegalProfileAssembler
from .reconciliation import ReconciliationEngine, build_candidates
from .session import EnhancementSessionStore

logger = get_logger(__name__)

SUCCEEDED = 'succeeded'
ENHANCEMENT_FAILED = 'enhancement_failed'
INACTIVE = 'inactive'


def enhancement_fingerprint(
    profile: LegalCostProfile,
    quote: ProviderQuote,
    local_office_costs: dict[str, float] | None = None,
) -> str:
    """Digest of every input an enhancement set is computed from."""
    payload = json.dumps(
        [quote_fingerprint(quote), profile.model_dump(mode='json'), local_office_costs or {}],
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()[:16]


@dataclass
class ProviderOutcome:
    """Terminal state of one provider in a run."""

    provider: str
    status: str
    benefit_map: StandardizedBenefitMap | None = None
    enhancement: EnhancementSet | None = None
    error: EorQuoteError | None = None


@dataclass
class PipelineResult:
    """Result of processing a quote request through the pipeline."""

    trace_id: str
    country_code: str
    session_id: str | None = None

    legal_profile: LegalCostProfile | None = None
    outcomes: dict[str, ProviderOutcome] = field(default_factory=dict)
    provider_results: PartialSuccessResult = field(default_factory=PartialSuccessResult)
    reconciliation: ReconciliationResult | None = None
    acid_test: AcidTestResult | None = None

    # Timing
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    processing_time_ms: int | None = None
    stage_timings: dict[str, float] = field(default_factory=dict)

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True if at least one provider was enhanced and nothing fatal happened."""
        return not self.errors and self.provider_results.success_count > 0

    @property
    def enhancements(self) -> dict[str, EnhancementSet]:
        return {p: o.enhancement for p, o in self.outcomes.items() if o.enhancement is not None}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'trace_id': self.trace_id,
            'session_id': self.session_id,
            'country_code': self.country_code,
            'legal_profile': self.legal_profile.model_dump(mode='json') if self.legal_profile else None,
            'providers': {
                p: {
                    'status': o.status,
                    'enhancement': o.enhancement.to_dict() if o.enhancement else None,
                    'error': str(o.error) if o.error else None,
                }
                for p, o in self.outcomes.items()
            },
            'provider_results': self.provider_results.to_dict(),
            'reconciliation': self.reconciliation.to_dict() if self.reconciliation else None,
            'acid_test': self.acid_test.to_dict() if self.acid_test else None,
            'processing_time_ms': self.processing_time_ms,
            'stage_timings': self.stage_timings,
            'success': self.success,
            'errors': self.errors,
            'warnings': self.warnings,
        }


class QuotePipeline:
    """
    End-to-end pipeline from provider quotes to a reconciled, tested price.

    Orchestrates:
    - LegalProfileAssembler: country legal cost profile
    - ProviderInclusionExtractor: what each quote already bills
    - GapAnalysisEngine: per-provider enhancement set (deduplicated)
    - ReconciliationEngine: variance band and winner
    - AcidTestCalculator: profitability of the winner

    Usage:
        pipeline = QuotePipeline(reference_store, openai_client, currency_normalizer)
        result = await pipeline.run(request)
    """

    def __init__(
        self,
        reference_store: LegalReferenceStore,
        openai_client: OpenAIClient | None = None,
        currency_normalizer: CurrencyNormalizer | None = None,
        session_store: EnhancementSessionStore | None = None,
        stage_budget_seconds: float | None = None,
    ):
        """
        Initialize the pipeline.

        Args:
            reference_store: Country legal reference data
            openai_client: Generative model client; None runs every stage deterministically
            currency_normalizer: Currency converter (defaults to a same-currency-only table)
            session_store: Session cache of enhancement sets
            stage_budget_seconds: Time budget per stage for model calls
        """
        self.openai = openai_client
        self.currency = currency_normalizer or StaticRateCurrencyNormalizer({})
        self.sessions = session_store or EnhancementSessionStore()
        self.stage_budget_seconds = stage_budget_seconds or config.MODEL_STAGE_BUDGET_SECONDS

        self.assembler = LegalProfileAssembler(reference_store, openai_client)
        self.extractor = ProviderInclusionExtractor(openai_client)
        self.gap_engine = GapAnalysisEngine(openai_client, self.currency)
        self.reconciler = ReconciliationEngine(openai_client)
        self.acid_test = AcidTestCalculator(openai_client, self.currency)

    @classmethod
    def from_env(cls) -> QuotePipeline:
        """
        Create pipeline from environment variables.

        Expects:
            OPENAI_API_KEY: Model API key (optional; deterministic-only without it)
            CURRENCY_API_URL: Conversion endpoint (optional)
            LEGAL_DATA_DIR: Directory of per-country reference JSON files
        """
        openai = OpenAIClient() if config.OPENAI_API_KEY else None
        currency = HttpCurrencyNormalizer() if config.CURRENCY_API_URL else None
        return cls(JsonDirectoryReferenceStore(config.LEGAL_DATA_DIR), openai, currency)

    async def close(self) -> None:
        """Close all client connections."""
        if self.openai is not None:
            await self.openai.close()
        if isinstance(self.currency, HttpCurrencyNormalizer):
            await self.currency.close()

    def _budget(self) -> StageBudget:
        return StageBudget(self.stage_budget_seconds)

    async def build_legal_profile(self, params: EmploymentParameters) -> LegalCostProfile:
        return await self.assembler.assemble(params, budget=self._budget())

    async def enhance_provider(
        self,
        profile: LegalCostProfile,
        quote: ProviderQuote,
        local_office_costs: dict[str, float] | None = None,
        session_id: str | None = None,
    ) -> tuple[StandardizedBenefitMap, EnhancementSet]:
        """
        Extract inclusions and compute the enhancement set for one provider.

        With a session id the run goes through the session store, so a newer
        request for the same provider cancels this one, and a set committed
        for identical inputs is served without recomputing it.
        """
        fingerprint = None
        if session_id is not None:
            fingerprint = enhancement_fingerprint(profile, quote, local_office_costs)
            hit = self.sessions.cached(session_id, quote.provider, fingerprint)
            if hit is not None:
                logger.debug('pipeline.session_cache_hit', session_id=session_id, provider=quote.provider)
                return hit

        benefit_map: dict[str, StandardizedBenefitMap] = {}

        async def _enhance() -> EnhancementSet:
            budget = self._budget()
            benefit_map['value'] = await self.extractor.extract(quote, budget=budget)
            return await self.gap_engine.analyze(
                profile,
                benefit_map['value'],
                local_office_costs=local_office_costs,
                budget=budget,
            )

        with logging_context(session_id=session_id, provider=quote.provider):
            if session_id is None:
                enhancement = await _enhance()
            else:
                enhancement = await self.sessions.run(session_id, quote.provider, _enhance)
                self.sessions.put(
                    session_id, quote.provider, enhancement,
                    benefit_map=benefit_map['value'], fingerprint=fingerprint,
                )
        return benefit_map['value'], enhancement

    async def _process_provider(
        self,
        profile: LegalCostProfile,
        quote: ProviderQuote,
        request: QuoteRequest,
    ) -> ProviderOutcome:
        try:
            benefit_map, enhancement = await self.enhance_provider(
                profile, quote, request.local_office_costs, request.session_id,
            )
        except EorQuoteError as e:
            e.context.setdefault('provider', quote.provider)
            logger.warning(
                'pipeline.provider_failed',
                provider=quote.provider,
                stage=e.stage,
                error_type=type(e).__name__,
                error=e.message,
            )
            return ProviderOutcome(quote.provider, ENHANCEMENT_FAILED, error=e)
        return ProviderOutcome(quote.provider, SUCCEEDED, benefit_map, enhancement)

    async def run(self, request: QuoteRequest) -> PipelineResult:
        """
        Process a quote request through the full pipeline.

        Per-provider failures are isolated: a failed provider is excluded
        from reconciliation and reported with its stage.

        Args:
            request: QuoteRequest with parameters and provider quotes

        Returns:
            PipelineResult with enhancements, reconciliation and acid test

        Raises:
            ValidationError: If two quotes name the same provider
        """
        providers = [q.provider.lower() for q in request.quotes]
        duplicates = sorted({p for p in providers if providers.count(p) > 1})
        if duplicates:
            raise ValidationError(
                'Each provider may appear only once per request',
                context={'providers': duplicates},
            )

        timer = PipelineTimer()
        trace_id = request.trace_id or str(uuid4())
        result = PipelineResult(
            trace_id=trace_id,
            country_code=request.params.country_code,
            session_id=request.session_id,
        )

        with logging_context(trace_id=trace_id, session_id=request.session_id):
            logger.info(
                'pipeline_started',
                country_code=request.params.country_code,
                providers=[q.provider for q in request.quotes],
                quote_type=request.params.quote_type.value,
            )

            inactive = {p.lower() for p in request.inactive_providers}
            active = [q for q in request.quotes if q.provider.lower() not in inactive]
            for quote in request.quotes:
                if quote.provider.lower() in inactive:
                    result.outcomes[quote.provider] = ProviderOutcome(quote.provider, INACTIVE)

            # Step 1: legal profile, shared by every provider
            try:
                with timer.stage('legal_profile'):
                    profile = await self.build_legal_profile(request.params)
                result.legal_profile = profile
                result.warnings.extend(profile.warnings)
            except EorQuoteError as e:
                logger.error('pipeline.legal_profile_failed', error_type=type(e).__name__, error=str(e))
                for quote in active:
                    result.outcomes[quote.provider] = ProviderOutcome(quote.provider, ENHANCEMENT_FAILED, error=e)
                    result.provider_results.add_failure(e, item_id=quote.provider)
                result.errors.append(f'{type(e).__name__}: {e.message}')
                return self._finish(result, timer)

            # Step 2: fan out per provider; Step 3: join
            with timer.stage('enhancement'):
                outcomes = await asyncio.gather(
                    *(self._process_provider(profile, q, request) for q in active),
                    return_exceptions=True,
                )

            for quote, outcome in zip(active, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error(
                        'pipeline.provider_crashed',
                        provider=quote.provider,
                        error_type=type(outcome).__name__,
                        error=str(outcome),
                    )
                    outcome = ProviderOutcome(
                        quote.provider,
                        ENHANCEMENT_FAILED,
                        error=PipelineError(
                            f'Unexpected failure: {outcome}',
                            context={'provider': quote.provider, 'stage': 'enhancement'},
                        ),
                    )
                result.outcomes[quote.provider] = outcome
                if outcome.status == SUCCEEDED:
                    result.provider_results.add_success(
                        item_id=quote.provider,
                        data={'final_monthly_total': outcome.enhancement.totals.final_monthly_total},
                    )
                else:
                    result.provider_results.add_failure(outcome.error, item_id=quote.provider)

            # Step 4: reconciliation over every terminal provider
            succeeded = [o for o in result.outcomes.values() if o.status == SUCCEEDED]
            with timer.stage('reconciliation'):
                candidates, excluded = await build_candidates(
                    [o.enhancement for o in succeeded], request.reconciliation, self.currency,
                )
                excluded.extend(
                    ExcludedProvider(
                        provider=o.provider,
                        reason=f'{o.status}: {o.error.message}' if o.error else o.status,
                    )
                    for o in result.outcomes.values()
                    if o.status != SUCCEEDED
                )
                result.reconciliation = await self.reconciler.reconcile(
                    candidates, request.reconciliation, excluded, budget=self._budget(),
                )
            result.warnings.extend(result.reconciliation.warnings)

            # Step 5: acid test on the winner
            if request.bill_rate_monthly is not None:
                winner = result.reconciliation.winner
                if winner is None:
                    result.warnings.append('No provider within the variance band; acid test skipped')
                else:
                    with timer.stage('acid_test'):
                        result.acid_test = await self._run_acid_test(result.outcomes[winner], request, result)

            return self._finish(result, timer)

    async def _run_acid_test(
        self,
        outcome: ProviderOutcome,
        request: QuoteRequest,
        result: PipelineResult,
    ) -> AcidTestResult | None:
        enhancement = outcome.enhancement
        bill_rate = request.bill_rate_monthly
        if request.bill_rate_currency and request.bill_rate_currency.upper() != enhancement.currency.upper():
            converted = await self.currency.convert(bill_rate, request.bill_rate_currency, enhancement.currency)
            if not converted.success or converted.target_amount is None:
                result.warnings.append(
                    f'Could not convert bill rate to {enhancement.currency}: {converted.error}; acid test skipped'
                )
                return None
            bill_rate = converted.target_amount

        acid_request = AcidTestRequest(
            provider=outcome.provider,
            country=request.params.country_code,
            currency=enhancement.currency,
            cost_items=build_cost_items(outcome.benefit_map, enhancement, request.one_time_fees),
            bill_rate_monthly=bill_rate,
            contract_months=request.params.contract_months,
        )
        acid = await self.acid_test.run(acid_request, budget=self._budget())
        result.warnings.extend(acid.warnings)
        return acid

    @staticmethod
    def _finish(result: PipelineResult, timer: PipelineTimer) -> PipelineResult:
        result.completed_at = datetime.now()
        result.processing_time_ms = int(timer.total_ms)
        result.stage_timings = timer.stages.copy()
        logger.info(
            'pipeline_complete',
            succeeded=result.provider_results.success_count,
            failed=result.provider_results.failure_count,
            winner=result.reconciliation.winner if result.reconciliation else None,
            **timer.summary(),
        )
        return result

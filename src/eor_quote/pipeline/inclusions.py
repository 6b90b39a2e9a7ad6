"""
Provider inclusion extraction.

Finds which legally relevant benefits a provider's quote already bills for.
A generic tree walker scans the raw quote document through known container
keys; an optional model pass ("extract, never estimate") adds items the
walker cannot name. Results are immutable and cached per provider and
quote content.
"""

import hashlib
import json
import time
from dataclasses import dataclass
from typing import Any, Iterable

from ..clients.openai_client import OpenAIClient
from ..errors import ModelError, SchemaValidationFailedError
from ..logging import get_logger
from ..models.benefits import BenefitEntry, ProviderQuote, StandardizedBenefitMap
from ..money import parse_amount, round_half_up, to_monthly
from ..normalization import (
    EMPLOYER_CONTRIBUTIONS_TOTAL,
    MANDATORY_SIGNAL_KEYS,
    canonical_key,
    is_contribution_like,
    normalize_key,
)
from ..parsing import parse_first_valid
from ..prompts.benefit_extraction import (
    EXTRACTION_REQUIRED_KEYS,
    ExtractedBenefits,
    build_extraction_prompt,
)
from ..resilience import StageBudget

logger = get_logger(__name__)

STAGE = 'inclusion_extraction'

CONTAINER_KEYS = frozenset({
    'costs', 'items', 'line_items', 'lineitems', 'components', 'breakdown',
    'contributions', 'taxitems', 'tax_items', 'employer_costs', 'employercosts',
    'monthly_contributions_breakdown', 'monthly_benefits_breakdown',
    'employer_contributions', 'fees', 'benefits', 'allowances',
})
# Unnamed lines under these count as employer contributions
CONTRIBUTION_CONTAINER_KEYS = frozenset({
    'contributions', 'taxitems', 'tax_items', 'employer_costs', 'employercosts',
    'monthly_contributions_breakdown', 'employer_contributions',
})
NAME_KEYS = ('name', 'label', 'title', 'description', 'type', 'key')
AMOUNT_KEYS = ('monthly_amount', 'monthlyamount', 'amount', 'value', 'cost', 'monthly', 'price')
FREQUENCY_KEYS = ('frequency', 'period', 'billing_frequency', 'interval', 'recurrence')

PROVIDER_BASE_CONFIDENCE = {
    'remote': 0.7,
    'rivermate': 0.65,
    'oyster': 0.6,
    'deel': 0.5,
    'rippling': 0.5,
    'skuad': 0.5,
    'velocity': 0.5,
    'playroll': 0.5,
    'omnipresent': 0.5,
}
DEFAULT_BASE_CONFIDENCE = 0.45
EMPTY_CONFIDENCE = 0.3
MAX_CONFIDENCE = 0.9

CACHE_TTL_SECONDS = 3600


@dataclass
class LineItem:
    """A cost line discovered in a raw quote document."""

    name: str
    amount: float
    frequency: str
    path: str
    container: str = ''

    @property
    def monthly_amount(self) -> float:
        return to_monthly(self.amount, self.frequency)


class JsonTreeWalker:
    """
    Collects cost line items from arbitrary nested JSON.

    Line items are only taken from inside container keys; everything else is
    traversed to find containers. Shared or cyclic nodes are visited once.
    """

    def __init__(self, container_keys: Iterable[str] = CONTAINER_KEYS, max_depth: int = 12):
        self.container_keys = frozenset(k.lower() for k in container_keys)
        self.max_depth = max_depth

    def walk(self, document: Any) -> list[LineItem]:
        found: list[LineItem] = []
        seen: set[int] = set()
        self._visit(document, '$', 0, None, found, seen)
        return found

    def _visit(
        self,
        node: Any,
        path: str,
        depth: int,
        container: str | None,
        found: list[LineItem],
        seen: set[int],
    ) -> None:
        if depth > self.max_depth or not isinstance(node, (dict, list)):
            return
        if id(node) in seen:
            return
        seen.add(id(node))

        if isinstance(node, list):
            for index, child in enumerate(node):
                self._visit(child, f'{path}[{index}]', depth + 1, container, found, seen)
            return

        line = self._as_line_item(node, path, container) if container else None
        if line is not None:
            found.append(line)

        for key, value in node.items():
            child_path = f'{path}.{key}'
            lowered_key = str(key).lower()
            is_container = lowered_key in self.container_keys
            if isinstance(value, (dict, list)):
                if line is None or is_container:
                    self._visit(value, child_path, depth + 1, lowered_key if is_container else container, found, seen)
            elif container and line is None:
                # {"social_security": 120.5} style maps
                amount = parse_amount(value) if not isinstance(value, bool) else None
                if amount is not None and lowered_key not in FREQUENCY_KEYS:
                    found.append(LineItem(str(key), amount, 'monthly', child_path, container))

    @staticmethod
    def _as_line_item(node: dict[str, Any], path: str, container: str) -> LineItem | None:
        lowered = {str(k).lower(): v for k, v in node.items()}
        name = next(
            (str(lowered[k]) for k in NAME_KEYS if isinstance(lowered.get(k), str) and lowered[k].strip()),
            None,
        )
        if name is None:
            return None
        amount = None
        for key in AMOUNT_KEYS:
            if key in lowered and not isinstance(lowered[key], (dict, list)):
                amount = parse_amount(lowered[key])
                if amount is not None:
                    break
        if amount is None:
            return None
        frequency = next(
            (str(lowered[k]) for k in FREQUENCY_KEYS if isinstance(lowered.get(k), str)),
            'monthly',
        )
        return LineItem(name.strip(), amount, frequency, path, container)


def quote_fingerprint(quote: ProviderQuote) -> str:
    payload = json.dumps(
        [quote.original_response, quote.breakdown, quote.monthly_total, quote.currency],
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()[:16]


def extraction_confidence(provider: str, keys: Iterable[str]) -> float:
    keys = list(keys)
    if not keys:
        return EMPTY_CONFIDENCE
    base = PROVIDER_BASE_CONFIDENCE.get(provider.lower(), DEFAULT_BASE_CONFIDENCE)
    score = base + 0.04 * len(keys)
    if MANDATORY_SIGNAL_KEYS.intersection(keys):
        score += 0.1
    return round(min(MAX_CONFIDENCE, score), 2)


def collect_benefits(lines: Iterable[LineItem]) -> dict[str, BenefitEntry]:
    """
    Group line items by canonical key; repeated identical lines count once.

    Lines with no canonical name still count as employer contributions when
    they sit under a contribution container or read like a statutory levy
    (e.g. "FGTS", "INSS employer").
    """
    grouped: dict[str, list[LineItem]] = {}
    seen: set[tuple[str, str, float]] = set()
    for line in lines:
        key = canonical_key(line.name)
        if key is None and (line.container in CONTRIBUTION_CONTAINER_KEYS or is_contribution_like(line.name)):
            key = EMPLOYER_CONTRIBUTIONS_TOTAL
        if key is None or line.amount <= 0:
            continue
        marker = (key, normalize_key(line.name), round(line.monthly_amount, 2))
        if marker in seen:
            continue
        seen.add(marker)
        grouped.setdefault(key, []).append(line)

    benefits = {}
    for key, group in grouped.items():
        benefits[key] = BenefitEntry(
            amount=round_half_up(sum(l.monthly_amount for l in group)),
            frequency='monthly',
            confidence=0.8,
            description='; '.join(sorted({l.name for l in group}))[:200],
        )
    return benefits


class ProviderInclusionExtractor:
    """
    Produces a StandardizedBenefitMap per provider quote.

    Usage:
        extractor = ProviderInclusionExtractor(openai_client)
        benefit_map = await extractor.extract(quote)
    """

    def __init__(
        self,
        openai_client: OpenAIClient | None = None,
        walker: JsonTreeWalker | None = None,
        cache_ttl: float = CACHE_TTL_SECONDS,
    ):
        self.openai_client = openai_client
        self.walker = walker or JsonTreeWalker()
        self.cache_ttl = cache_ttl
        self._cache: dict[tuple[str, str], tuple[float, StandardizedBenefitMap]] = {}

    def _cached(self, key: tuple[str, str]) -> StandardizedBenefitMap | None:
        hit = self._cache.get(key)
        if hit is None:
            return None
        stored_at, value = hit
        if time.monotonic() - stored_at > self.cache_ttl:
            del self._cache[key]
            return None
        return value

    async def extract(
        self,
        quote: ProviderQuote,
        budget: StageBudget | None = None,
    ) -> StandardizedBenefitMap:
        """
        Extract what the quote already includes.

        Model failures never fail extraction: the walker result is used and a
        warning recorded.
        """
        cache_key = (quote.provider.lower(), quote_fingerprint(quote))
        cached = self._cached(cache_key)
        if cached is not None:
            logger.debug('inclusions.cache_hit', provider=quote.provider)
            return cached

        document = {'breakdown': quote.breakdown or {}, 'response': quote.original_response}
        lines = self.walker.walk(document)
        benefits = collect_benefits(lines)
        warnings: list[str] = []
        currency, country = quote.currency, quote.country

        if self.openai_client is not None:
            try:
                extracted = await self._model_pass(quote, document, budget)
                model_benefits, model_warnings = self._validate(extracted)
                warnings.extend(model_warnings)
                for key, entry in model_benefits.items():
                    benefits.setdefault(key, entry)
                if not extracted.currency or not extracted.country:
                    warnings.append('Extraction omitted currency or country; quote values used')
            except (ModelError, SchemaValidationFailedError) as e:
                logger.warning('inclusions.model_fallback', provider=quote.provider, error=str(e))
                warnings.append(f'Inclusion extraction model unavailable ({type(e).__name__}); used document scan only')

        result = StandardizedBenefitMap(
            provider=quote.provider,
            base_salary=quote.base_cost,
            currency=currency,
            country=country,
            monthly_total=quote.monthly_total,
            included_benefits=benefits,
            total_monthly_benefits=round_half_up(sum(b.amount for b in benefits.values())),
            extraction_confidence=extraction_confidence(quote.provider, benefits.keys()),
            warnings=tuple(warnings),
        )
        self._cache[cache_key] = (time.monotonic(), result)
        logger.info(
            'inclusions.extracted',
            provider=quote.provider,
            lines=len(lines),
            benefits=sorted(benefits),
            confidence=result.extraction_confidence,
        )
        return result

    async def _model_pass(
        self,
        quote: ProviderQuote,
        document: dict[str, Any],
        budget: StageBudget | None,
    ) -> ExtractedBenefits:
        context = {'stage': STAGE, 'provider': quote.provider}
        messages = build_extraction_prompt(quote.provider, quote.country, quote.currency, document)
        text = await self.openai_client.complete_json(messages, budget=budget, context=context)
        return parse_first_valid(
            text,
            ExtractedBenefits,
            required_keys=EXTRACTION_REQUIRED_KEYS,
            context=context,
        )

    @staticmethod
    def _validate(extracted: ExtractedBenefits) -> tuple[dict[str, BenefitEntry], list[str]]:
        benefits: dict[str, BenefitEntry] = {}
        warnings: list[str] = []
        for raw_key, raw in extracted.included_benefits.items():
            key = canonical_key(raw_key, raw.description)
            if key is None:
                continue
            amount = raw.amount
            if amount < 0:
                warnings.append(f'Negative amount for {raw_key} clamped to 0')
                amount = 0.0
            if amount == 0:
                continue
            benefits[key] = BenefitEntry(
                amount=round_half_up(to_monthly(amount, raw.frequency)),
                frequency='monthly',
                confidence=min(1.0, max(0.0, raw.confidence)),
                description=raw.description,
            )
        return benefits, warnings

"""
Deduplication of enhancement sets.

A raw set may report the same cost twice: once as a primary item and again
inside the ``additional_contributions`` bag. This pass drops auxiliary
copies of primary facts, promotes the genuinely new entries to primary
items and recomputes totals. It is pure and idempotent.
"""

from ..logging import get_logger
from ..models.enhancement import EnhancementItem, EnhancementSet
from ..models.legal import QuoteType
from ..money import round_half_up
from ..normalization import (
    EMPLOYER_CONTRIBUTIONS_TOTAL,
    canonical_key,
    is_contribution_like,
    normalize_key,
)

logger = get_logger(__name__)

CONTRIBUTION_MATCH_RATIO = 0.10


def _close(a: float, b: float, ratio: float = CONTRIBUTION_MATCH_RATIO) -> bool:
    largest = max(abs(a), abs(b))
    return largest > 0 and abs(a - b) <= ratio * largest


def deduplicate(enhancement: EnhancementSet) -> EnhancementSet:
    """
    Return a copy of the set where no two keys denote the same benefit.

    Args:
        enhancement: Raw set, possibly with a non-empty auxiliary bag

    Returns:
        New EnhancementSet with an empty auxiliary bag and recomputed totals
    """
    result = enhancement.model_copy(deep=True)
    aux = dict(result.additional_contributions)
    result.additional_contributions = {}
    if not aux:
        return result.recompute_totals()

    dropped: list[str] = []
    primary_canonical = {canonical_key(k) or k for k in result.items}

    # Same key, a spelling variant, or a synonym of a primary key
    survivors: dict[str, float] = {}
    for key, amount in aux.items():
        normalized = normalize_key(key)
        if key in result.items or normalized in result.items or normalized in primary_canonical:
            dropped.append(key)
            continue
        canonical = canonical_key(key)
        if canonical is not None and (canonical in result.items or canonical in primary_canonical):
            dropped.append(key)
            continue
        survivors[key] = amount

    # Contribution lines that restate the primary total
    primary = result.items.get(EMPLOYER_CONTRIBUTIONS_TOTAL)
    contribution_keys = [k for k in survivors if is_contribution_like(k)]
    if primary is not None and contribution_keys:
        aux_sum = sum(survivors[k] for k in contribution_keys)
        if _close(primary.monthly_amount, aux_sum):
            for key in contribution_keys:
                dropped.append(key)
                del survivors[key]

    statutory_only = result.quote_type == QuoteType.STATUTORY_ONLY
    promoted: dict[str, float] = {}
    for key, amount in survivors.items():
        target = canonical_key(key) or normalize_key(key) or key
        amount = round_half_up(max(0.0, amount))
        if target in result.items and target not in promoted:
            dropped.append(key)
            continue
        if promoted.get(target, -1.0) >= amount:
            # two auxiliary spellings of one benefit
            dropped.append(key)
            continue
        monthly = 0.0 if statutory_only else amount
        result.items[target] = EnhancementItem(
            monthly_amount=monthly,
            explanation=(
                f'Local office cost "{key}" is not mandatory; excluded from a statutory-only quote'
                if statutory_only else f'Local office cost reported as "{key}"'
            ),
            confidence=0.6,
            mandatory=False,
            yearly_amount=round_half_up(monthly * 12),
            source='local_office',
        )
        promoted[target] = amount

    if dropped:
        result.warnings.append(f'Removed duplicate additional contributions: {sorted(dropped)}')
    logger.debug(
        'dedup.completed',
        provider=result.provider,
        dropped=sorted(dropped),
        promoted=sorted(promoted),
    )
    return result.recompute_totals()

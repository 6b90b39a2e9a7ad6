"""
Per-session enhancement state.

Enhancement sets are keyed by (session id, provider). Each key carries a
generation counter: a new request bumps it and cancels the in-flight task
for that key, and a task only commits its result while its generation is
still current. Updates are last-writer-wins per key, so no lock is needed.
A committed set can carry the fingerprint of the inputs that produced it;
lookups with a different fingerprint miss.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from ..config import config
from ..errors import RequestSupersededError
from ..logging import get_logger
from ..models.benefits import StandardizedBenefitMap
from ..models.enhancement import EnhancementSet

logger = get_logger(__name__)

SessionKey = tuple[str, str]


@dataclass
class _Slot:
    generation: int = 0
    task: asyncio.Task | None = None
    value: EnhancementSet | None = None
    benefit_map: StandardizedBenefitMap | None = None
    fingerprint: str | None = None
    stored_at: float = 0.0


class EnhancementSessionStore:
    """
    Session cache of enhancement sets with most-recent-wins cancellation.

    Usage:
        store = EnhancementSessionStore()
        enhancement = await store.run(session_id, 'deel', lambda: engine.analyze(...))
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.ENHANCEMENT_CACHE_TTL_SECONDS
        self._clock = clock
        self._slots: dict[SessionKey, _Slot] = {}

    def _key(self, session_id: str, provider: str) -> SessionKey:
        return (session_id, provider.lower())

    def _live(self, session_id: str, provider: str, fingerprint: str | None) -> _Slot | None:
        slot = self._slots.get(self._key(session_id, provider))
        if slot is None or slot.value is None:
            return None
        if self._clock() - slot.stored_at > self.ttl_seconds:
            slot.value = None
            slot.benefit_map = None
            return None
        if fingerprint is not None and slot.fingerprint != fingerprint:
            return None
        return slot

    def get(self, session_id: str, provider: str, fingerprint: str | None = None) -> EnhancementSet | None:
        """Committed enhancement set, or None when absent, expired or built from other inputs."""
        slot = self._live(session_id, provider, fingerprint)
        return slot.value if slot else None

    def cached(
        self,
        session_id: str,
        provider: str,
        fingerprint: str,
    ) -> tuple[StandardizedBenefitMap, EnhancementSet] | None:
        """Benefit map and enhancement set committed for exactly these inputs."""
        slot = self._live(session_id, provider, fingerprint)
        if slot is None or slot.benefit_map is None:
            return None
        return slot.benefit_map, slot.value

    def put(
        self,
        session_id: str,
        provider: str,
        value: EnhancementSet,
        benefit_map: StandardizedBenefitMap | None = None,
        fingerprint: str | None = None,
    ) -> None:
        slot = self._slots.setdefault(self._key(session_id, provider), _Slot())
        slot.value = value
        slot.benefit_map = benefit_map
        slot.fingerprint = fingerprint
        slot.stored_at = self._clock()

    def generation(self, session_id: str, provider: str) -> int:
        slot = self._slots.get(self._key(session_id, provider))
        return slot.generation if slot else 0

    def session(self, session_id: str) -> dict[str, EnhancementSet]:
        """All live enhancement sets of a session, by provider."""
        found = {}
        for (sid, provider) in list(self._slots):
            if sid == session_id:
                value = self.get(sid, provider)
                if value is not None:
                    found[provider] = value
        return found

    def invalidate(self, session_id: str, provider: str | None = None) -> None:
        for key in [k for k in self._slots if k[0] == session_id]:
            if provider is None or key[1] == provider.lower():
                slot = self._slots.pop(key)
                if slot.task is not None and not slot.task.done():
                    slot.task.cancel()

    async def run(
        self,
        session_id: str,
        provider: str,
        factory: Callable[[], Awaitable[EnhancementSet]],
    ) -> EnhancementSet:
        """
        Run an enhancement for a key, replacing any request still in flight.

        Raises:
            RequestSupersededError: A newer request for the key started first
        """
        key = self._key(session_id, provider)
        slot = self._slots.setdefault(key, _Slot())
        slot.generation += 1
        generation = slot.generation

        previous = slot.task
        if previous is not None and not previous.done():
            previous.cancel()
            logger.info('session.request_superseded', session_id=session_id, provider=provider)

        task = asyncio.ensure_future(factory())
        slot.task = task
        try:
            value = await task
        except asyncio.CancelledError:
            if slot.generation != generation:
                raise RequestSupersededError(
                    'Enhancement request replaced by a newer one',
                    context={'provider': provider, 'session_id': session_id},
                ) from None
            raise
        finally:
            if slot.task is task:
                slot.task = None

        if slot.generation != generation or self._slots.get(key) is not slot:
            raise RequestSupersededError(
                'Enhancement request replaced by a newer one',
                context={'provider': provider, 'session_id': session_id},
            )
        slot.value = value
        slot.benefit_map = None
        slot.fingerprint = None
        slot.stored_at = self._clock()
        return value

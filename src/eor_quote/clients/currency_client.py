"""
Currency normalizer clients.

Two implementations share one contract,
``convert(amount, from_code, to_code) -> ConversionResult``:

- HttpCurrencyNormalizer: calls a remote conversion endpoint over httpx
- StaticRateCurrencyNormalizer: in-memory rate table (per 1 USD), used in
  tests and as an offline fallback

Conversions never raise for "no rate" style failures; they return
``ConversionResult(success=False, error=...)`` so callers can degrade.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Protocol

import httpx

from ..config import config
from ..logging import get_logger

logger = get_logger(__name__)


@dataclass
class ConversionResult:
    """Outcome of a single conversion."""

    success: bool
    target_amount: float | None = None
    rate: float | None = None
    error: str | None = None


class CurrencyNormalizer(Protocol):
    async def convert(self, amount: float, from_code: str, to_code: str) -> ConversionResult:
        ...


class StaticRateCurrencyNormalizer:
    """Converts through USD using a fixed table of units-per-dollar."""

    def __init__(self, rates_per_usd: dict[str, float]):
        self.rates = {code.upper(): float(rate) for code, rate in rates_per_usd.items()}
        self.rates.setdefault('USD', 1.0)

    async def convert(self, amount: float, from_code: str, to_code: str) -> ConversionResult:
        src, dst = from_code.upper(), to_code.upper()
        if src == dst:
            return ConversionResult(success=True, target_amount=float(amount), rate=1.0)
        if src not in self.rates or dst not in self.rates:
            missing = src if src not in self.rates else dst
            return ConversionResult(success=False, error=f'No exchange rate for {missing}')
        if self.rates[src] <= 0:
            return ConversionResult(success=False, error=f'Invalid exchange rate for {src}')
        rate = self.rates[dst] / self.rates[src]
        return ConversionResult(success=True, target_amount=float(amount) * rate, rate=rate)


class HttpCurrencyNormalizer:
    """
    Remote conversion endpoint client.

    Expects ``GET {base_url}?from=EUR&to=USD&amount=100`` to answer
    ``{"success": true, "data": {"exchange_rate": 1.08, "target_amount": 108.0}}``.

    Retry strategy:
    - 2xx: parse and return
    - 4xx: return failure immediately (persistent error, no retry)
    - 5xx / network error: retry with exponential backoff + jitter
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int = 2,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url or config.CURRENCY_API_URL
        if not self.base_url:
            raise ValueError('CURRENCY_API_URL is required for HttpCurrencyNormalizer')
        self.timeout = timeout or config.CURRENCY_TIMEOUT_SECONDS
        self.max_retries = max_retries
        self._client = client or httpx.AsyncClient(timeout=self.timeout)

    async def convert(self, amount: float, from_code: str, to_code: str) -> ConversionResult:
        src, dst = from_code.upper(), to_code.upper()
        if src == dst:
            return ConversionResult(success=True, target_amount=float(amount), rate=1.0)

        params = {'from': src, 'to': dst, 'amount': amount}
        last_error: str | None = None

        for attempt in range(1 + self.max_retries):
            try:
                response = await self._client.get(self.base_url, params=params)
                response.raise_for_status()
                return self._parse(response.json())

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                last_error = f'HTTP {status}'
                if 400 <= status < 500:
                    break
                if attempt < self.max_retries:
                    await _backoff_sleep(attempt)

            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_error = f'{type(e).__name__}: {e}'
                if attempt < self.max_retries:
                    await _backoff_sleep(attempt)

            except ValueError as e:
                last_error = f'Invalid response body: {e}'
                break

        logger.warning('currency.conversion_failed', source=src, target=dst, error=last_error)
        return ConversionResult(success=False, error=last_error)

    @staticmethod
    def _parse(body: dict) -> ConversionResult:
        if not isinstance(body, dict) or not body.get('success'):
            error = body.get('error') if isinstance(body, dict) else None
            return ConversionResult(success=False, error=str(error or 'Conversion rejected'))
        data = body.get('data') or {}
        try:
            target = float(data['target_amount'])
            rate = float(data['exchange_rate'])
        except (KeyError, TypeError, ValueError):
            return ConversionResult(success=False, error='Conversion response missing amount or rate')
        return ConversionResult(success=True, target_amount=target, rate=rate)

    async def close(self) -> None:
        await self._client.aclose()


async def _backoff_sleep(attempt: int) -> None:
    """Exponential backoff with jitter."""
    base = 0.5 * 2**attempt
    jitter = random.uniform(0, base * 0.5)
    await asyncio.sleep(base + jitter)

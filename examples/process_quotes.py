#!/usr/bin/env python3
"""
Example: Run three provider quotes for a Brazil hire through the quote pipeline.

This script demonstrates:
1. Building the Brazil legal cost profile for a salary
2. Enhancing each provider quote with what it is missing
3. Reconciling the providers and running the acid test on the winner

Prerequisites:
    - Optional environment variables (every stage runs deterministically without them):
        OPENAI_API_KEY=your_key
        CURRENCY_API_URL=https://your-fx-service/convert

Usage:
    python examples/process_quotes.py
"""

import asyncio
import sys
from pathlib import Path
from uuid import uuid4

# Add src to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from dotenv import load_dotenv

# Load environment variables
env_file = Path(__file__).parent.parent / '.env'
if env_file.exists():
    load_dotenv(env_file)

from eor_quote.clients.currency_client import StaticRateCurrencyNormalizer
from eor_quote.clients.openai_client import OpenAIClient
from eor_quote.config import config
from eor_quote.logging import configure_logging
from eor_quote.models.benefits import ProviderQuote
from eor_quote.models.legal import EmploymentParameters
from eor_quote.models.reconciliation import ReconciliationSettings
from eor_quote.models.request import QuoteRequest
from eor_quote.pipeline import QuotePipeline
from eor_quote.reference.store import JsonDirectoryReferenceStore


QUOTES = [
    ProviderQuote(
        provider='deel',
        base_cost=10000,
        monthly_total=14000,
        currency='BRL',
        country='BR',
        breakdown={
            'costs': [
                {'name': 'Social security (INSS)', 'amount': 2000},
                {'name': '13th salary provision', 'amount': 833.33},
                {'name': 'Meal allowance', 'amount': 300},
            ],
        },
    ),
    ProviderQuote(
        provider='oyster',
        base_cost=10000,
        monthly_total=11000,
        currency='BRL',
        country='BR',
    ),
    ProviderQuote(
        provider='remote',
        base_cost=10000,
        monthly_total=16500,
        currency='BRL',
        country='BR',
        original_response={
            'employer_costs': {'FGTS': 800, 'INSS employer': 2000, 'Vacation bonus (1/3)': 277.75},
        },
    ),
]

# Demo rates per USD; a CURRENCY_API_URL replaces them
RATES = {'BRL': 5.0, 'EUR': 0.92}


async def main():
    """Run the example pipeline demonstration."""
    configure_logging(json_output=False, log_level='WARNING')

    print("=" * 60)
    print("EOR Quote Pipeline Example")
    print("=" * 60)

    openai = OpenAIClient() if config.OPENAI_API_KEY else None
    if openai is None:
        print("\nOPENAI_API_KEY not set: running every stage deterministically.")

    pipeline = QuotePipeline(
        JsonDirectoryReferenceStore(config.LEGAL_DATA_DIR),
        openai,
        StaticRateCurrencyNormalizer(RATES),
    )

    try:
        request = QuoteRequest(
            params=EmploymentParameters(country_code='BR', base_salary_monthly=10000, contract_months=12),
            quotes=QUOTES,
            reconciliation=ReconciliationSettings(currency='USD', threshold=0.04),
            bill_rate_monthly=21000,
            one_time_fees={'setup': 500},
            session_id=f"demo_{uuid4().hex[:8]}",
        )

        result = await pipeline.run(request)

        # =====================================================================
        # Legal profile
        # =====================================================================
        print("\n" + "-" * 60)
        print("Legal profile")
        print("-" * 60)
        profile = result.legal_profile
        if profile is not None:
            for item in profile.items:
                print(f"  {item.name:<40} {item.monthly_amount_local:>10.2f} {profile.meta.currency}")
            print(f"  {'Total':<40} {profile.total_monthly:>10.2f}")

        # =====================================================================
        # Per-provider enhancement
        # =====================================================================
        print("\n" + "-" * 60)
        print("Enhancements")
        print("-" * 60)
        for provider, outcome in result.outcomes.items():
            if outcome.enhancement is None:
                print(f"\n  {provider}: {outcome.status} ({outcome.error.message if outcome.error else '-'})")
                continue
            totals = outcome.enhancement.totals
            print(f"\n  {provider}: +{totals.total_monthly_enhancement:.2f} -> {totals.final_monthly_total:.2f}")
            for key, item in outcome.enhancement.items.items():
                if item.monthly_amount > 0:
                    print(f"     {key:<36} {item.monthly_amount:>10.2f}")

        # =====================================================================
        # Reconciliation and acid test
        # =====================================================================
        print("\n" + "-" * 60)
        print("Reconciliation")
        print("-" * 60)
        reconciliation = result.reconciliation
        if reconciliation is not None:
            for item in reconciliation.items:
                band = 'in band' if item.within_band else 'outside'
                print(f"  {item.provider:<10} {item.total:>10.2f} {item.pct:>8.2%}  {band}")
            print(f"\n  Winner: {reconciliation.winner or 'none'}")
            for line in reconciliation.recommendations:
                print(f"  - {line}")

        if result.acid_test is not None:
            acid = result.acid_test
            print("\n" + "-" * 60)
            print(f"Acid test ({acid.provider})")
            print("-" * 60)
            print(f"  Profit over {acid.contract_months} months: {acid.projection.profit_local:.2f} {acid.currency}")
            if acid.profit_reference is not None:
                print(f"  In {acid.reference_currency}: {acid.profit_reference:.2f}")
            print(f"  Positive: {acid.meets_positive}  Above minimum: {acid.meets_minimum}")

        if result.warnings:
            print("\nWarnings:")
            for warning in result.warnings:
                print(f"  - {warning}")

        print(f"\nProcessing time: {result.processing_time_ms}ms")

    finally:
        await pipeline.close()


if __name__ == "__main__":
    asyncio.run(main())

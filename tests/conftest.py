"""
Pytest configuration and shared fixtures.

Key fixtures:
- br_reference: Brazil reference document from data/legal/BR.json
- reference_store: In-memory store holding the Brazil document
- currency: Static rate table (units per USD)
- mock_openai: OpenAIClient stand-in whose complete_json is an AsyncMock
- br_params: Brazil employment parameters (10,000 BRL, 12 months)
- sample_quote: Provider quote that itemizes social security, 13th salary and meals

Only the live checks in test_openai_client.py need OPENAI_API_KEY; they skip without it.
"""

import json
import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

# Load environment variables
from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / '.env'
if env_file.exists():
    load_dotenv(env_file)

from eor_quote.clients.currency_client import StaticRateCurrencyNormalizer
from eor_quote.clients.openai_client import OpenAIClient
from eor_quote.models.benefits import ProviderQuote
from eor_quote.models.legal import EmploymentParameters
from eor_quote.reference.store import InMemoryReferenceStore

LEGAL_DATA_DIR = Path(__file__).parent.parent / 'data' / 'legal'


@pytest.fixture
def openai_api_key() -> str:
    """Get OpenAI API key from environment."""
    key = os.getenv('OPENAI_API_KEY')
    if not key:
        pytest.skip('OPENAI_API_KEY not set')
    return key


@pytest.fixture
def legal_data_dir() -> Path:
    return LEGAL_DATA_DIR


@pytest.fixture
def br_reference() -> dict:
    """Brazil reference document as shipped in data/legal."""
    return json.loads((LEGAL_DATA_DIR / 'BR.json').read_text(encoding='utf-8'))


@pytest.fixture
def reference_store(br_reference: dict) -> InMemoryReferenceStore:
    return InMemoryReferenceStore({'BR': br_reference})


@pytest.fixture
def currency() -> StaticRateCurrencyNormalizer:
    """Units per USD."""
    return StaticRateCurrencyNormalizer({'BRL': 5.0, 'EUR': 0.8, 'MXN': 20.0})


@pytest.fixture
def mock_openai() -> MagicMock:
    """Model client with a mocked complete_json; set return_value or side_effect per test."""
    client = MagicMock(spec=OpenAIClient)
    client.complete_json = AsyncMock()
    client.close = AsyncMock()
    client.health_check = AsyncMock(return_value={'healthy': True, 'chat_model': 'gpt-4.1-mini'})
    return client


@pytest.fixture
def br_params() -> EmploymentParameters:
    return EmploymentParameters(country_code='BR', base_salary_monthly=10000, contract_months=12)


@pytest.fixture
def sample_quote() -> ProviderQuote:
    """A Brazil quote that bills part of social security, the full 13th salary and part of the meal vouchers."""
    return ProviderQuote(
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
    )

"""
External collaborator clients: the generative model endpoint and currency conversion.
"""

from .currency_client import (
    ConversionResult,
    CurrencyNormalizer,
    HttpCurrencyNormalizer,
    StaticRateCurrencyNormalizer,
)
from .openai_client import OpenAIClient

__all__ = [
    'OpenAIClient',
    'ConversionResult',
    'CurrencyNormalizer',
    'HttpCurrencyNormalizer',
    'StaticRateCurrencyNormalizer',
]

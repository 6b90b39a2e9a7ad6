"""
EOR Quote Engine

Legal-profile gap analysis and reconciliation for employer-of-record quotes:
builds a country's legal cost profile, finds what each provider quote is
missing, reconciles providers within a variance band and tests the
winner's profitability.
"""

__version__ = '0.1.0'

# Re-export key classes for convenience
from .pipeline import (
    QuotePipeline,
    PipelineResult,
    LegalProfileAssembler,
    ProviderInclusionExtractor,
    GapAnalysisEngine,
    ReconciliationEngine,
    AcidTestCalculator,
    EnhancementSessionStore,
    deduplicate,
)
from .logging import (
    configure_logging,
    get_logger,
    logging_context,
    PipelineTimer,
)
from .errors import (
    EorQuoteError,
    PipelineError,
    ValidationError,
    ReferenceDataMissingError,
    SchemaValidationFailedError,
    ProfileAssemblyError,
    GapAnalysisError,
    CurrencyConversionFailedError,
    CategorizationFailedError,
    RequestSupersededError,
    ModelError,
    ModelTimeoutError,
    ModelRateLimitedError,
    ModelInvalidResponseError,
    PartialSuccessResult,
)

__all__ = [
    # Version
    '__version__',
    # Main Pipeline
    'QuotePipeline',
    'PipelineResult',
    # Components
    'LegalProfileAssembler',
    'ProviderInclusionExtractor',
    'GapAnalysisEngine',
    'ReconciliationEngine',
    'AcidTestCalculator',
    'EnhancementSessionStore',
    'deduplicate',
    # Logging
    'configure_logging',
    'get_logger',
    'logging_context',
    'PipelineTimer',
    # Errors
    'EorQuoteError',
    'PipelineError',
    'ValidationError',
    'ReferenceDataMissingError',
    'SchemaValidationFailedError',
    'ProfileAssemblyError',
    'GapAnalysisError',
    'CurrencyConversionFailedError',
    'CategorizationFailedError',
    'RequestSupersededError',
    'ModelError',
    'ModelTimeoutError',
    'ModelRateLimitedError',
    'ModelInvalidResponseError',
    'PartialSuccessResult',
]

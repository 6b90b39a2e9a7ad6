"""
Data models for the EOR quote engine.
"""

from .acid_test import (
    AcidTestProjection,
    AcidTestRequest,
    AcidTestResult,
    CostBucket,
    CostBuckets,
    CostItem,
)
from .benefits import BenefitEntry, ProviderQuote, StandardizedBenefitMap
from .enhancement import (
    EnhancementItem,
    EnhancementSet,
    EnhancementTotals,
    OverlapAnalysis,
)
from .legal import (
    EmploymentParameters,
    LegalCategory,
    LegalCostProfile,
    LegalItem,
    ProfileMeta,
    QuoteType,
)
from .reconciliation import (
    Coverage,
    ExcludedProvider,
    ReconciliationCandidate,
    ReconciliationItem,
    ReconciliationResult,
    ReconciliationSettings,
    ReconciliationSummary,
)
from .request import QuoteRequest

__all__ = [
    'QuoteType',
    'LegalCategory',
    'EmploymentParameters',
    'ProfileMeta',
    'LegalItem',
    'LegalCostProfile',
    'ProviderQuote',
    'BenefitEntry',
    'StandardizedBenefitMap',
    'EnhancementItem',
    'EnhancementSet',
    'EnhancementTotals',
    'OverlapAnalysis',
    'Coverage',
    'ReconciliationCandidate',
    'ReconciliationSettings',
    'ReconciliationItem',
    'ReconciliationSummary',
    'ReconciliationResult',
    'ExcludedProvider',
    'CostBucket',
    'CostItem',
    'CostBuckets',
    'AcidTestRequest',
    'AcidTestProjection',
    'AcidTestResult',
    'QuoteRequest',
]

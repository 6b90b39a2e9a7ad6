"""
LLM prompts and response contracts for the EOR quote engine.
"""

from .benefit_extraction import (
    EXTRACTION_SYSTEM_PROMPT,
    ExtractedBenefit,
    ExtractedBenefits,
    build_extraction_prompt,
)
from .cost_categorization import (
    CATEGORIZATION_SYSTEM_PROMPT,
    CategorizationResponse,
    build_categorization_prompt,
)
from .gap_analysis import (
    GAP_ANALYSIS_SYSTEM_PROMPT,
    GapAnalysisResponse,
    GapItemResponse,
    MissingBenefitsResponse,
    build_gap_analysis_prompt,
    build_missing_benefits_prompt,
)
from .legal_profile import (
    LEGAL_PROFILE_SYSTEM_PROMPT,
    LegalProfileResponse,
    build_legal_profile_prompt,
)
from .reconciliation import (
    RECONCILIATION_SYSTEM_PROMPT,
    RankedProvider,
    ReconciliationNarrative,
    build_reconciliation_prompt,
)

__all__ = [
    'LegalProfileResponse',
    'build_legal_profile_prompt',
    'LEGAL_PROFILE_SYSTEM_PROMPT',
    'ExtractedBenefit',
    'ExtractedBenefits',
    'build_extraction_prompt',
    'EXTRACTION_SYSTEM_PROMPT',
    'GapItemResponse',
    'GapAnalysisResponse',
    'MissingBenefitsResponse',
    'build_gap_analysis_prompt',
    'build_missing_benefits_prompt',
    'GAP_ANALYSIS_SYSTEM_PROMPT',
    'RankedProvider',
    'ReconciliationNarrative',
    'build_reconciliation_prompt',
    'RECONCILIATION_SYSTEM_PROMPT',
    'CategorizationResponse',
    'build_categorization_prompt',
    'CATEGORIZATION_SYSTEM_PROMPT',
]

"""
Pipeline stages: legal profile, inclusion extraction, gap analysis,
deduplication, reconciliation and acid test.
"""

from .acid_test import AcidTestCalculator, build_cost_items, categorize_by_keywords, project
from .dedup import deduplicate
from .gap_analysis import GapAnalysisEngine, build_baseline, compute_deterministic
from .inclusions import JsonTreeWalker, ProviderInclusionExtractor
from .legal_profile import LegalProfileAssembler, termination_monthly_provision
from .pipeline import PipelineResult, ProviderOutcome, QuotePipeline
from .reconciliation import ReconciliationEngine, build_candidates, compute_local, select_winner
from .session import EnhancementSessionStore

__all__ = [
    # Main Pipeline
    'QuotePipeline',
    'PipelineResult',
    'ProviderOutcome',
    # Legal profile
    'LegalProfileAssembler',
    'termination_monthly_provision',
    # Inclusions
    'ProviderInclusionExtractor',
    'JsonTreeWalker',
    # Gap analysis
    'GapAnalysisEngine',
    'build_baseline',
    'compute_deterministic',
    'deduplicate',
    # Reconciliation
    'ReconciliationEngine',
    'build_candidates',
    'compute_local',
    'select_winner',
    # Acid test
    'AcidTestCalculator',
    'build_cost_items',
    'categorize_by_keywords',
    'project',
    # Session
    'EnhancementSessionStore',
]

"""
Legal reference data access and deterministic requirement hints.
"""

from .requirements import (
    AllowanceHint,
    LegalRequirements,
    build_reference_excerpts,
    extract_legal_requirements,
)
from .store import (
    AvailabilityFlags,
    CountryReference,
    InMemoryReferenceStore,
    JsonDirectoryReferenceStore,
    LegalReferenceStore,
    resolve_country_code,
)

__all__ = [
    'AvailabilityFlags',
    'CountryReference',
    'LegalReferenceStore',
    'InMemoryReferenceStore',
    'JsonDirectoryReferenceStore',
    'resolve_country_code',
    'AllowanceHint',
    'LegalRequirements',
    'extract_legal_requirements',
    'build_reference_excerpts',
]

"""Domain services for business logic.

Services implement domain logic that doesn't naturally fit within a
single entity.
"""

from isam_tables.domain.services.key_sequence import KeySequenceRegistry, SequenceStats
from isam_tables.domain.services.schema_inference import (
    MemberDescriptor,
    TypeDescriptor,
    derive_schema,
    describe_dataclass,
)

__all__ = [
    "KeySequenceRegistry",
    "SequenceStats",
    "MemberDescriptor",
    "TypeDescriptor",
    "derive_schema",
    "describe_dataclass",
]

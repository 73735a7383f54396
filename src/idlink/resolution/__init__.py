"""Identity resolution core for idlink.

Matches partial contacts against stored records, merges identity groups
and materializes the unified identity.
"""

from .engine import (
    IdentityEngine,
    contention_keys,
    has_new_information,
    project_identity,
)
from .materializer import GroupMaterializer
from .matcher import ContactMatcher
from .resolver import GroupResolver, Resolution

__all__ = [
    "ContactMatcher",
    "GroupMaterializer",
    "GroupResolver",
    "IdentityEngine",
    "Resolution",
    "contention_keys",
    "has_new_information",
    "project_identity",
]

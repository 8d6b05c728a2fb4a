"""Reconciliation of local card records against the reference catalog.

The run itself lives in ``cardsync.domain.reconciliation.engine``.
"""

from __future__ import annotations

from .contracts import FieldUpdates, ReconcileOptions, ReconciliationResult
from .fingerprint import extension_codes, fingerprint, projection
from .identifiers import CanonicalIndex, find_match, match
from .policy import MERGE_POLICIES, MergePolicy, MergeRules
from .resolve import clear_identifiers, resolve_fields, resolve_image_updates

__all__ = [
    "MERGE_POLICIES",
    "CanonicalIndex",
    "FieldUpdates",
    "MergePolicy",
    "MergeRules",
    "ReconcileOptions",
    "ReconciliationResult",
    "clear_identifiers",
    "extension_codes",
    "find_match",
    "fingerprint",
    "match",
    "projection",
    "resolve_fields",
    "resolve_image_updates",
]

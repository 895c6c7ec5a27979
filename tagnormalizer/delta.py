"""Turn matcher output into the tag delta for one resource."""

from __future__ import annotations

from typing import Mapping

from .matcher import MatchResult
from .models import TagDelta


def build_delta(original_tags: Mapping[str, str], match: MatchResult) -> TagDelta:
    """Build the remove-set and add-set against the original baseline.

    A normalized key the resource already carries with exact casing is left
    out of the add-set; the check uses the original tags, not the state after
    removal.
    """
    to_remove = dict(match.matched_for_removal)
    to_add = {
        key: value
        for key, value in match.matched_normalized.items()
        if key not in original_tags
    }
    return TagDelta(to_remove=to_remove, to_add=to_add)

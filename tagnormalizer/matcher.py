"""Find the tags of one resource that a rule table wants renamed.

Scan order decides which value wins when several tags collapse onto the same
normalized key, so it is fixed:

1. rules in compiled order;
2. within a rule, its variations in compiled order, and for each variation
   every tag key equal to it case-insensitively, in snapshot order;
3. then every tag key equal to the rule's normalized key case-insensitively
   but not exactly (right spelling, wrong capitalization).

Every hit overwrites the normalized value, so the last hit wins. With rule
``["env", "enviornment"] -> "environment"`` and tags
``{"enviornment": "stage", "env": "prod"}`` the result is ``"stage"``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .models import TagSnapshot
from .rules import NormalizationRule


@dataclass
class MatchResult:
    # original key -> original value
    matched_for_removal: Dict[str, str] = field(default_factory=dict)
    # normalized key -> value taken from the last matching tag
    matched_normalized: Dict[str, str] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.matched_for_removal)


def _index_keys(tags) -> Dict[str, List[str]]:
    index: Dict[str, List[str]] = {}
    for key in tags:
        index.setdefault(key.casefold(), []).append(key)
    return index


def match_tags(snapshot: TagSnapshot, rules: Sequence[NormalizationRule]) -> MatchResult:
    """Collect matching tags for removal and their values for the normalized keys.

    Only keys are compared; values are carried over untouched. A tag already
    spelled exactly as the normalized key is never queued for removal.
    """
    tags = snapshot.tags
    result = MatchResult()
    if not tags:
        return result
    index = _index_keys(tags)

    def _record(key: str, rule: NormalizationRule) -> None:
        if key == rule.normalized_key:
            return
        value = tags[key]
        result.matched_for_removal[key] = value
        result.matched_normalized[rule.normalized_key] = value

    for rule in rules:
        for variation in rule.variations:
            for key in index.get(variation, ()):
                _record(key, rule)
        for key in index.get(rule.normalized_key.casefold(), ()):
            _record(key, rule)
    return result

"""Normalization rules.

A rule names one canonical tag key and the variant spellings that collapse
onto it:

    {"variations": ["env", "enviornment", "environmentid"], "normalizedKey": "environment"}

Rule tables are compiled once before any resource is processed. The compiled
tuple is immutable and shared read-only by every worker.
"""

from __future__ import annotations

import csv
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Union

from .errors import RuleFileError

log = logging.getLogger(__name__)

# separator for the variations column of CSV rule tables
CSV_VARIATION_SEPARATOR = ";"


@dataclass(frozen=True)
class NormalizationRule:
    """Variations (case-folded, deduplicated) that normalize to one key."""

    variations: Tuple[str, ...]
    normalized_key: str


RawRule = Union[Mapping[str, Any], NormalizationRule]


def _raw_fields(raw: RawRule) -> Tuple[List[str], str]:
    if isinstance(raw, NormalizationRule):
        return list(raw.variations), raw.normalized_key
    key = raw.get("normalizedKey", raw.get("normalized_key"))
    if not isinstance(key, str) or not key:
        raise RuleFileError(f"rule is missing normalizedKey: {raw!r}")
    variations = raw.get("variations") or []
    if isinstance(variations, str):
        variations = [variations]
    return [str(v) for v in variations], key


def compile_rule(raw: RawRule) -> NormalizationRule:
    """Compile one raw rule.

    Variations equal to the normalized key are dropped before case-folding;
    the rest are case-folded and deduplicated in first-seen order.
    """
    variations, key = _raw_fields(raw)
    seen = set()
    folded: List[str] = []
    for v in variations:
        if v == key:
            continue
        f = v.casefold()
        if f not in seen:
            seen.add(f)
            folded.append(f)
    return NormalizationRule(variations=tuple(folded), normalized_key=key)


def compile_rules(raw_rules: Iterable[RawRule]) -> Tuple[NormalizationRule, ...]:
    """Compile a rule table, preserving rule order."""
    compiled = tuple(compile_rule(r) for r in raw_rules)
    for variation, keys in find_ambiguities(compiled).items():
        log.warning(
            "Variation %r normalizes to %d keys (%s); the last matching rule wins",
            variation, len(keys), ", ".join(keys),
        )
    log.debug("Compiled %d normalization rules", len(compiled))
    return compiled


def find_ambiguities(rules: Iterable[NormalizationRule]) -> Dict[str, List[str]]:
    """Return variations claimed by more than one distinct normalized key.

    Such tables are not rejected: the matcher lets the later rule overwrite
    the earlier one. Review the dry-run output before applying them.
    """
    claims: Dict[str, List[str]] = {}
    for rule in rules:
        for v in rule.variations:
            keys = claims.setdefault(v, [])
            if rule.normalized_key not in keys:
                keys.append(rule.normalized_key)
    return {v: keys for v, keys in claims.items() if len(keys) > 1}


# ----------------------------
# Rule files
# ----------------------------
def _load_json(path: Path) -> List[Mapping[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as e:
        raise RuleFileError(f"{path}: invalid JSON: {e}") from e
    if isinstance(data, dict):
        data = data.get("rules")
    if not isinstance(data, list):
        raise RuleFileError(f"{path}: expected a list of rules")
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            raise RuleFileError(f"{path}: rule #{i + 1} is not an object")
    return data


def _load_csv(path: Path) -> List[Mapping[str, Any]]:
    rows: List[Mapping[str, Any]] = []
    with open(path, "r", encoding="utf-8-sig", newline="") as fh:
        reader = csv.DictReader(fh)
        if not reader.fieldnames or "normalizedKey" not in reader.fieldnames:
            raise RuleFileError(f"{path}: CSV rule table needs a normalizedKey column")
        for row in reader:
            key = (row.get("normalizedKey") or "").strip()
            if not key:
                continue
            raw = row.get("variations") or ""
            variations = [v.strip() for v in raw.split(CSV_VARIATION_SEPARATOR) if v.strip()]
            rows.append({"normalizedKey": key, "variations": variations})
    return rows


def load_rules(path: Union[str, Path]) -> Tuple[NormalizationRule, ...]:
    """Read and compile a JSON or CSV rule table."""
    path = Path(path)
    if not path.is_file():
        raise RuleFileError(f"rule file not found: {path}")
    if path.suffix.lower() == ".csv":
        raw = _load_csv(path)
    else:
        raw = _load_json(path)
    log.info("Loaded %d rules from %s", len(raw), path)
    return compile_rules(raw)

"""Apply a tag delta to one resource and verify it took effect.

Each resource goes through two phases, remove then merge. The merge phase
runs even when the remove phase failed, so a resource can end up carrying
both the old and the new key.

Phase states::

    Pending -> DryRun                     (dry run, no verification read)
    Pending -> Attempting -> Success      (re-read confirms the change)
                          -> Failed       (re-read disagrees)
    Pending -> Error                      (provider call raised)

A TransportError ends processing for the resource; every phase not yet
decided becomes Error.

A Failed phase writes ``<phase>: <key>, <key>`` to the result's error
column, where the phase is ``Tags not removed`` or ``Tags not added`` and
the keys are exactly those the re-read contradicts, in delta order. When
both phases fail the two entries are joined with ``"; "``.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Sequence

from .delta import build_delta
from .errors import TransportError, VerificationMismatch
from .matcher import match_tags
from .models import OperationResult, Status, TagDelta, TagSnapshot
from .rules import NormalizationRule
from .transport import TagOperation, TagTransport

log = logging.getLogger(__name__)

REMOVE_PHASE = "Tags not removed"
ADD_PHASE = "Tags not added"


def verify_removed(tags: Mapping[str, str], expected_gone: Mapping[str, str]) -> None:
    surviving = [k for k in expected_gone if k in tags]
    if surviving:
        raise VerificationMismatch(REMOVE_PHASE, surviving)


def verify_added(tags: Mapping[str, str], expected: Mapping[str, str]) -> None:
    missing = [k for k in expected if k not in tags]
    if missing:
        raise VerificationMismatch(ADD_PHASE, missing)


class ApplyVerifyEngine:
    """Two-phase remove-then-merge executor with dry-run and verified apply."""

    def __init__(self, transport: TagTransport, dry_run: bool = True):
        self.transport = transport
        self.dry_run = dry_run

    def process(self, snapshot: TagSnapshot, rules: Sequence[NormalizationRule],
                result: Optional[OperationResult] = None) -> OperationResult:
        """Match, build the delta and apply it for one resource."""
        if result is None:
            result = OperationResult.for_snapshot(snapshot)
        match = match_tags(snapshot, rules)
        delta = build_delta(snapshot.tags, match)
        return self.apply(snapshot, delta, result)

    def apply(self, snapshot: TagSnapshot, delta: TagDelta,
              result: Optional[OperationResult] = None) -> OperationResult:
        if result is None:
            result = OperationResult.for_snapshot(snapshot)
        rid = snapshot.resource_id

        if delta.is_empty:
            result.remove_status = Status.NO_CHANGE
            result.add_status = Status.NO_CHANGE
            log.debug("No change for %s", rid)
            return result

        result.tags_removed = dict(delta.to_remove)
        result.tags_added = dict(delta.to_add)
        try:
            if delta.to_remove:
                result.remove_status = self._run_phase(
                    rid, TagOperation.REMOVE, delta.to_remove, verify_removed, result)
            else:
                result.remove_status = Status.NO_CHANGE
            result.add_status = self._run_phase(
                rid, TagOperation.MERGE, delta.to_add, verify_added, result)
        except TransportError as e:
            log.error("Provider call failed for %s: %s", rid, e)
            result.mark_error(str(e))
        return result

    def _run_phase(self, rid: str, operation: TagOperation, tags: Mapping[str, str],
                   verify, result: OperationResult) -> Status:
        if self.dry_run:
            result.add_response(self.transport.mutate_tags(rid, operation, tags, dry_run=True))
            log.info("[DRY RUN] %s %s on %s", operation.value, ", ".join(tags), rid)
            return Status.DRY_RUN

        result.add_response(self.transport.mutate_tags(rid, operation, tags, dry_run=False))
        current = self.transport.read_tags(rid)
        try:
            verify(current, tags)
        except VerificationMismatch as e:
            log.warning("Verification failed for %s: %s", rid, e)
            result.add_error(str(e))
            return Status.FAILED
        log.info("%s %s on %s", operation.value, ", ".join(tags), rid)
        return Status.SUCCESS

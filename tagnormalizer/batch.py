"""Batch driver: run the engine over every enumerated resource.

Each resource is an isolation boundary. Whatever goes wrong while processing
one resource becomes an Error row for that resource and the batch moves on;
exactly one result is emitted per processed resource, in enumeration order.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter, deque
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from typing import Deque, Iterable, List, Optional, Sequence, Tuple

from .engine import ApplyVerifyEngine
from .models import OperationResult, Status, TagSnapshot
from .rules import NormalizationRule

log = logging.getLogger(__name__)


@dataclass
class BatchSummary:
    total: int = 0
    skipped: int = 0
    errors: int = 0
    remove: Counter = field(default_factory=Counter)
    add: Counter = field(default_factory=Counter)

    def record(self, result: OperationResult) -> None:
        self.total += 1
        self.remove[str(result.remove_status)] += 1
        self.add[str(result.add_status)] += 1
        if result.is_error:
            self.errors += 1

    def rows(self) -> List[List[object]]:
        return [[s.value, self.remove.get(s.value, 0), self.add.get(s.value, 0)] for s in Status]

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "skipped": self.skipped,
            "errors": self.errors,
            "remove": dict(self.remove),
            "add": dict(self.add),
        }


class BatchDriver:
    """Feeds resources through the engine and forwards results to a sink.

    With workers > 1, or when a per-resource timeout is set, each resource
    runs on its own daemon thread with at most ``workers`` in flight. A
    resource's deadline starts when its thread starts. One still running when
    the deadline passes is reported as Error and its thread is abandoned: it
    no longer counts against ``workers`` and does not block interpreter exit.
    """

    def __init__(self, rules: Sequence[NormalizationRule], engine: ApplyVerifyEngine, sink,
                 workers: int = 1, resource_timeout: Optional[float] = None,
                 skip_ids: Iterable[str] = ()):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.rules = tuple(rules)
        self.engine = engine
        self.sink = sink
        self.workers = workers
        self.resource_timeout = resource_timeout
        self.skip_ids = frozenset(skip_ids)
        self.summary = BatchSummary()
        self.abandoned = 0

    def process_resource(self, snapshot: TagSnapshot) -> OperationResult:
        """Process one resource; never raises."""
        result = OperationResult.for_snapshot(snapshot)
        try:
            self.engine.process(snapshot, self.rules, result)
        except Exception as e:
            log.exception("Unexpected failure processing %s", snapshot.resource_id)
            result.mark_error(f"{type(e).__name__}: {e}")
        return result

    def _emit(self, result: OperationResult) -> None:
        self.summary.record(result)
        self.sink.emit(result)

    def _wanted(self, resources: Iterable[TagSnapshot]) -> Iterable[TagSnapshot]:
        for snapshot in resources:
            if snapshot.resource_id in self.skip_ids:
                self.summary.skipped += 1
                log.debug("Skipping already processed %s", snapshot.resource_id)
                continue
            yield snapshot

    def run(self, resources: Iterable[TagSnapshot]) -> BatchSummary:
        if self.workers == 1 and self.resource_timeout is None:
            for snapshot in self._wanted(resources):
                self._emit(self.process_resource(snapshot))
        else:
            self._run_pooled(resources)
        log.info("Batch finished: %d processed, %d skipped, %d with errors",
                 self.summary.total, self.summary.skipped, self.summary.errors)
        return self.summary

    # ----------------------------
    # Worker pool
    # ----------------------------
    def _start(self, snapshot: TagSnapshot) -> Tuple[Future, float]:
        """Run one resource on its own daemon thread, started immediately."""
        future: Future = Future()

        def work():
            if future.set_running_or_notify_cancel():
                future.set_result(self.process_resource(snapshot))

        threading.Thread(target=work, name=f"tagnorm-{snapshot.resource_id}", daemon=True).start()
        return future, time.monotonic()

    def _collect(self, snapshot: TagSnapshot, future: Future, started: float) -> OperationResult:
        remaining = None
        if self.resource_timeout is not None:
            remaining = max(0.0, self.resource_timeout - (time.monotonic() - started))
        try:
            return future.result(timeout=remaining)
        except FuturesTimeout:
            self.abandoned += 1
            log.error("Timed out processing %s after %ss; abandoning its worker",
                      snapshot.resource_id, self.resource_timeout)
            result = OperationResult.for_snapshot(snapshot)
            result.mark_error(f"timeout after {self.resource_timeout}s")
            return result

    def _run_pooled(self, resources: Iterable[TagSnapshot]) -> None:
        # abandoned workers leave the window, so a stuck resource never holds a slot
        in_flight: Deque[Tuple[TagSnapshot, Future, float]] = deque()
        for snapshot in self._wanted(resources):
            in_flight.append((snapshot, *self._start(snapshot)))
            while len(in_flight) >= self.workers:
                self._emit(self._collect(*in_flight.popleft()))
        while in_flight:
            self._emit(self._collect(*in_flight.popleft()))
        if self.abandoned:
            log.warning("%d worker(s) abandoned after timing out", self.abandoned)

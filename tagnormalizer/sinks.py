"""Result sinks: where per-resource outcomes are written."""

from __future__ import annotations

import csv
import datetime
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Set, Union

from tabulate import tabulate

from .errors import ResultSinkError
from .models import RESULT_FIELDS, OperationResult

log = logging.getLogger(__name__)


def _prepare_path(path: Union[str, Path]) -> Path:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ResultSinkError(f"cannot create output directory {path.parent}: {e}") from e
    return path


class CsvResultSink:
    """Append-only CSV log, one row per resource.

    The file is opened on construction so an unwritable path stops the run
    before any resource is touched. Concurrent emits are serialized.
    """

    def __init__(self, path: Union[str, Path], append: bool = False):
        self.path = _prepare_path(path)
        write_header = not (append and self.path.exists() and self.path.stat().st_size > 0)
        try:
            self._fh = open(self.path, "a" if append else "w", encoding="utf-8", newline="")
        except OSError as e:
            raise ResultSinkError(f"cannot open {self.path} for writing: {e}") from e
        self._writer = csv.DictWriter(self._fh, fieldnames=RESULT_FIELDS)
        self._lock = threading.Lock()
        if write_header:
            self._writer.writeheader()
            self._fh.flush()
        log.info("Writing results to %s", self.path)

    def emit(self, result: OperationResult) -> None:
        with self._lock:
            self._writer.writerow(result.as_row())
            self._fh.flush()

    def close(self) -> None:
        with self._lock:
            if not self._fh.closed:
                self._fh.close()


class JsonReportSink:
    """Collects results and writes a single JSON report on close."""

    def __init__(self, path: Union[str, Path], dry_run: bool):
        self.path = _prepare_path(path)
        if not os.access(self.path.parent, os.W_OK):
            raise ResultSinkError(f"cannot write to {self.path.parent}")
        self.dry_run = dry_run
        self.summary: Dict[str, Any] = {}
        self._rows: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def emit(self, result: OperationResult) -> None:
        with self._lock:
            self._rows.append(result.as_row())

    def close(self) -> None:
        report = {
            "generated_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "dry_run": self.dry_run,
            "summary": self.summary,
            "results": self._rows,
        }
        with open(self.path, "w", encoding="utf-8") as fh:
            json.dump(report, fh, indent=2, default=str)
        log.info("Saved report to %s", self.path)


class MultiSink:
    def __init__(self, *sinks):
        self.sinks = [s for s in sinks if s is not None]

    def emit(self, result: OperationResult) -> None:
        for s in self.sinks:
            s.emit(result)

    def close(self) -> None:
        for s in self.sinks:
            s.close()


def read_processed_ids(path: Union[str, Path]) -> Set[str]:
    """Resource ids already recorded in a previous run's CSV."""
    path = Path(path)
    if not path.exists():
        return set()
    with open(path, "r", encoding="utf-8", newline="") as fh:
        return {row["ResourceId"] for row in csv.DictReader(fh) if row.get("ResourceId")}


def format_summary(summary) -> str:
    return tabulate(summary.rows(), headers=["Status", "Remove", "Add"], tablefmt="grid")


def print_summary(summary, dry_run: bool) -> None:
    print("\n====== TAG NORMALIZATION SUMMARY ======\n")
    print(f"Mode              : {'dry run' if dry_run else 'apply'}")
    print(f"Resources         : {summary.total}")
    print(f"Skipped (resumed) : {summary.skipped}")
    print(f"With errors       : {summary.errors}\n")
    print(format_summary(summary))

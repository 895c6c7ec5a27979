"""Shared fixtures: an in-memory tag store standing in for a cloud provider."""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Set

import pytest

from tagnormalizer.errors import TransportError
from tagnormalizer.rules import compile_rules
from tagnormalizer.transport import TagOperation, TagTransport


class FakeTransport(TagTransport):
    """Tag store with knobs for failure injection.

    ``ignore`` lists operations that report success but change nothing,
    ``fail_on`` maps an operation ("read", "Remove", "Merge") to the error it
    raises.
    """

    def __init__(self, store: Optional[Dict[str, Dict[str, str]]] = None):
        self.store: Dict[str, Dict[str, str]] = store or {}
        self.calls: List[tuple] = []
        self.ignore: Set[TagOperation] = set()
        self.fail_on: Dict[str, Exception] = {}

    def read_tags(self, resource_id: str) -> Dict[str, str]:
        self.calls.append(("read", resource_id))
        if "read" in self.fail_on:
            raise self.fail_on["read"]
        return dict(self.store.get(resource_id, {}))

    def mutate_tags(self, resource_id: str, operation: TagOperation,
                    tags: Mapping[str, str], dry_run: bool) -> Optional[str]:
        self.calls.append((operation.value, resource_id, dict(tags), dry_run))
        if operation.value in self.fail_on:
            raise self.fail_on[operation.value]
        if dry_run or operation in self.ignore:
            return f"{operation.value}: preview" if dry_run else f"{operation.value}: OK"
        current = self.store.setdefault(resource_id, {})
        if operation is TagOperation.REMOVE:
            for k in tags:
                current.pop(k, None)
        else:
            current.update(tags)
        return f"{operation.value}: OK"

    def mutations(self, dry_run: Optional[bool] = None) -> List[tuple]:
        return [c for c in self.calls if c[0] != "read" and (dry_run is None or c[3] == dry_run)]

    def reads(self) -> List[tuple]:
        return [c for c in self.calls if c[0] == "read"]


class ListSink:
    def __init__(self):
        self.results = []
        self.closed = False

    def emit(self, result) -> None:
        self.results.append(result)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def env_rules():
    return compile_rules([
        {"variations": ["env", "enviornment", "environmentid"], "normalizedKey": "environment"},
        {"variations": ["owner_name", "ownr"], "normalizedKey": "owner"},
    ])


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sink():
    return ListSink()


@pytest.fixture
def throttled():
    return TransportError("Too many requests", status_code=429)

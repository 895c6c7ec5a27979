"""Tag read/mutate contract between the engine and a cloud provider."""

from __future__ import annotations

import logging
import random
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Dict, Mapping, Optional

from .errors import TransportError

log = logging.getLogger(__name__)


class TagOperation(str, Enum):
    REMOVE = "Remove"
    MERGE = "Merge"


class TagTransport(ABC):
    """Reads and mutates the tags of a single resource."""

    @abstractmethod
    def read_tags(self, resource_id: str) -> Dict[str, str]:
        """Return the current tags of a resource. Raises TransportError."""
        pass

    @abstractmethod
    def mutate_tags(self, resource_id: str, operation: TagOperation,
                    tags: Mapping[str, str], dry_run: bool) -> Optional[str]:
        """Remove or merge tags; returns the provider's response text.

        With dry_run set the call must leave remote state untouched.
        Raises TransportError.
        """
        pass


# ----------------------------
# Retry with backoff
# ----------------------------
class RetryingTransport(TagTransport):
    """Retries throttled or transient provider failures with exponential backoff."""

    def __init__(self, inner: TagTransport, max_attempts: int = 5, base_delay: float = 1.0,
                 max_delay: float = 30.0, sleep: Callable[[float], None] = time.sleep):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.inner = inner
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    def _delay(self, attempt: int) -> float:
        backoff = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        return backoff + random.uniform(0, backoff * 0.2)

    def _call(self, what: str, resource_id: str, fn: Callable[[], object]):
        attempt = 1
        while True:
            try:
                return fn()
            except TransportError as e:
                if not e.retryable or attempt >= self.max_attempts:
                    raise
                wait = self._delay(attempt)
                log.warning("%s throttled for %s (attempt %d/%d), waiting %.1fs: %s",
                            what, resource_id, attempt, self.max_attempts, wait, e)
                self._sleep(wait)
                attempt += 1

    def read_tags(self, resource_id: str) -> Dict[str, str]:
        return self._call("read", resource_id, lambda: self.inner.read_tags(resource_id))

    def mutate_tags(self, resource_id: str, operation: TagOperation,
                    tags: Mapping[str, str], dry_run: bool) -> Optional[str]:
        return self._call(
            operation.value.lower(), resource_id,
            lambda: self.inner.mutate_tags(resource_id, operation, tags, dry_run),
        )

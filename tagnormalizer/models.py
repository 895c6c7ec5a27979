"""Per-resource records passed between the engine stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional


class Status(str, Enum):
    NO_CHANGE = "NoChange"
    DRY_RUN = "DryRun"
    SUCCESS = "Success"
    FAILED = "Failed"
    ERROR = "Error"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TagSnapshot:
    """Tags of one resource as read at the start of its processing cycle.

    Keys keep the provider's casing. The mapping is read-only so every stage
    works against the same baseline.
    """

    resource_id: str
    tags: Mapping[str, str]
    subscription_id: Optional[str] = None
    resource_group: Optional[str] = None
    resource_type: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags or {})))


@dataclass(frozen=True)
class TagDelta:
    to_remove: Mapping[str, str] = field(default_factory=dict)
    to_add: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        # nothing to add means nothing worth mutating
        return not self.to_add


@dataclass
class OperationResult:
    """Outcome of one resource's remove and add phases.

    A status of None means that phase has not been decided yet.
    """

    resource_id: str
    remove_status: Optional[Status] = None
    add_status: Optional[Status] = None
    error: Optional[str] = None
    http_response: str = ""
    subscription_id: Optional[str] = None
    resource_group: Optional[str] = None
    tags_removed: Dict[str, str] = field(default_factory=dict)
    tags_added: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_snapshot(cls, snapshot: TagSnapshot) -> "OperationResult":
        return cls(
            resource_id=snapshot.resource_id,
            subscription_id=snapshot.subscription_id,
            resource_group=snapshot.resource_group,
        )

    def add_error(self, message: str) -> None:
        self.error = f"{self.error}; {message}" if self.error else message

    def add_response(self, response: Optional[str]) -> None:
        if response:
            self.http_response = f"{self.http_response}; {response}" if self.http_response else response

    def mark_error(self, message: str) -> None:
        """Set every undecided phase to Error and record the message."""
        if self.remove_status is None:
            self.remove_status = Status.ERROR
        if self.add_status is None:
            self.add_status = Status.ERROR
        self.add_error(message)

    @property
    def is_error(self) -> bool:
        return Status.ERROR in (self.remove_status, self.add_status)

    def as_row(self) -> Dict[str, Any]:
        return {
            "SubscriptionId": self.subscription_id or "",
            "ResourceGroup": self.resource_group or "",
            "ResourceId": self.resource_id,
            "RemoveStatus": str(self.remove_status or ""),
            "AddStatus": str(self.add_status or ""),
            "TagsRemoved": ", ".join(f"{k}={v}" for k, v in self.tags_removed.items()),
            "TagsAdded": ", ".join(f"{k}={v}" for k, v in self.tags_added.items()),
            "Error": self.error or "",
            "HttpResponse": self.http_response,
        }


RESULT_FIELDS = (
    "SubscriptionId",
    "ResourceGroup",
    "ResourceId",
    "RemoveStatus",
    "AddStatus",
    "TagsRemoved",
    "TagsAdded",
    "Error",
    "HttpResponse",
)

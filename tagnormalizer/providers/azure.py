"""Azure: enumerate resources per resource group and mutate tags at scope."""

from __future__ import annotations

import fnmatch
import logging
import threading
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from azure.core.exceptions import AzureError, HttpResponseError
from azure.identity import DefaultAzureCredential
from azure.mgmt.resource import ResourceManagementClient, SubscriptionClient
from azure.mgmt.resource.resources.models import Tags, TagsPatchResource

from ..errors import TransportError
from ..models import TagSnapshot
from ..transport import TagOperation, TagTransport

log = logging.getLogger(__name__)

# TagsPatchResource operation names
AZURE_OPERATIONS = {
    TagOperation.REMOVE: "Delete",
    TagOperation.MERGE: "Merge",
}


def subscription_of(resource_id: str) -> str:
    parts = resource_id.split("/")
    if len(parts) < 3 or parts[1].lower() != "subscriptions":
        raise TransportError(f"not an Azure resource id: {resource_id}")
    return parts[2]


def _as_transport_error(e: AzureError) -> TransportError:
    if isinstance(e, HttpResponseError):
        code = getattr(getattr(e, "error", None), "code", None)
        return TransportError(str(e.message or e), status_code=e.status_code, code=code)
    return TransportError(str(e))


class AzureProvider:
    """Subscription and resource discovery."""

    def __init__(self, credential=None,
                 client_factory: Optional[Callable[[Any, str], Any]] = None):
        self.credential = credential
        self._client_factory = client_factory or ResourceManagementClient

    def authenticate(self) -> None:
        if self.credential is None:
            self.credential = DefaultAzureCredential()

    def get_accounts(self) -> List[Dict[str, Any]]:
        client = SubscriptionClient(self.credential)
        subscriptions = []
        for sub in client.subscriptions.list():
            subscriptions.append({
                "id": sub.subscription_id,
                "name": sub.display_name,
                "state": getattr(sub.state, "value", sub.state) or "",
            })
        log.info("Found %d subscriptions", len(subscriptions))
        return subscriptions

    def enumerate_resources(self, subscription_id: str,
                            resource_group_filter: Optional[str] = None) -> Iterator[TagSnapshot]:
        """Yield resources group by group, in the order Azure lists them.

        ``resource_group_filter`` is a case-insensitive shell pattern matched
        against resource group names. A subscription whose groups cannot be
        listed, or a group whose resources cannot be listed, is logged and
        skipped.
        """
        pattern = resource_group_filter.lower() if resource_group_filter else None
        try:
            client = self._client_factory(self.credential, subscription_id)
            groups = [rg for rg in client.resource_groups.list()
                      if not pattern or fnmatch.fnmatchcase(rg.name.lower(), pattern)]
        except AzureError as e:
            log.warning("Failed listing resource groups in subscription %s, skipping it: %s",
                        subscription_id, e)
            return
        for rg in groups:
            log.info("Scanning resource group %s/%s", subscription_id, rg.name)
            try:
                for resource in client.resources.list_by_resource_group(rg.name):
                    yield TagSnapshot(
                        resource_id=resource.id,
                        tags=resource.tags or {},
                        subscription_id=subscription_id,
                        resource_group=rg.name,
                        resource_type=resource.type,
                    )
            except AzureError as e:
                log.warning("Failed scanning resource group %s: %s", rg.name, e)


class AzureTagTransport(TagTransport):
    """Tag reads and patches through the ARM Tags API."""

    def __init__(self, credential,
                 client_factory: Optional[Callable[[Any, str], Any]] = None):
        self.credential = credential
        self._client_factory = client_factory or ResourceManagementClient
        self._clients: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def _client(self, resource_id: str):
        sub_id = subscription_of(resource_id)
        with self._lock:
            client = self._clients.get(sub_id)
            if client is None:
                client = self._client_factory(self.credential, sub_id)
                self._clients[sub_id] = client
        return client

    def read_tags(self, resource_id: str) -> Dict[str, str]:
        client = self._client(resource_id)
        try:
            resource = client.tags.get_at_scope(resource_id)
        except AzureError as e:
            raise _as_transport_error(e) from e
        properties = getattr(resource, "properties", None)
        return dict(getattr(properties, "tags", None) or {})

    def mutate_tags(self, resource_id: str, operation: TagOperation,
                    tags: Mapping[str, str], dry_run: bool) -> Optional[str]:
        az_op = AZURE_OPERATIONS[operation]
        if dry_run:
            # ARM has no what-if for tag patches; reading the scope proves the
            # resource exists and is reachable with the current credential.
            current = self.read_tags(resource_id)
            return f"WhatIf: {az_op} {len(tags)} tag(s) on a resource with {len(current)} tag(s)"

        client = self._client(resource_id)
        patch = TagsPatchResource(operation=az_op, properties=Tags(tags=dict(tags)))
        try:
            poller = client.tags.begin_update_at_scope(resource_id, patch)
            poller.result()
        except AzureError as e:
            raise _as_transport_error(e) from e
        return f"{az_op}: {poller.status()}"

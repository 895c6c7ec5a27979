"""AWS: Resource Groups Tagging API discovery and tag mutation.

AWS has no subscriptions or resource groups; the region plays the role of
the subscription scope in results, and the resource type filter replaces the
resource group filter.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import TransportError
from ..models import TagSnapshot
from ..transport import TagOperation, TagTransport

log = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"
RESOURCES_PER_PAGE = 50


def region_of(arn: str, default: str = DEFAULT_REGION) -> str:
    parts = arn.split(":")
    if len(parts) < 6 or parts[0] != "arn":
        raise TransportError(f"not an AWS ARN: {arn}")
    return parts[3] or default


def _tags_from_list(tag_list: Optional[List[Dict[str, str]]]) -> Dict[str, str]:
    return {t["Key"]: t.get("Value", "") for t in tag_list or []}


def _as_transport_error(e: Exception) -> TransportError:
    if isinstance(e, ClientError):
        err = e.response.get("Error", {})
        status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return TransportError(err.get("Message") or str(e), status_code=status, code=err.get("Code"))
    return TransportError(str(e))


def _tagging_client(region: str):
    return boto3.client("resourcegroupstaggingapi", region_name=region)


class AwsProvider:
    """Discover tagged resources in one region."""

    def __init__(self, client_factory: Callable[[str], Any] = _tagging_client):
        self._client_factory = client_factory

    def enumerate_resources(self, region: str,
                            resource_type_filter: Optional[List[str]] = None) -> Iterator[TagSnapshot]:
        """Yield tagged resources of one region page by page.

        A region whose listing fails is logged and left, possibly after some
        of its pages were already yielded; the caller moves on to the next
        region.
        """
        params: Dict[str, Any] = {"ResourcesPerPage": RESOURCES_PER_PAGE}
        if resource_type_filter:
            params["ResourceTypeFilters"] = list(resource_type_filter)
        yielded = 0
        try:
            client = self._client_factory(region)
            paginator = client.get_paginator("get_resources")
            for page in paginator.paginate(**params):
                for r in page.get("ResourceTagMappingList", []):
                    arn = r.get("ResourceARN")
                    if not arn:
                        continue
                    yield TagSnapshot(
                        resource_id=arn,
                        tags=_tags_from_list(r.get("Tags")),
                        subscription_id=region,
                        resource_type=arn.split(":")[2] if arn.count(":") >= 2 else None,
                    )
                    yielded += 1
        except (ClientError, BotoCoreError) as e:
            log.warning("Tagging API failed in %s after %d resource(s), skipping the rest of the region: %s",
                        region, yielded, e)


class AwsTagTransport(TagTransport):
    def __init__(self, client_factory: Callable[[str], Any] = _tagging_client):
        self._client_factory = client_factory
        self._clients: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def _client(self, arn: str):
        region = region_of(arn)
        with self._lock:
            if region not in self._clients:
                self._clients[region] = self._client_factory(region)
            return self._clients[region]

    def read_tags(self, resource_id: str) -> Dict[str, str]:
        client = self._client(resource_id)
        try:
            resp = client.get_resources(ResourceARNList=[resource_id])
        except (ClientError, BotoCoreError) as e:
            raise _as_transport_error(e) from e
        for r in resp.get("ResourceTagMappingList", []):
            if r.get("ResourceARN") == resource_id:
                return _tags_from_list(r.get("Tags"))
        # untagged resources are not listed at all
        return {}

    def mutate_tags(self, resource_id: str, operation: TagOperation,
                    tags: Mapping[str, str], dry_run: bool) -> Optional[str]:
        if dry_run:
            current = self.read_tags(resource_id)
            return f"WhatIf: {operation.value} {len(tags)} tag(s) on a resource with {len(current)} tag(s)"

        client = self._client(resource_id)
        try:
            if operation is TagOperation.REMOVE:
                resp = client.untag_resources(ResourceARNList=[resource_id], TagKeys=list(tags))
            else:
                resp = client.tag_resources(ResourceARNList=[resource_id], Tags=dict(tags))
        except (ClientError, BotoCoreError) as e:
            raise _as_transport_error(e) from e

        failed = (resp.get("FailedResourcesMap") or {}).get(resource_id)
        if failed:
            raise TransportError(
                failed.get("ErrorMessage") or "tagging request rejected",
                status_code=failed.get("StatusCode"),
                code=failed.get("ErrorCode"),
            )
        status = resp.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return f"{operation.value}: HTTP {status}" if status else operation.value

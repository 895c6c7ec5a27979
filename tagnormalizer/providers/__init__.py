"""Cloud provider collaborators: resource enumeration and tag transport."""

from typing import Iterable, Iterator

from ..models import TagSnapshot

PROVIDERS = ("azure", "aws")


def excluding_types(resources: Iterable[TagSnapshot], excluded: Iterable[str]) -> Iterator[TagSnapshot]:
    """Drop resources whose provider type is on the deny list (case-insensitive)."""
    deny = {t.lower() for t in excluded}
    for snapshot in resources:
        if deny and (snapshot.resource_type or "").lower() in deny:
            continue
        yield snapshot

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Tuple
import logging

from ..errors import FilterValidationError, StoreError
from ..filters import Filter, FilterInstance, FilterStatus
from ..settings import DEFAULT_MAX_TREE_DEPTH
from ..validation import validate_filter

log = logging.getLogger("pyfacet.store")


@dataclass
class PublishResult:
    """
    Outcome of publishing one filter. The filter record itself was saved;
    each instance upsert is reported separately.
    """
    filter: Filter
    succeeded: List[FilterInstance] = field(default_factory=list)
    failed: List[Tuple[FilterInstance, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filter": self.filter.to_dict(),
            "succeeded": [i.to_dict() for i in self.succeeded],
            "failed": [{"instance": i.to_dict(), "error": msg} for i, msg in self.failed],
        }


async def publish_filter(store, flt: Filter, *, max_depth: int = DEFAULT_MAX_TREE_DEPTH) -> PublishResult:
    """
    Validate, save the filter as published with a bumped version, then
    upsert each of its instances in order.

    Raises FilterValidationError before any write if the filter is not
    publishable, and StoreError if saving the filter record fails.
    Instance failures do not stop the batch; they are collected in the
    result so the caller can retry or reconcile just those.
    """
    candidate = replace(flt, status=FilterStatus.PUBLISHED)
    errors = validate_filter(candidate, max_depth=max_depth)
    if errors:
        raise FilterValidationError(errors)
    if flt.id is None:
        raise ValueError("A filter must be saved as a draft before it is published")

    saved = await store.update_filter(replace(candidate, version=flt.version + 1))
    log.info("Published filter %s v%d", saved.id, saved.version)

    result = PublishResult(filter=saved)
    for instance in saved.instances:
        instance = replace(instance, filter_id=saved.id)
        try:
            if instance.id:
                stored = await store.update_instance(instance)
            else:
                stored = await store.create_instance(saved.id, instance)
        except (StoreError, ValueError) as e:
            log.warning("Instance upsert failed for filter %s target %s: %s", saved.id, instance.target_ref, e)
            result.failed.append((instance, str(e)))
            continue
        result.succeeded.append(stored)
    return result


__all__ = ["PublishResult", "publish_filter"]

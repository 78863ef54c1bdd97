"""
Registration and subscription engine.

One FilterEngine is created per application session and handed to whoever
needs it. It owns the current filter values, the registered instances, a
predicate per target and the subscribers of each target. A value change
rebuilds the combined predicate of exactly the targets bound to that
filter, then calls their subscribers.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple
import asyncio
import logging

from ..filters import Filter, FilterInstance
from ..predicates import Predicate, combine_predicates, generate_predicate, strict_equals

log = logging.getLogger("pyfacet.engine")

Callback = Callable[[], None]

_MISSING = object()
_PRIMITIVES = (str, int, float, bool)


class DefinitionLoader(Protocol):
    async def get_filter(self, filter_id: str) -> Filter: ...


def _same_value(old: Any, new: Any) -> bool:
    # identity for containers, strict equality for primitives
    if old is _MISSING:
        return False
    if old is new:
        return True
    if not isinstance(old, _PRIMITIVES) or not isinstance(new, _PRIMITIVES):
        return False
    return strict_equals(old, new)


class FilterEngine:
    def __init__(self, loader: DefinitionLoader):
        self._loader = loader
        self.active_filters: Dict[str, Any] = {}
        self.registered_instances: Dict[str, FilterInstance] = {}
        self.predicate_cache: Dict[str, Predicate] = {}
        self._subscribers: Dict[str, Dict[Callback, None]] = {}
        self._definitions: Dict[str, Filter] = {}
        self._generations: Dict[str, int] = {}
        self._inflight: Dict[str, asyncio.Task] = {}

    # ---- Registration -------------------------------------------------------

    def register_instance(self, instance: FilterInstance) -> None:
        """Insert or overwrite an instance. Does not recompute anything."""
        if not instance.id:
            raise ValueError("Filter instance must have an id to be registered")
        self.registered_instances[instance.id] = instance

    @property
    def targets(self) -> List[str]:
        return list(dict.fromkeys(i.target_ref for i in self.registered_instances.values()))

    def find_affected_targets(self, filter_id: str) -> List[str]:
        refs = (
            i.target_ref
            for i in self.registered_instances.values()
            if i.filter_id == filter_id and i.is_active
        )
        return list(dict.fromkeys(refs))

    def instances_for_target(self, target_ref: str) -> List[FilterInstance]:
        return [
            i for i in self.registered_instances.values()
            if i.target_ref == target_ref and i.is_active
        ]

    # ---- Subscriptions ------------------------------------------------------

    def subscribe(self, target_ref: str, callback: Callback) -> Callable[[], None]:
        """
        Call `callback` whenever the target's predicate is rebuilt. Returns
        a function that removes the subscription.
        """
        self._subscribers.setdefault(target_ref, {})[callback] = None

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(target_ref)
            if callbacks is not None:
                callbacks.pop(callback, None)

        return unsubscribe

    def subscriber_count(self, target_ref: str) -> int:
        return len(self._subscribers.get(target_ref, {}))

    def notify_subscribers(self, target_refs: Iterable[str]) -> None:
        for ref in target_refs:
            for callback in list(self._subscribers.get(ref, {})):
                try:
                    callback()
                except Exception:
                    log.exception("Error in subscriber callback for target %s", ref)

    def get_predicate_for_target(self, target_ref: str) -> Predicate:
        return self.predicate_cache.get(target_ref) or Predicate.neutral()

    # ---- Definitions --------------------------------------------------------

    async def get_filter_definition(self, filter_id: str) -> Filter:
        cached = self._definitions.get(filter_id)
        if cached is not None:
            return cached
        flt = await self._loader.get_filter(filter_id)
        self._definitions[filter_id] = flt
        return flt

    async def build_combined_predicate(self, instances: List[FilterInstance]) -> Predicate:
        predicates: List[Predicate] = []
        for instance in instances:
            value = self.active_filters.get(instance.filter_id)
            if value is None:
                continue
            flt = await self.get_filter_definition(instance.filter_id)
            if flt.is_deprecated:
                log.debug("Skipping deprecated filter %s", instance.filter_id)
                continue
            if flt.definition is None:
                continue
            predicates.append(generate_predicate(flt.definition, value))
        return combine_predicates(predicates)

    # ---- Recomputation ------------------------------------------------------

    async def _rebuild(self, target_ref: str, generation: int) -> bool:
        predicate = await self.build_combined_predicate(self.instances_for_target(target_ref))
        if self._generations.get(target_ref) != generation:
            log.debug("Discarding stale predicate for %s (generation %d)", target_ref, generation)
            return False
        self.predicate_cache[target_ref] = predicate
        return True

    def _schedule(self, target_ref: str) -> asyncio.Task:
        generation = self._generations.get(target_ref, 0) + 1
        self._generations[target_ref] = generation

        previous = self._inflight.get(target_ref)
        if previous is not None and not previous.done():
            log.debug("Superseding in-flight rebuild of %s", target_ref)
            previous.cancel()

        task = asyncio.ensure_future(self._rebuild(target_ref, generation))
        self._inflight[target_ref] = task

        def _done(t: asyncio.Task, ref: str = target_ref) -> None:
            if self._inflight.get(ref) is t:
                del self._inflight[ref]

        task.add_done_callback(_done)
        return task

    async def recompute_predicates(
        self, target_refs: Iterable[str]
    ) -> Tuple[List[str], List[BaseException]]:
        """
        Rebuild every listed target concurrently and wait for all of them.
        Returns the targets whose new predicate was stored, plus any
        failures. Targets superseded by a newer rebuild are in neither.
        """
        scheduled = [(ref, self._schedule(ref)) for ref in target_refs]
        if not scheduled:
            return [], []

        results = await asyncio.gather(*(t for _, t in scheduled), return_exceptions=True)
        fresh: List[str] = []
        failures: List[BaseException] = []
        for (ref, _), res in zip(scheduled, results):
            if isinstance(res, asyncio.CancelledError):
                log.debug("Rebuild of %s was superseded", ref)
            elif isinstance(res, BaseException):
                log.warning("Rebuild of %s failed: %s", ref, res)
                failures.append(res)
            elif res:
                fresh.append(ref)
        return fresh, failures

    async def _refresh(self, target_refs: Iterable[str]) -> List[str]:
        fresh, failures = await self.recompute_predicates(target_refs)
        self.notify_subscribers(fresh)
        if failures:
            raise failures[0]
        return fresh

    async def set_value(self, filter_id: str, new_value: Any) -> List[str]:
        """
        Record a filter's value and refresh the targets it is bound to.
        Returns the targets that were rebuilt and notified; setting the
        value it already has does nothing.
        """
        old_value = self.active_filters.get(filter_id, _MISSING)
        if _same_value(old_value, new_value):
            return []
        self.active_filters[filter_id] = new_value
        return await self._refresh(self.find_affected_targets(filter_id))

    async def clear_scope(self, scope_id: str) -> List[str]:
        """
        Reset every filter value to None and refresh all affected targets.

        `scope_id` does not narrow anything yet: every active filter is
        cleared regardless of scope.
        """
        affected: Dict[str, None] = {}
        for filter_id in list(self.active_filters):
            self.active_filters[filter_id] = None
            affected.update(dict.fromkeys(self.find_affected_targets(filter_id)))
        log.debug("Clearing scope %s: %d targets affected", scope_id, len(affected))
        return await self._refresh(list(affected))

    async def recompute_target(self, target_ref: str) -> List[str]:
        return await self._refresh([target_ref])

    async def set_instance_active(self, instance_id: str, active: bool) -> List[str]:
        instance = self.registered_instances[instance_id]
        if instance.is_active == active:
            return []
        self.registered_instances[instance_id] = replace(instance, is_active=active)
        return await self._refresh([instance.target_ref])

    async def aclose(self) -> None:
        pending = [t for t in self._inflight.values() if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._inflight.clear()


__all__ = ["FilterEngine", "DefinitionLoader", "Callback"]

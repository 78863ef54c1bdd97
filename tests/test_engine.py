"""
Tests for the registration and subscription engine.
"""

import asyncio

import pytest

from pyfacet.engine import FilterEngine
from pyfacet.errors import StoreError
from pyfacet.filters import FilterStatus

from .conftest import FakeLoader, make_filter, make_instance, single_condition


def _recorder(log, name):
    def callback():
        log.append(name)
    return callback


# ============================================================================
# Registration and lookups
# ============================================================================

class TestRegistration:

    def test_registration_does_not_compute(self, engine, loader):
        assert engine.predicate_cache == {}
        assert loader.calls == []

    def test_register_overwrites_by_id(self, engine):
        engine.register_instance(make_instance("i1", "F2", "T9"))
        assert engine.registered_instances["i1"].target_ref == "T9"
        assert engine.find_affected_targets("F1") == ["T2"]

    def test_instance_needs_id(self, engine):
        with pytest.raises(ValueError):
            engine.register_instance(make_instance("", "F1", "T1"))

    def test_inactive_instances_are_not_affected(self, engine):
        engine.register_instance(make_instance("i2", "F1", "T2", active=False))
        assert engine.find_affected_targets("F1") == ["T1"]

    def test_neutral_predicate_before_any_value(self, engine):
        pred = engine.get_predicate_for_target("T1")
        assert pred.client_predicate is None
        assert pred.server_params == {}


# ============================================================================
# set_value
# ============================================================================

class TestSetValue:

    @pytest.mark.asyncio
    async def test_recomputes_only_affected_targets(self, engine, rows):
        notified = []
        for ref in ("T1", "T2", "T3"):
            engine.subscribe(ref, _recorder(notified, ref))
        t3_before = engine.get_predicate_for_target("T3")

        refreshed = await engine.set_value("F1", "EU")

        assert refreshed == ["T1", "T2"]
        assert notified == ["T1", "T2"]
        assert set(engine.predicate_cache) == {"T1", "T2"}
        assert engine.get_predicate_for_target("T3") == t3_before
        assert engine.subscriber_count("T3") == 1
        assert [r["id"] for r in engine.get_predicate_for_target("T1").filter_rows(rows)] == [1, 3]
        assert engine.get_predicate_for_target("T2").server_params == {"region": "EU"}

    @pytest.mark.asyncio
    async def test_unchanged_value_is_a_noop(self, engine, loader):
        notified = []
        engine.subscribe("T1", _recorder(notified, "T1"))

        await engine.set_value("F1", "EU")
        fetched = list(loader.calls)
        assert await engine.set_value("F1", "EU") == []

        assert notified == ["T1"]
        assert loader.calls == fetched

    @pytest.mark.asyncio
    async def test_same_list_reference_is_a_noop_but_equal_copy_is_not(self, engine):
        notified = []
        engine.subscribe("T3", _recorder(notified, "T3"))
        value = ["open"]
        await engine.set_value("F2", value)
        await engine.set_value("F2", value)
        await engine.set_value("F2", ["open"])
        assert notified == ["T3", "T3"]

    @pytest.mark.asyncio
    async def test_int_and_float_of_same_number_are_unchanged(self, engine):
        notified = []
        engine.subscribe("T3", _recorder(notified, "T3"))
        await engine.set_value("F2", 1)
        assert await engine.set_value("F2", 1.0) == []
        await engine.set_value("F2", "1")
        await engine.set_value("F2", True)
        assert notified == ["T3", "T3", "T3"]

    @pytest.mark.asyncio
    async def test_definitions_are_cached(self, engine, loader):
        await engine.set_value("F1", "EU")
        await engine.set_value("F1", "US")
        assert loader.calls.count("F1") <= 2

        loader.calls.clear()
        await engine.set_value("F1", "APAC")
        assert loader.calls == []

    @pytest.mark.asyncio
    async def test_filters_on_one_target_are_and_combined(self, engine, loader, rows):
        engine.register_instance(make_instance("i4", "F2", "T1"))
        await engine.set_value("F1", "EU")
        await engine.set_value("F2", ["closed"])

        pred = engine.get_predicate_for_target("T1")
        assert [r["id"] for r in pred.filter_rows(rows)] == [3]
        assert pred.server_params == {"region": "EU", "status[]": ["closed"]}

    @pytest.mark.asyncio
    async def test_none_value_drops_the_filter(self, engine, rows):
        await engine.set_value("F1", "EU")
        await engine.set_value("F1", None)
        pred = engine.get_predicate_for_target("T1")
        assert pred.client_predicate is None
        assert pred.filter_rows(rows) == rows

    @pytest.mark.asyncio
    async def test_deprecated_filters_are_skipped(self, engine, loader, region_definition):
        loader.add(make_filter("F1", region_definition, status=FilterStatus.DEPRECATED))
        await engine.set_value("F1", "EU")
        assert engine.get_predicate_for_target("T1").server_params == {}

    @pytest.mark.asyncio
    async def test_faulty_subscriber_does_not_block_others(self, engine, caplog):
        notified = []

        def boom():
            raise RuntimeError("subscriber failed")

        engine.subscribe("T1", boom)
        engine.subscribe("T1", _recorder(notified, "second"))

        await engine.set_value("F1", "EU")

        assert notified == ["second"]
        assert "Error in subscriber callback" in caplog.text

    @pytest.mark.asyncio
    async def test_store_failure_propagates_after_good_targets_notify(self, loader):
        loader.add(make_filter("F3", single_condition("a", "eq")))
        loader.failures["F3"] = "backend down"
        eng = FilterEngine(loader)
        eng.register_instance(make_instance("i1", "F1", "T1"))
        eng.register_instance(make_instance("i2", "F1", "T2"))
        eng.register_instance(make_instance("i3", "F3", "T2"))
        notified = []
        eng.subscribe("T1", _recorder(notified, "T1"))
        eng.subscribe("T2", _recorder(notified, "T2"))

        with pytest.raises(StoreError, match="backend down"):
            await eng.set_value("F3", "x")
        assert notified == []

        with pytest.raises(StoreError, match="backend down"):
            await eng.set_value("F1", "EU")
        assert notified == ["T1"]
        assert "T1" in eng.predicate_cache
        assert "T2" not in eng.predicate_cache


# ============================================================================
# Subscriptions
# ============================================================================

class TestSubscribe:

    @pytest.mark.asyncio
    async def test_unsubscribe(self, engine):
        notified = []
        unsubscribe = engine.subscribe("T1", _recorder(notified, "T1"))
        unsubscribe()
        unsubscribe()
        await engine.set_value("F1", "EU")
        assert notified == []

    @pytest.mark.asyncio
    async def test_same_callback_registers_once(self, engine):
        notified = []
        callback = _recorder(notified, "T1")
        engine.subscribe("T1", callback)
        engine.subscribe("T1", callback)
        await engine.set_value("F1", "EU")
        assert notified == ["T1"]

    @pytest.mark.asyncio
    async def test_registration_order_is_kept(self, engine):
        notified = []
        for name in ("a", "b", "c"):
            engine.subscribe("T1", _recorder(notified, name))
        await engine.set_value("F1", "EU")
        assert notified == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_subscriber_sees_fresh_predicate(self, engine):
        seen = []
        engine.subscribe("T1", lambda: seen.append(engine.get_predicate_for_target("T1").server_params))
        await engine.set_value("F1", "US")
        assert seen == [{"region": "US"}]


# ============================================================================
# clear_scope and explicit refreshes
# ============================================================================

class TestClearScope:

    @pytest.mark.asyncio
    async def test_clears_every_filter(self, engine):
        await engine.set_value("F1", "EU")
        await engine.set_value("F2", ["open"])
        notified = []
        for ref in ("T1", "T2", "T3"):
            engine.subscribe(ref, _recorder(notified, ref))

        refreshed = await engine.clear_scope("dashboard-1")

        assert sorted(refreshed) == ["T1", "T2", "T3"]
        assert sorted(notified) == ["T1", "T2", "T3"]
        assert all(v is None for v in engine.active_filters.values())
        for ref in ("T1", "T2", "T3"):
            assert engine.get_predicate_for_target(ref).client_predicate is None

    @pytest.mark.asyncio
    async def test_scope_id_does_not_narrow_the_clear(self, engine):
        # the scope argument is accepted but ignored; every filter is cleared
        await engine.set_value("F1", "EU")
        await engine.set_value("F2", ["open"])
        await engine.clear_scope("only-T3-scope")
        assert engine.active_filters == {"F1": None, "F2": None}

    @pytest.mark.asyncio
    async def test_recompute_target_seeds_initial_state(self, engine):
        engine.active_filters["F1"] = "EU"
        assert await engine.recompute_target("T1") == ["T1"]
        assert engine.get_predicate_for_target("T1").server_params == {"region": "EU"}

    @pytest.mark.asyncio
    async def test_toggling_an_instance(self, engine, rows):
        await engine.set_value("F1", "EU")
        assert await engine.set_instance_active("i1", False) == ["T1"]
        assert engine.get_predicate_for_target("T1").client_predicate is None
        assert await engine.set_instance_active("i1", False) == []
        await engine.set_instance_active("i1", True)
        assert engine.get_predicate_for_target("T1").server_params == {"region": "EU"}

    @pytest.mark.asyncio
    async def test_toggling_unknown_instance(self, engine):
        with pytest.raises(KeyError):
            await engine.set_instance_active("nope", True)


# ============================================================================
# Superseded rebuilds
# ============================================================================

class TestSupersede:

    @pytest.mark.asyncio
    async def test_newer_value_supersedes_in_flight_rebuild(self, region_definition):
        loader = FakeLoader({"F1": make_filter("F1", region_definition)})
        loader.gates["F1"] = asyncio.Event()
        eng = FilterEngine(loader)
        eng.register_instance(make_instance("i1", "F1", "T1"))
        notified = []
        eng.subscribe("T1", _recorder(notified, "T1"))

        older = asyncio.ensure_future(eng.set_value("F1", "EU"))
        await asyncio.sleep(0)
        newer = asyncio.ensure_future(eng.set_value("F1", "US"))
        await asyncio.sleep(0)
        loader.gates["F1"].set()

        assert await older == []
        assert await newer == ["T1"]
        assert notified == ["T1"]
        assert eng.get_predicate_for_target("T1").server_params == {"region": "US"}

    @pytest.mark.asyncio
    async def test_aclose_cancels_in_flight_work(self, region_definition):
        loader = FakeLoader({"F1": make_filter("F1", region_definition)})
        loader.gates["F1"] = asyncio.Event()
        eng = FilterEngine(loader)
        eng.register_instance(make_instance("i1", "F1", "T1"))

        pending = asyncio.ensure_future(eng.set_value("F1", "EU"))
        await asyncio.sleep(0)
        await eng.aclose()

        assert await pending == []
        assert eng.predicate_cache == {}

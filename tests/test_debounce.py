"""Tests for debounce module."""
import asyncio
import pytest

from src.config import SearchConfig
from src.debounce import DebounceTimer, Debouncer
from src.search_state import PatientListSearch, SearchStateStore


DELAY_MS = 100
SETTLE = DELAY_MS / 1000 * 3


@pytest.mark.asyncio
class TestDebounceTimer:
    async def test_fires_after_delay(self):
        fired = []
        timer = DebounceTimer(DELAY_MS / 1000, lambda: fired.append(True))
        timer.start()
        assert timer.pending
        await asyncio.sleep(SETTLE)
        assert fired == [True]
        assert not timer.pending

    async def test_cancel_prevents_firing(self):
        fired = []
        timer = DebounceTimer(DELAY_MS / 1000, lambda: fired.append(True))
        timer.start()
        timer.cancel()
        await asyncio.sleep(SETTLE)
        assert fired == []

    async def test_reset_restarts_countdown(self):
        fired = []
        timer = DebounceTimer(DELAY_MS / 1000, lambda: fired.append(True))
        timer.start()
        await asyncio.sleep(DELAY_MS / 1000 / 2)
        timer.reset()
        await asyncio.sleep(DELAY_MS / 1000 / 2)
        assert fired == []
        await asyncio.sleep(SETTLE)
        assert fired == [True]


class TestDebounceTimerWithoutLoop:
    def test_start_requires_running_loop(self):
        timer = DebounceTimer(0.01, lambda: None)
        with pytest.raises(RuntimeError):
            timer.start()


@pytest.mark.asyncio
class TestDebouncer:
    async def test_burst_delivers_last_value_once(self):
        delivered = []
        debouncer = Debouncer(DELAY_MS, delivered.append)
        for value in ["j", "jo", "joh", "john"]:
            debouncer.push(value)
            await asyncio.sleep(0.005)
        assert delivered == []
        await asyncio.sleep(SETTLE)
        assert delivered == ["john"]

    async def test_separate_bursts_deliver_separately(self):
        delivered = []
        debouncer = Debouncer(DELAY_MS, delivered.append)
        debouncer.push("a")
        await asyncio.sleep(SETTLE)
        debouncer.push("b")
        await asyncio.sleep(SETTLE)
        assert delivered == ["a", "b"]

    async def test_flush_delivers_now(self):
        delivered = []
        debouncer = Debouncer(DELAY_MS, delivered.append)
        debouncer.push("now")
        debouncer.flush()
        assert delivered == ["now"]
        await asyncio.sleep(SETTLE)
        assert delivered == ["now"]

    async def test_flush_without_pending_is_noop(self):
        delivered = []
        Debouncer(DELAY_MS, delivered.append).flush()
        assert delivered == []

    async def test_cancel_drops_pending(self):
        delivered = []
        debouncer = Debouncer(DELAY_MS, delivered.append)
        debouncer.push("stale")
        debouncer.cancel()
        await asyncio.sleep(SETTLE)
        assert delivered == []


class TestWithoutEventLoop:
    def test_debouncer_delivers_immediately(self):
        delivered = []
        debouncer = Debouncer(300, delivered.append)
        debouncer.push("a")
        debouncer.push("b")
        assert delivered == ["a", "b"]
        assert not debouncer.pending

    def test_store_with_default_delay_applies_query(self, patients, kv_store, today):
        store = SearchStateStore(patients, kv_store, clock=lambda: today)
        seen = []
        store.subscribe(seen.append)

        store.update_filter(query="john")

        assert store.filters.query == "john"
        assert store.effective_query == "john"
        assert [r.patient.name for r in store.results] == ["John Doe", "Bob Johnson"]
        assert len(seen) == 1

    def test_list_view_with_default_delay_applies_query(self, patients):
        list_search = PatientListSearch(patients)
        list_search.update_filter(search_query="jane")
        assert [p.name for p in list_search.results] == ["Jane Smith"]


class TestZeroDelay:
    def test_delivers_synchronously(self):
        delivered = []
        debouncer = Debouncer(0, delivered.append)
        debouncer.push("a")
        debouncer.push("b")
        assert delivered == ["a", "b"]
        assert not debouncer.pending


@pytest.mark.asyncio
class TestDebouncedStores:
    async def test_typing_burst_recomputes_once(self, patients, kv_store, today):
        store = SearchStateStore(patients, kv_store, SearchConfig(debounce_ms=DELAY_MS), clock=lambda: today)
        updates = []
        store.subscribe(updates.append)

        for text in ["j", "jo", "joh", "john"]:
            store.update_filter(query=text)

        assert store.filters.query == "john"
        assert store.effective_query == ""
        assert store.result_count == 3

        await asyncio.sleep(SETTLE)
        assert len(updates) == 1
        assert store.effective_query == "john"
        assert store.result_count == 2

    async def test_reset_discards_pending_query(self, patients, kv_store, today):
        store = SearchStateStore(patients, kv_store, SearchConfig(debounce_ms=DELAY_MS), clock=lambda: today)
        store.update_filter(query="jane")
        store.reset_filters()

        await asyncio.sleep(SETTLE)
        assert store.effective_query == ""
        assert store.result_count == 3

    async def test_other_filters_apply_immediately(self, patients, kv_store, today):
        store = SearchStateStore(patients, kv_store, SearchConfig(debounce_ms=DELAY_MS), clock=lambda: today)
        store.update_filter(risk_level="high")
        assert store.result_count == 2

    async def test_list_view_debounces_query(self, patients):
        list_search = PatientListSearch(patients, SearchConfig(debounce_ms=DELAY_MS))
        list_search.update_filter(search_query="doe")
        assert list_search.result_count == 3
        await asyncio.sleep(SETTLE)
        assert [p.name for p in list_search.results] == ["John Doe"]

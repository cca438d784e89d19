"""
Tests for the polling loop state machine and poll cycle.

Collaborators are in-memory fakes; time is an injected clock.
"""

import asyncio
import threading
from contextlib import asynccontextmanager
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from vinted_sniper.detect.policy import FilterPolicy, PolicyHolder
from vinted_sniper.ingest.base import RateLimitedError, SearchClient, TransientSearchError
from vinted_sniper.normalize.listing import ListingNormalizer
from vinted_sniper.notify.dedupe import SeenItemStore
from vinted_sniper.storage.blob_store import JsonBlobStore
from vinted_sniper.worker.poller import LoopState, PollingLoop
from vinted_sniper.worker.runtime_state import BotRuntimeState


class FakeClock:
    def __init__(self, now: int = 1_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now


class FakeSession:
    def __init__(self, results: dict):
        self.results = results
        self.terms: list[str] = []

    async def search(self, term):
        self.terms.append(term)
        outcome = self.results.get(term, [])
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeSearchClient(SearchClient):
    def __init__(self, results: dict):
        self.session_obj = FakeSession(results)
        self.opened = 0
        self.closed = 0

    @asynccontextmanager
    async def session(self):
        self.opened += 1
        try:
            yield self.session_obj
        finally:
            self.closed += 1


def item(item_id, title="Felpa", price="10", photo=True, **extra):
    raw = {"id": item_id, "title": title, "price": price}
    if photo:
        raw["photo_url"] = f"https://img/{item_id}.jpg"
    raw.update(extra)
    return raw


class TestPollingLoop:
    """Test tick decisions and cycle behavior."""

    def setup_method(self):
        self.clock = FakeClock()
        self.notifier = AsyncMock()
        self.notifier.notify.return_value = True
        self.state = BotRuntimeState(poll_interval_ms=60_000, search_terms=["nike"])
        self.holder = PolicyHolder(FilterPolicy(max_price=Decimal("40")))

    def _loop(self, tmp_path, results: dict) -> PollingLoop:
        self.search_client = FakeSearchClient(results)
        self.store = SeenItemStore(JsonBlobStore(tmp_path), clock=self.clock)
        return PollingLoop(
            search_client=self.search_client,
            notifier=self.notifier,
            seen_store=self.store,
            policy_holder=self.holder,
            runtime_state=self.state,
            normalizer=ListingNormalizer("https://www.vinted.it"),
            backoff_delay_ms=30_000,
            idle_tick_ms=5_000,
            search_timeout=1,
            notify_timeout=1,
            clock=self.clock,
        )

    @pytest.mark.asyncio
    async def test_paused_skips_cycle(self, tmp_path):
        loop = self._loop(tmp_path, {"nike": [item(1)]})
        self.state.paused = True

        delay = await loop.tick()

        assert loop.state == LoopState.IDLE
        assert delay == 5.0
        assert self.search_client.opened == 0
        self.notifier.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_backoff_skips_cycle(self, tmp_path):
        loop = self._loop(tmp_path, {"nike": [item(1)]})
        self.state.backoff_until = self.clock.now + 2_000

        delay = await loop.tick()

        assert loop.state == LoopState.BACKOFF
        assert delay == 2.0
        assert self.search_client.opened == 0

        self.state.backoff_until = self.clock.now + 20_000
        assert await loop.tick() == 5.0

    @pytest.mark.asyncio
    async def test_cycle_notifies_accepted_once(self, tmp_path):
        results = {"nike": [item(1), item(2, price="100"), item(3)]}
        loop = self._loop(tmp_path, results)

        delay = await loop.tick()

        assert loop.state == LoopState.POLLING
        assert delay == 60.0
        summary = loop.last_summary
        assert summary.found == 3
        assert summary.accepted == 2
        assert summary.notified == 2
        assert self.notifier.notify.await_count == 2
        assert self.search_client.closed == 1

        await loop.tick()
        assert self.notifier.notify.await_count == 2
        assert loop.last_summary.skipped_seen == 2

    @pytest.mark.asyncio
    async def test_notifications_in_ranked_order(self, tmp_path):
        results = {"nike": [item(1, price="39"), item(2, price="1")]}
        loop = self._loop(tmp_path, results)

        await loop.run_cycle()

        notified = [call.args[0].id for call in self.notifier.notify.await_args_list]
        assert notified == ["2", "1"]

    @pytest.mark.asyncio
    async def test_terms_merged_by_id(self, tmp_path):
        self.state.search_terms = ["nike", "adidas"]
        results = {
            "nike": [item(1, title="first copy")],
            "adidas": [item(1, title="second copy"), item(2)],
        }
        loop = self._loop(tmp_path, results)

        summary = await loop.run_cycle()

        assert self.search_client.session_obj.terms == ["nike", "adidas"]
        assert summary.found == 2
        titles = [call.args[0].title for call in self.notifier.notify.await_args_list]
        assert "first copy" in titles
        assert "second copy" not in titles

    @pytest.mark.asyncio
    async def test_search_rate_limit_sets_backoff(self, tmp_path):
        self.state.search_terms = ["nike", "adidas"]
        loop = self._loop(
            tmp_path,
            {"nike": RateLimitedError(source="vinted"), "adidas": [item(1)]},
        )

        delay = await loop.tick()

        assert loop.last_summary.rate_limited is True
        assert self.state.backoff_until == self.clock.now + 30_000
        assert self.search_client.session_obj.terms == ["nike"]
        assert self.search_client.closed == 1
        self.notifier.notify.assert_not_called()
        assert delay == 60.0

        assert await loop.tick() == 5.0
        assert loop.state == LoopState.BACKOFF

        self.clock.now += 30_000
        await loop.tick()
        assert loop.state == LoopState.POLLING

    @pytest.mark.asyncio
    async def test_notify_rate_limit_stops_cycle_without_recording(self, tmp_path):
        loop = self._loop(tmp_path, {"nike": [item(1), item(2)]})
        self.notifier.notify.side_effect = RateLimitedError(source="telegram")

        summary = await loop.run_cycle()

        assert summary.rate_limited is True
        assert self.notifier.notify.await_count == 1
        assert self.state.in_backoff(self.clock.now)
        assert self.store.is_new("1") is True
        assert self.store.is_new("2") is True

    @pytest.mark.asyncio
    async def test_retry_after_extends_backoff(self, tmp_path):
        loop = self._loop(tmp_path, {"nike": RateLimitedError(retry_after=120, source="vinted")})

        await loop.tick()

        assert self.state.backoff_until == self.clock.now + 120_000

    @pytest.mark.asyncio
    async def test_short_retry_after_keeps_configured_backoff(self, tmp_path):
        loop = self._loop(tmp_path, {"nike": [item(1)]})
        self.notifier.notify.side_effect = RateLimitedError(retry_after=5, source="telegram")

        await loop.run_cycle()

        assert self.state.backoff_until == self.clock.now + 30_000

    @pytest.mark.asyncio
    async def test_seen_record_written_off_event_loop(self, tmp_path):
        loop = self._loop(tmp_path, {"nike": [item(1)]})
        record = self.store.record
        threads = []

        def tracking_record(*args, **kwargs):
            threads.append(threading.get_ident())
            return record(*args, **kwargs)

        self.store.record = tracking_record

        await loop.run_cycle()

        assert len(threads) == 1
        assert threads[0] != threading.get_ident()
        assert self.store.is_new("1") is False

    @pytest.mark.asyncio
    async def test_failed_search_term_skipped(self, tmp_path):
        self.state.search_terms = ["nike", "adidas"]
        loop = self._loop(
            tmp_path,
            {"nike": TransientSearchError("HTTP 503"), "adidas": [item(5)]},
        )

        summary = await loop.run_cycle()

        assert summary.failed_terms == ["nike"]
        assert summary.notified == 1
        assert self.state.backoff_until == 0

    @pytest.mark.asyncio
    async def test_failed_notification_still_recorded(self, tmp_path):
        loop = self._loop(tmp_path, {"nike": [item(1), item(2)]})
        self.notifier.notify.side_effect = [False, RuntimeError("boom")]

        summary = await loop.run_cycle()

        assert summary.failed_notifications == 2
        assert summary.notified == 0
        assert self.store.is_new("1") is False
        assert self.store.is_new("2") is False

    @pytest.mark.asyncio
    async def test_slow_notification_times_out(self, tmp_path):
        loop = self._loop(tmp_path, {"nike": [item(1)]})
        loop.notify_timeout = 0.01

        async def slow(listing):
            await asyncio.sleep(1)
            return True

        self.notifier.notify.side_effect = slow
        summary = await loop.run_cycle()

        assert summary.failed_notifications == 1
        assert self.store.is_new("1") is False

    @pytest.mark.asyncio
    async def test_policy_change_applies_next_cycle(self, tmp_path):
        loop = self._loop(tmp_path, {"nike": [item(1, price="30")]})
        self.holder.update({"max_price": 20})

        summary = await loop.run_cycle()
        assert summary.accepted == 0

    @pytest.mark.asyncio
    async def test_interval_change_applies_to_next_sleep(self, tmp_path):
        loop = self._loop(tmp_path, {"nike": []})
        self.state.poll_interval_ms = 1_500
        assert await loop.tick() == 1.5

    @pytest.mark.asyncio
    async def test_cycle_exception_does_not_escape_tick(self, tmp_path):
        loop = self._loop(tmp_path, {})
        loop.search_client = MagicMock()
        loop.search_client.session.side_effect = RuntimeError("browser crashed")

        assert await loop.tick() == 60.0

    @pytest.mark.asyncio
    async def test_run_stops_on_event(self, tmp_path):
        loop = self._loop(tmp_path, {"nike": [item(1)]})
        self.state.poll_interval_ms = 0
        stop_event = asyncio.Event()

        async def notify(listing):
            stop_event.set()
            return True

        self.notifier.notify.side_effect = notify
        await asyncio.wait_for(loop.run(stop_event), timeout=2)

        assert self.notifier.notify.await_count == 1

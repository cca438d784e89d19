"""Polling loop: search -> filter -> rank -> dedupe -> notify, with pause and backoff."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from vinted_sniper import metrics
from vinted_sniper.detect.filters import evaluate
from vinted_sniper.detect.policy import PolicyHolder
from vinted_sniper.detect.ranking import rank
from vinted_sniper.ingest.base import RateLimitedError, SearchClient, SearchSession
from vinted_sniper.normalize.listing import Listing, ListingNormalizer
from vinted_sniper.notify.base import Notifier
from vinted_sniper.notify.dedupe import SeenItemStore, now_millis
from vinted_sniper.worker.runtime_state import BotRuntimeState

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    IDLE = "idle"
    BACKOFF = "backoff"
    POLLING = "polling"


@dataclass
class CycleSummary:
    """What happened during one poll cycle."""

    found: int = 0
    accepted: int = 0
    notified: int = 0
    failed_notifications: int = 0
    skipped_seen: int = 0
    failed_terms: list[str] = field(default_factory=list)
    rate_limited: bool = False


class PollingLoop:
    """
    Single cooperative worker driving the poll cycle.

    Each tick is one of three states: IDLE while the operator has paused the
    bot, BACKOFF while a rate limit is being waited out, POLLING otherwise.
    Ticks never overlap and no collaborator failure escapes a tick.
    """

    def __init__(
        self,
        search_client: SearchClient,
        notifier: Notifier,
        seen_store: SeenItemStore,
        policy_holder: PolicyHolder,
        runtime_state: BotRuntimeState,
        normalizer: ListingNormalizer,
        backoff_delay_ms: int = 30_000,
        idle_tick_ms: int = 5_000,
        search_timeout: float = 60.0,
        notify_timeout: float = 60.0,
        clock: Callable[[], int] = now_millis,
    ):
        self.search_client = search_client
        self.notifier = notifier
        self.seen_store = seen_store
        self.policy_holder = policy_holder
        self.runtime_state = runtime_state
        self.normalizer = normalizer
        self.backoff_delay_ms = backoff_delay_ms
        self.idle_tick_ms = idle_tick_ms
        self.search_timeout = search_timeout
        self.notify_timeout = notify_timeout
        self._clock = clock
        self.state = LoopState.IDLE
        self.last_summary: Optional[CycleSummary] = None

    def current_state(self) -> LoopState:
        """Decide the state for the next tick from the runtime flags."""
        if self.runtime_state.paused:
            return LoopState.IDLE
        if self.runtime_state.in_backoff(self._clock()):
            return LoopState.BACKOFF
        return LoopState.POLLING

    async def tick(self) -> float:
        """
        Run one tick of the state machine.

        Returns:
            Seconds to sleep before the next tick
        """
        self.state = self.current_state()
        metrics.record_tick(self.state.value)

        if self.state == LoopState.IDLE:
            logger.debug("Bot paused, skipping cycle")
            return self.idle_tick_ms / 1000

        if self.state == LoopState.BACKOFF:
            remaining = self.runtime_state.backoff_until - self._clock()
            logger.debug(f"In backoff for another {remaining}ms")
            return max(0, min(remaining, self.idle_tick_ms)) / 1000

        try:
            self.last_summary = await self.run_cycle()
            metrics.record_cycle(success=not self.last_summary.rate_limited)
        except Exception as e:
            logger.error(f"Poll cycle failed: {e}", exc_info=True)
            metrics.record_cycle(success=False)

        # Read after the cycle so an interval change applies to this sleep
        return self.runtime_state.poll_interval_ms / 1000

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick until stop_event is set."""
        logger.info("Polling loop started")
        while not stop_event.is_set():
            delay = await self.tick()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        logger.info("Polling loop stopped")

    def _enter_backoff(self, error: RateLimitedError) -> None:
        """Back off for the configured delay, or longer if the remote side asked for it."""
        delay_ms = self.backoff_delay_ms
        if error.retry_after:
            delay_ms = max(delay_ms, int(error.retry_after) * 1000)
        self.runtime_state.backoff_until = self._clock() + delay_ms
        metrics.record_rate_limit(error.source)
        logger.warning(
            f"Rate limited by {error.source or 'collaborator'}, backing off for {delay_ms}ms"
        )

    async def run_cycle(self) -> CycleSummary:
        """
        Run one full search -> filter -> rank -> notify cycle.

        Returns:
            CycleSummary for the cycle
        """
        summary = CycleSummary()

        evicted = await asyncio.to_thread(self.seen_store.cleanup)
        stats = self.seen_store.stats()
        metrics.update_seen_items(stats.total)
        logger.info(
            f"Seen cache: {stats.total} items ({stats.recent_count} recent, "
            f"{evicted} evicted)"
        )

        terms = self.runtime_state.search_terms
        if not terms:
            logger.warning("No search terms configured, nothing to poll")
            return summary

        async with self.search_client.session() as session:
            try:
                listings = await self._search_all(session, terms, summary)
            except RateLimitedError as e:
                self._enter_backoff(e)
                summary.rate_limited = True
                return summary

        summary.found = len(listings)
        policy = self.policy_holder.get()
        results = [evaluate(listing, policy) for listing in listings]
        ranked = rank(listings, results)
        summary.accepted = len(ranked)
        metrics.record_filtering(summary.found, summary.accepted)

        for listing, result in zip(listings, results):
            if not result.passed:
                logger.debug(f"Rejected {listing.id}: {'; '.join(result.reasons)}")

        logger.info(f"Cycle found {summary.found} listings, {summary.accepted} accepted")

        for listing in ranked:
            if not self.seen_store.is_new(listing.id):
                summary.skipped_seen += 1
                continue
            try:
                await self._notify(listing, summary)
            except RateLimitedError as e:
                self._enter_backoff(e)
                summary.rate_limited = True
                break

        return summary

    async def _search_all(
        self, session: SearchSession, terms: list[str], summary: CycleSummary
    ) -> list[Listing]:
        """Search every term and merge results by id, keeping the first occurrence."""
        merged: dict[str, Listing] = {}
        for term in terms:
            try:
                raw_items = await asyncio.wait_for(
                    session.search(term), timeout=self.search_timeout
                )
            except RateLimitedError:
                metrics.record_search(success=False)
                raise
            except asyncio.TimeoutError:
                logger.warning(f"Search for '{term}' timed out after {self.search_timeout}s")
                metrics.record_search(success=False)
                summary.failed_terms.append(term)
                continue
            except Exception as e:
                logger.warning(f"Search for '{term}' failed: {type(e).__name__}: {e}")
                metrics.record_search(success=False)
                summary.failed_terms.append(term)
                continue

            metrics.record_search(success=True)
            for listing in self.normalizer.normalize_many(raw_items):
                merged.setdefault(listing.id, listing)
            logger.debug(f"Search for '{term}' returned {len(raw_items)} items")

        return list(merged.values())

    async def _notify(self, listing: Listing, summary: CycleSummary) -> None:
        """
        Notify one listing and record it as seen.

        The listing is recorded even if delivery failed, so a broken message
        is not retried every cycle. A rate limit propagates without recording.
        """
        delivered = False
        try:
            delivered = await asyncio.wait_for(
                self.notifier.notify(listing), timeout=self.notify_timeout
            )
        except RateLimitedError:
            metrics.record_notification(success=False)
            raise
        except asyncio.TimeoutError:
            logger.error(f"Notification for {listing.id} timed out after {self.notify_timeout}s")
        except Exception as e:
            logger.error(f"Notification for {listing.id} failed: {type(e).__name__}: {e}")

        metrics.record_notification(success=bool(delivered))
        if delivered:
            summary.notified += 1
        else:
            summary.failed_notifications += 1

        # Whole-document rewrite with fsync; keep it off the event loop
        await asyncio.to_thread(
            self.seen_store.record, listing.id, title=listing.title, price=listing.price
        )

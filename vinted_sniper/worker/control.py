"""Operator control surface over the running bot."""

import logging
from typing import Any, Optional

from vinted_sniper.detect.policy import FilterPolicy, PolicyHolder, PolicyUpdate
from vinted_sniper.logging_config import RecentLogHandler
from vinted_sniper.notify.dedupe import SeenItemStore
from vinted_sniper.worker.runtime_state import BotRuntimeState, RuntimeStateRepository

logger = logging.getLogger(__name__)


class BotController:
    """
    The only mutation point into the bot's runtime state from outside the loop.

    Interval, search-term and policy changes are persisted key by key so they
    survive a restart without masking later environment changes. Pause is not
    persisted.
    """

    def __init__(
        self,
        runtime_state: BotRuntimeState,
        policy_holder: PolicyHolder,
        seen_store: SeenItemStore,
        repository: Optional[RuntimeStateRepository] = None,
        log_buffer: Optional[RecentLogHandler] = None,
    ):
        self.runtime_state = runtime_state
        self.policy_holder = policy_holder
        self.seen_store = seen_store
        self.repository = repository
        self.log_buffer = log_buffer

    def _persist(self, **changes) -> None:
        if self.repository is not None:
            self.repository.save_changes(**changes)

    def pause(self) -> None:
        self.runtime_state.paused = True
        logger.info("Bot paused by operator")

    def resume(self) -> None:
        self.runtime_state.paused = False
        logger.info("Bot resumed by operator")

    def set_poll_interval(self, ms: int) -> None:
        """
        Change the delay between poll cycles; applies from the next sleep.

        Raises:
            ValueError: If ms is negative
        """
        if ms < 0:
            raise ValueError("poll interval must be >= 0")
        self.runtime_state.poll_interval_ms = ms
        logger.info(f"Poll interval set to {ms}ms")
        self._persist(poll_interval_ms=ms)

    def update_policy(self, partial: PolicyUpdate | dict[str, Any]) -> FilterPolicy:
        """
        Merge a partial policy update into the current policy.

        Args:
            partial: Changed fields only

        Returns:
            The new policy

        Raises:
            pydantic.ValidationError: If the update is invalid
        """
        update = partial if isinstance(partial, PolicyUpdate) else PolicyUpdate.model_validate(partial)
        policy = self.policy_holder.update(update)
        self._persist(policy_update=update)
        return policy

    def set_search_terms(self, terms: list[str]) -> list[str]:
        """
        Replace the search terms.

        Raises:
            ValueError: If no non-empty term is given
        """
        cleaned = [t.strip() for t in terms if t and t.strip()]
        if not cleaned:
            raise ValueError("at least one search term is required")
        self.runtime_state.search_terms = cleaned
        logger.info(f"Search terms set to {cleaned}")
        self._persist(search_terms=cleaned)
        return cleaned

    def clear_seen(self) -> None:
        self.seen_store.clear()

    def get_stats(self) -> dict[str, Any]:
        stats = self.seen_store.stats()
        state = self.runtime_state.snapshot()
        return {
            "total": stats.total,
            "recent": stats.recent_count,
            "paused": state["paused"],
            "poll_interval_ms": state["poll_interval_ms"],
            "backoff_until": state["backoff_until"],
            "search_terms": state["search_terms"],
        }

    def get_recent_logs(self) -> list[dict]:
        """Recent log entries, newest first."""
        if self.log_buffer is None:
            return []
        return self.log_buffer.recent()

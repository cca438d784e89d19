"""Process-wide bot runtime state and its persisted overrides."""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError

from vinted_sniper.detect.policy import FilterPolicy, PolicyUpdate
from vinted_sniper.storage.blob_store import CorruptDocumentError, JsonBlobStore

logger = logging.getLogger(__name__)

SNAPSHOT_NAME = "settings"


class BotRuntimeState:
    """
    Mutable runtime state shared by the polling loop and the control surface.

    ``paused`` is operator-imposed, ``backoff_until`` (epoch millis) is set by
    the loop after a rate limit. Each field has a single writer; the lock only
    keeps reads of several fields consistent.
    """

    def __init__(
        self,
        poll_interval_ms: int,
        search_terms: list[str] | None = None,
        paused: bool = False,
    ):
        if poll_interval_ms < 0:
            raise ValueError("poll_interval_ms must be >= 0")
        self._lock = threading.Lock()
        self._paused = paused
        self._poll_interval_ms = int(poll_interval_ms)
        self._backoff_until = 0
        self._search_terms = list(search_terms or [])

    @property
    def paused(self) -> bool:
        with self._lock:
            return self._paused

    @paused.setter
    def paused(self, value: bool) -> None:
        with self._lock:
            self._paused = bool(value)

    @property
    def poll_interval_ms(self) -> int:
        with self._lock:
            return self._poll_interval_ms

    @poll_interval_ms.setter
    def poll_interval_ms(self, value: int) -> None:
        if value < 0:
            raise ValueError("poll_interval_ms must be >= 0")
        with self._lock:
            self._poll_interval_ms = int(value)

    @property
    def backoff_until(self) -> int:
        with self._lock:
            return self._backoff_until

    @backoff_until.setter
    def backoff_until(self, value: int) -> None:
        with self._lock:
            self._backoff_until = int(value)

    @property
    def search_terms(self) -> list[str]:
        with self._lock:
            return list(self._search_terms)

    @search_terms.setter
    def search_terms(self, terms: list[str]) -> None:
        with self._lock:
            self._search_terms = [t.strip() for t in terms if t and t.strip()]

    def in_backoff(self, now_ms: Optional[int] = None) -> bool:
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        return now_ms < self.backoff_until

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "paused": self._paused,
                "poll_interval_ms": self._poll_interval_ms,
                "backoff_until": self._backoff_until,
                "search_terms": list(self._search_terms),
            }


@dataclass
class PersistedSettings:
    """
    Operator changes that survive a restart.

    Only keys the operator actually changed are present; everything else
    falls back to the environment.
    """

    poll_interval_ms: Optional[int] = None
    search_terms: Optional[list[str]] = None
    policy_changes: dict[str, Any] = field(default_factory=dict)

    def apply_policy(self, policy: FilterPolicy) -> FilterPolicy:
        """Overlay the persisted policy fields on a base policy."""
        if not self.policy_changes:
            return policy
        return policy.merged(**self.policy_changes)


class RuntimeStateRepository:
    """Reads and merges the persisted settings overrides."""

    def __init__(self, blob_store: JsonBlobStore):
        self.blob_store = blob_store
        self._lock = threading.Lock()

    def _read_document(self) -> dict:
        try:
            document = self.blob_store.load(SNAPSHOT_NAME)
        except CorruptDocumentError as e:
            logger.error(f"Settings snapshot unreadable, using defaults: {e}")
            return {}

        if document is None:
            return {}
        if not isinstance(document, dict):
            logger.error("Settings snapshot has unexpected shape, using defaults")
            return {}
        return document

    def load(self) -> PersistedSettings:
        """
        Load the persisted overrides.

        Returns:
            PersistedSettings; empty when missing or corrupt
        """
        document = self._read_document()
        persisted = PersistedSettings()

        interval = document.get("poll_interval_ms")
        if isinstance(interval, (int, float)) and not isinstance(interval, bool) and interval >= 0:
            persisted.poll_interval_ms = int(interval)

        terms = document.get("search_terms")
        if isinstance(terms, list) and terms:
            persisted.search_terms = [str(t) for t in terms if str(t).strip()]

        policy = document.get("policy")
        if isinstance(policy, dict):
            known = {k: v for k, v in policy.items() if k in PolicyUpdate.model_fields}
            try:
                persisted.policy_changes = PolicyUpdate.model_validate(known).changes()
            except ValidationError as e:
                logger.error(f"Persisted policy invalid, using environment policy: {e}")

        return persisted

    def save_changes(
        self,
        poll_interval_ms: Optional[int] = None,
        search_terms: Optional[list[str]] = None,
        policy_update: Optional[PolicyUpdate] = None,
    ) -> None:
        """
        Merge changed keys into the persisted document.

        Args:
            poll_interval_ms: New poll interval, if changed
            search_terms: New search terms, if changed
            policy_update: Policy fields the operator changed, if any
        """
        with self._lock:
            document = self._read_document()
            if poll_interval_ms is not None:
                document["poll_interval_ms"] = int(poll_interval_ms)
            if search_terms is not None:
                document["search_terms"] = list(search_terms)
            if policy_update is not None:
                policy = document.get("policy")
                if not isinstance(policy, dict):
                    policy = {}
                policy.update(policy_update.to_document())
                document["policy"] = policy

            try:
                self.blob_store.save(SNAPSHOT_NAME, document)
                logger.info(f"Settings snapshot updated: {sorted(document)}")
            except OSError as e:
                logger.error(f"Failed to persist settings snapshot: {e}")

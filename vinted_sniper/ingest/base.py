"""Search collaborator interface for marketplace catalogs."""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, Optional


class RateLimitedError(RuntimeError):
    """Raised by a collaborator when the remote side rate limits us (429)."""

    def __init__(self, retry_after: Optional[int] = None, source: str = ""):
        super().__init__(f"Rate limited{f' by {source}' if source else ''}")
        self.retry_after = retry_after
        self.source = source


class TransientSearchError(RuntimeError):
    """Raised when a search fails for a reason worth retrying next cycle."""

    pass


class SearchSession(ABC):
    """A search handle valid for one poll cycle."""

    @abstractmethod
    async def search(self, term: str) -> list[dict[str, Any]]:
        """
        Search the catalog for newly listed items.

        Args:
            term: Search term (brand or keyword)

        Returns:
            Raw item records, newest first

        Raises:
            RateLimitedError: If the marketplace rate limits the request
            TransientSearchError: If the request fails transiently
        """
        pass


class SearchClient(ABC):
    """Factory of per-cycle search sessions."""

    @abstractmethod
    def session(self) -> AbstractAsyncContextManager[SearchSession]:
        """Acquire the resources for one cycle; released when the block exits."""
        pass

    async def close(self):  # pragma: no cover
        """Override if the client keeps resources beyond a session."""
        return None

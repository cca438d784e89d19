"""Notify collaborator interface."""

from abc import ABC, abstractmethod

from vinted_sniper.normalize.listing import Listing


class NotificationError(RuntimeError):
    """Raised when a notification cannot be delivered by any method."""

    pass


class Notifier(ABC):
    """Delivers accepted listings to the operator."""

    @abstractmethod
    async def notify(self, listing: Listing) -> bool:
        """
        Send a notification for a listing.

        Args:
            listing: Accepted, previously unseen listing

        Returns:
            True if delivered, False otherwise

        Raises:
            RateLimitedError: If the messaging service rate limits us
        """
        pass

    async def send_system_message(self, text: str) -> bool:
        """Send an operational message; no-op unless overridden."""
        return False

    async def close(self):
        """Release any held resources."""
        return None

"""Telegram Bot API notifier for accepted listings."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from vinted_sniper.ingest.base import RateLimitedError
from vinted_sniper.normalize.listing import Listing
from vinted_sniper.notify.base import NotificationError, Notifier
from vinted_sniper.notify.formatters import format_caption

logger = logging.getLogger(__name__)

MAX_ALBUM_PHOTOS = 10


class DeliveryMethod(str, Enum):
    """How a notification ended up being delivered."""

    ALBUM = "album"
    PHOTO = "photo"
    TEXT_ONLY = "text_only"
    FAILED = "failed"


@dataclass
class DeliveryResult:
    """Tagged outcome of the delivery pipeline."""

    method: DeliveryMethod
    message_id: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.method != DeliveryMethod.FAILED


class TelegramNotifier(Notifier):
    """
    Sends listing notifications to one Telegram chat.

    Delivery is a sequence of fallible steps: a photo album when the listing
    has several photos, then a single photo, then a text-only message. The
    first step that succeeds wins.
    """

    def __init__(
        self,
        token: str,
        chat_id: str,
        timeout: float = 30.0,
        api_url: str = "https://api.telegram.org",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.chat_id = chat_id
        self.base_url = f"{api_url.rstrip('/')}/bot{token}"
        self.timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            )
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _call(self, method: str, payload: dict) -> Optional[dict]:
        """
        Call a Bot API method.

        Returns:
            The "result" field on success, None on an API or transport error

        Raises:
            RateLimitedError: On HTTP 429
        """
        client = await self._get_client()
        try:
            response = await client.post(f"{self.base_url}/{method}", json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"Telegram {method} failed: {type(e).__name__}: {e}")
            return None

        if response.status_code == 429:
            retry_after = None
            try:
                retry_after = int(response.json().get("parameters", {}).get("retry_after"))
            except (ValueError, TypeError, AttributeError):
                pass
            raise RateLimitedError(retry_after=retry_after, source="telegram")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code != 200 or not data.get("ok"):
            logger.warning(
                f"Telegram {method} rejected: HTTP {response.status_code} "
                f"{data.get('description', '')}"
            )
            return None

        result = data.get("result")
        return result if result is not None else {}

    @staticmethod
    def _message_id(result) -> Optional[int]:
        if isinstance(result, list) and result:
            result = result[0]
        if isinstance(result, dict):
            return result.get("message_id")
        return None

    async def _send_album(self, listing: Listing, caption: str) -> Optional[DeliveryResult]:
        photos = listing.photo_urls[:MAX_ALBUM_PHOTOS]
        if len(photos) < 2:
            return None
        media = [{"type": "photo", "media": url} for url in photos]
        media[0]["caption"] = caption
        media[0]["parse_mode"] = "Markdown"
        result = await self._call("sendMediaGroup", {"chat_id": self.chat_id, "media": media})
        if result is None:
            return None
        return DeliveryResult(DeliveryMethod.ALBUM, self._message_id(result))

    async def _send_photo(self, listing: Listing, caption: str) -> Optional[DeliveryResult]:
        if not listing.photo_url:
            return None
        result = await self._call(
            "sendPhoto",
            {
                "chat_id": self.chat_id,
                "photo": listing.photo_url,
                "caption": caption,
                "parse_mode": "Markdown",
            },
        )
        if result is None:
            return None
        return DeliveryResult(DeliveryMethod.PHOTO, self._message_id(result))

    async def _send_text(self, listing: Listing, caption: str) -> Optional[DeliveryResult]:
        result = await self._call(
            "sendMessage",
            {
                "chat_id": self.chat_id,
                "text": caption,
                "parse_mode": "Markdown",
                "disable_web_page_preview": False,
            },
        )
        if result is None:
            return None
        return DeliveryResult(DeliveryMethod.TEXT_ONLY, self._message_id(result))

    async def deliver(self, listing: Listing) -> DeliveryResult:
        """
        Run the delivery pipeline for one listing.

        Args:
            listing: Listing to announce

        Returns:
            DeliveryResult tagged with the method that succeeded, or FAILED

        Raises:
            RateLimitedError: If Telegram rate limits any step
        """
        caption = format_caption(listing)
        for step in (self._send_album, self._send_photo, self._send_text):
            outcome = await step(listing, caption)
            if outcome is not None:
                logger.info(
                    f"Telegram notification for {listing.id} sent as {outcome.method.value}"
                )
                return outcome
            logger.debug(f"Telegram step {step.__name__} unavailable for {listing.id}")

        return DeliveryResult(DeliveryMethod.FAILED, error="all delivery methods failed")

    async def notify(self, listing: Listing) -> bool:
        result = await self.deliver(listing)
        if not result.ok:
            logger.error(f"Failed to send Telegram notification for {listing.id}: {result.error}")
        return result.ok

    async def send_system_message(self, text: str) -> bool:
        """Send an operational message to the chat."""
        result = await self._call(
            "sendMessage",
            {"chat_id": self.chat_id, "text": f"🤖 *Bot:* {text}", "parse_mode": "Markdown"},
        )
        if result is None:
            raise NotificationError("system message rejected by Telegram")
        return True

"""Normalize raw catalog records into canonical listings."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from vinted_sniper.normalize.age_parser import parse_age_minutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Listing:
    """Canonical marketplace listing evaluated by the filter engine."""

    id: str
    title: str
    price: Decimal
    currency: str = "EUR"
    description: str = ""
    brand: str = ""
    size: str = ""
    condition: str = ""
    has_image: bool = False
    age_minutes: Optional[int] = None
    seller_is_business: Optional[bool] = None
    url: str = ""
    photo_urls: tuple[str, ...] = field(default_factory=tuple)
    location: str = ""
    time_ago: Optional[str] = None

    @property
    def photo_url(self) -> str:
        return self.photo_urls[0] if self.photo_urls else ""


class ListingNormalizer:
    """
    Build Listing values from whatever the search collaborator returns.

    Accepts both the catalog API item shape (``brand_title``, ``size_title``,
    ``status``, ``photos``, nested ``price``) and flat records that already use
    listing field names.
    """

    def __init__(self, base_url: str = ""):
        self.base_url = base_url.rstrip("/")

    def normalize(self, raw: dict[str, Any]) -> Optional[Listing]:
        """
        Normalize one raw record.

        Args:
            raw: Raw record from the search collaborator

        Returns:
            Listing, or None when the record has no id/title or a negative price
        """
        if not isinstance(raw, dict):
            return None

        item_id = raw.get("id")
        title = raw.get("title")
        if item_id in (None, "") or not title:
            return None

        price, currency = self._parse_price(raw)
        if price < 0:
            logger.debug(f"Skipping listing {item_id}: negative price {price}")
            return None

        photo_urls = self._photo_urls(raw)
        time_ago = raw.get("time_ago") or None
        age_minutes = raw.get("age_minutes")
        if age_minutes is not None:
            try:
                age_minutes = max(0, int(age_minutes))
            except (TypeError, ValueError):
                age_minutes = None
        if age_minutes is None and time_ago:
            age_minutes = parse_age_minutes(str(time_ago))

        user = raw.get("user") if isinstance(raw.get("user"), dict) else {}
        seller = raw.get("seller") if isinstance(raw.get("seller"), dict) else {}
        business = raw.get("seller_is_business")
        if business is None:
            business = user.get("business", seller.get("business"))

        return Listing(
            id=str(item_id),
            title=str(title).strip(),
            price=price,
            currency=currency,
            description=self._text(raw.get("description")),
            brand=self._text(raw.get("brand_title", raw.get("brand"))),
            size=self._text(raw.get("size_title", raw.get("size"))),
            condition=self._text(raw.get("status", raw.get("condition"))),
            has_image=bool(photo_urls),
            age_minutes=age_minutes,
            seller_is_business=bool(business) if business is not None else None,
            url=self._absolute_url(raw.get("url") or raw.get("path") or ""),
            photo_urls=photo_urls,
            location=self._text(raw.get("location") or user.get("country_title")),
            time_ago=str(time_ago) if time_ago else None,
        )

    def normalize_many(self, records: list[dict[str, Any]]) -> list[Listing]:
        """Normalize a batch, dropping records that cannot be normalized."""
        listings = []
        for raw in records or []:
            listing = self.normalize(raw)
            if listing is None:
                logger.debug(f"Dropped unnormalizable record: {str(raw)[:120]}")
                continue
            listings.append(listing)
        return listings

    @staticmethod
    def _text(value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    def _parse_price(self, raw: dict[str, Any]) -> tuple[Decimal, str]:
        price = raw.get("price")
        total = raw.get("total_item_price")
        currency = raw.get("currency") or "EUR"

        amount: Any = price
        if isinstance(price, dict):
            amount = price.get("amount")
            currency = price.get("currency_code") or currency
        if amount in (None, "") and isinstance(total, dict):
            amount = total.get("amount")
            currency = total.get("currency_code") or currency

        if amount in (None, ""):
            return Decimal("0"), str(currency).upper()

        try:
            value = Decimal(str(amount).replace(",", ".").replace("€", "").strip())
        except InvalidOperation:
            logger.debug(f"Unparseable price {amount!r}, defaulting to 0")
            value = Decimal("0")
        if not value.is_finite():
            value = Decimal("0")
        return value, str(currency).upper()

    @staticmethod
    def _photo_urls(raw: dict[str, Any]) -> tuple[str, ...]:
        urls: list[str] = []
        for photo in raw.get("photos") or []:
            url = photo.get("url") if isinstance(photo, dict) else photo
            if url:
                urls.append(str(url))
        for url in raw.get("photo_urls") or []:
            if url and str(url) not in urls:
                urls.append(str(url))
        # Catalog items carry their main photo as a single object
        main = raw.get("photo")
        if isinstance(main, dict):
            high_res = main.get("high_resolution")
            url = main.get("url") or (high_res.get("url") if isinstance(high_res, dict) else None)
            if url and str(url) not in urls:
                urls.insert(0, str(url))
        single = raw.get("photo_url")
        if single and str(single) not in urls:
            urls.insert(0, str(single))
        return tuple(urls)

    def _absolute_url(self, url: str) -> str:
        if not url or url.startswith("http"):
            return url
        return f"{self.base_url}{url if url.startswith('/') else '/' + url}"

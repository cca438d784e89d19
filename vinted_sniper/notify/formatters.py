"""Telegram message formatting for listing notifications."""

from vinted_sniper.normalize.listing import Listing

TITLE_MAX_LENGTH = 50
DESCRIPTION_MAX_LENGTH = 300
CAPTION_MAX_LENGTH = 1024

_LOCATION_FLAGS = (
    (("italia", "italy"), "🇮🇹"),
    (("francia", "france"), "🇫🇷"),
    (("spagna", "spain", "españa"), "🇪🇸"),
    (("belgio", "belgium"), "🇧🇪"),
    (("olanda", "netherlands"), "🇳🇱"),
    (("germania", "germany"), "🇩🇪"),
    (("portogallo", "portugal"), "🇵🇹"),
    (("lussemburgo", "luxembourg"), "🇱🇺"),
    (("austria",), "🇦🇹"),
)

_CURRENCY_FLAGS = {
    "RON": "🇷🇴",
    "PLN": "🇵🇱",
    "CZK": "🇨🇿",
    "HUF": "🇭🇺",
    "GBP": "🇬🇧",
    "SEK": "🇸🇪",
}


def _strip_markdown(text: str) -> str:
    """Drop characters that would break legacy Telegram Markdown."""
    for char in ("_", "*", "`", "[", "]", "(", ")"):
        text = text.replace(char, "")
    return text


def country_flag(listing: Listing) -> str:
    """Pick a flag from the seller location, falling back to the currency."""
    location = (listing.location or "").lower()
    for names, flag in _LOCATION_FLAGS:
        if any(name in location for name in names):
            return flag
    return _CURRENCY_FLAGS.get((listing.currency or "").upper(), "🌍")


def format_caption(listing: Listing) -> str:
    """
    Format a listing as a Telegram Markdown caption.

    Args:
        listing: Listing to describe

    Returns:
        Caption text, at most CAPTION_MAX_LENGTH characters
    """
    title = _strip_markdown(listing.title)
    if len(title) > TITLE_MAX_LENGTH:
        title = title[:TITLE_MAX_LENGTH] + "..."

    flag = country_flag(listing)
    price = f"{listing.price:.2f} {listing.currency}" if listing.price else "N/A"

    lines = [
        f"🎯 *{title}*",
        "",
        f"💰 *Price:* {price}",
        f"🏷️ *Brand:* {_strip_markdown(listing.brand) or 'N/A'}",
        f"📏 *Size:* {_strip_markdown(listing.size) or 'N/A'}",
        f"✨ *Condition:* {_strip_markdown(listing.condition) or 'N/A'}",
    ]

    if listing.location:
        lines.append(f"📍 *Location:* {_strip_markdown(listing.location)} {flag}")
    else:
        lines.append(f"📍 *Origin:* {flag}")

    if listing.time_ago:
        lines.append(f"🕒 *Listed:* {_strip_markdown(listing.time_ago)}")

    if listing.description:
        description = _strip_markdown(listing.description)
        if len(description) > DESCRIPTION_MAX_LENGTH:
            description = description[:DESCRIPTION_MAX_LENGTH] + "..."
        lines.extend(["", "━━━━━━━━━━━━━━", "📝 *Description:*", f"_{description}_"])

    link = f"[🔗 View on Vinted]({listing.url})" if listing.url else ""
    caption = "\n".join(lines)
    budget = CAPTION_MAX_LENGTH - len(link) - 2
    if len(caption) > budget:
        caption = caption[: budget - 3] + "..."
    return f"{caption}\n\n{link}" if link else caption

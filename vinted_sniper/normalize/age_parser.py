"""Parse relative listing ages ("5 minuti fa", "an hour ago") into minutes."""

import re

# Unparseable ages are treated as very old so a max-age rule rejects them.
UNKNOWN_AGE_MINUTES = 9999

_SECONDS_RE = re.compile(r"second|secondi|segundo|seconde")
_MINUTES_RE = re.compile(r"(\d+)\s*(?:min|minuti|minute|minutos)")
_HOURS_RE = re.compile(r"(\d+)\s*(?:ora|ore|hour|hora|heure)")
_DAYS_RE = re.compile(r"(\d+)\s*(?:giorno|giorni|day|día|dia|jour)")

_ONE_MINUTE_IDIOMS = ("a minute", "one minute", "un minuto", "une minute")
_ONE_HOUR_IDIOMS = ("un'ora", "un ora", "an hour", "one hour", "una hora", "une heure")
_ONE_DAY_IDIOMS = ("un giorno", "a day", "one day", "un día", "un dia", "un jour")


def parse_age_minutes(text: str | None) -> int:
    """
    Convert a relative-time phrase into whole minutes.

    Patterns are tried in order and the first match wins: seconds, explicit
    minutes, "a minute", explicit hours, "an hour", explicit days, "a day".

    Args:
        text: Free-text relative time as shown by the marketplace

    Returns:
        Age in minutes, or UNKNOWN_AGE_MINUTES when nothing matches
    """
    if not text:
        return UNKNOWN_AGE_MINUTES

    value = text.lower().replace("’", "'")

    if _SECONDS_RE.search(value):
        return 1

    match = _MINUTES_RE.search(value)
    if match:
        return int(match.group(1))

    if any(idiom in value for idiom in _ONE_MINUTE_IDIOMS):
        return 1

    match = _HOURS_RE.search(value)
    if match:
        return int(match.group(1)) * 60

    if any(idiom in value for idiom in _ONE_HOUR_IDIOMS):
        return 60

    match = _DAYS_RE.search(value)
    if match:
        return int(match.group(1)) * 24 * 60

    if any(idiom in value for idiom in _ONE_DAY_IDIOMS):
        return 24 * 60

    return UNKNOWN_AGE_MINUTES

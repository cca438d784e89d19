"""Order accepted listings by desirability."""

from vinted_sniper.detect.filters import FilterResult
from vinted_sniper.normalize.listing import Listing


def rank(listings: list[Listing], results: list[FilterResult]) -> list[Listing]:
    """
    Keep passing listings and sort them by score, highest first.

    The sort is stable, so equal scores keep their input order (the
    marketplace's newest-first order).

    Args:
        listings: Candidate listings
        results: Filter results, positionally paired with listings

    Returns:
        Accepted listings in ranked order
    """
    accepted = [
        (listing, result)
        for listing, result in zip(listings, results)
        if result.passed
    ]
    accepted.sort(key=lambda pair: pair[1].score, reverse=True)
    return [listing for listing, _ in accepted]

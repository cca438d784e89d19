"""Prometheus metrics for the Vinted Sniper bot."""

import time

from prometheus_client import Counter, Gauge, Info

# Application info
app_info = Info("vinted_sniper", "Vinted Sniper application info")
app_info.info({"version": "2.0.0", "name": "vinted-sniper"})

# Poll cycle metrics
poll_cycles_total = Counter(
    "poll_cycles_total",
    "Total number of poll cycles",
    ["status"],
)

poll_ticks_total = Counter(
    "poll_ticks_total",
    "Total number of loop ticks by state",
    ["state"],
)

last_cycle_timestamp = Gauge(
    "poll_last_cycle_timestamp",
    "Timestamp of the last completed poll cycle",
)

# Search metrics
search_requests_total = Counter(
    "search_requests_total",
    "Total number of catalog searches",
    ["status"],
)

rate_limits_total = Counter(
    "rate_limits_total",
    "Total number of rate-limit signals received",
    ["source"],
)

# Listing metrics
listings_found_total = Counter(
    "listings_found_total",
    "Total number of listings returned by searches",
)

listings_accepted_total = Counter(
    "listings_accepted_total",
    "Total number of listings that passed the filters",
)

listings_rejected_total = Counter(
    "listings_rejected_total",
    "Total number of listings rejected by the filters",
)

# Notification metrics
notifications_total = Counter(
    "notifications_total",
    "Total number of listing notifications",
    ["status"],
)

seen_items = Gauge(
    "seen_items",
    "Number of live records in the seen-item cache",
)


def record_tick(state: str):
    """Record one loop tick."""
    poll_ticks_total.labels(state=state).inc()


def record_cycle(success: bool):
    """Record a finished poll cycle."""
    status = "success" if success else "error"
    poll_cycles_total.labels(status=status).inc()
    last_cycle_timestamp.set(time.time())


def record_search(success: bool):
    status = "success" if success else "error"
    search_requests_total.labels(status=status).inc()


def record_rate_limit(source: str):
    rate_limits_total.labels(source=source or "unknown").inc()


def record_filtering(found: int, accepted: int):
    """Record filter outcomes for one cycle."""
    listings_found_total.inc(found)
    listings_accepted_total.inc(accepted)
    listings_rejected_total.inc(max(0, found - accepted))


def record_notification(success: bool):
    status = "success" if success else "error"
    notifications_total.labels(status=status).inc()


def update_seen_items(total: int):
    seen_items.set(total)

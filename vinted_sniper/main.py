"""Main application entry point."""

import asyncio
import logging
import signal
import sys
from dataclasses import dataclass

from prometheus_client import start_http_server

from vinted_sniper.config import ConfigurationError, Settings, build_policy
from vinted_sniper.detect.policy import PolicyHolder
from vinted_sniper.ingest.base import RateLimitedError
from vinted_sniper.ingest.vinted_api import VintedCatalogClient
from vinted_sniper.logging_config import RecentLogHandler, setup_logging
from vinted_sniper.normalize.listing import ListingNormalizer
from vinted_sniper.notify.base import NotificationError
from vinted_sniper.notify.dedupe import SeenItemStore
from vinted_sniper.notify.telegram import TelegramNotifier
from vinted_sniper.storage.blob_store import JsonBlobStore
from vinted_sniper.worker.control import BotController
from vinted_sniper.worker.poller import PollingLoop
from vinted_sniper.worker.runtime_state import BotRuntimeState, RuntimeStateRepository

logger = logging.getLogger(__name__)


@dataclass
class Application:
    """Wired components of a running bot."""

    settings: Settings
    loop: PollingLoop
    controller: BotController
    search_client: VintedCatalogClient
    notifier: TelegramNotifier


def build_application(settings: Settings, log_buffer: RecentLogHandler | None = None) -> Application:
    """
    Wire every component from settings and the persisted snapshot.

    Each persisted key (poll interval, search terms, individual policy fields)
    overrides its environment value; keys never changed by the operator keep
    following the environment.
    """
    blob_store = JsonBlobStore(settings.data_path)
    repository = RuntimeStateRepository(blob_store)
    persisted = repository.load()

    policy = persisted.apply_policy(build_policy(settings))
    runtime_state = BotRuntimeState(
        poll_interval_ms=(
            persisted.poll_interval_ms
            if persisted.poll_interval_ms is not None
            else settings.poll_interval_ms
        ),
        search_terms=persisted.search_terms or settings.search_terms,
    )
    policy_holder = PolicyHolder(policy)

    seen_store = SeenItemStore(
        blob_store,
        retention_ms=int(settings.seen_retention_hours * 60 * 60 * 1000),
        recent_ms=int(settings.seen_recent_minutes * 60 * 1000),
    )

    search_client = VintedCatalogClient(
        settings.vinted_base_url,
        per_page=settings.search_per_page,
        timeout=settings.search_timeout_seconds,
    )
    notifier = TelegramNotifier(
        settings.telegram_token,
        settings.chat_id,
        timeout=settings.notify_timeout_seconds,
    )

    loop = PollingLoop(
        search_client=search_client,
        notifier=notifier,
        seen_store=seen_store,
        policy_holder=policy_holder,
        runtime_state=runtime_state,
        normalizer=ListingNormalizer(settings.vinted_base_url),
        backoff_delay_ms=settings.backoff_delay_ms,
        idle_tick_ms=settings.idle_tick_ms,
        search_timeout=settings.search_timeout_seconds,
        notify_timeout=settings.notify_timeout_seconds,
    )
    controller = BotController(
        runtime_state,
        policy_holder,
        seen_store,
        repository=repository,
        log_buffer=log_buffer,
    )
    return Application(settings, loop, controller, search_client, notifier)


async def run(settings: Settings, log_buffer: RecentLogHandler | None = None) -> None:
    """Run the bot until SIGINT/SIGTERM."""
    app = build_application(settings, log_buffer)
    stats = app.controller.get_stats()
    policy = app.controller.policy_holder.get()

    logger.info("Starting Vinted Sniper...")
    logger.info(f"Mode: {'brand' if settings.brand_mode else 'keyword'}")
    logger.info(f"Search terms: {stats['search_terms']}")
    logger.info(f"Max price: {policy.max_price}, max age: {policy.max_age_minutes} min")
    logger.info(f"Poll interval: {stats['poll_interval_ms']}ms")
    logger.info(f"Seen cache: {stats['total']} items")

    if settings.metrics_port > 0:
        start_http_server(settings.metrics_port)
        logger.info(f"Metrics exposed on port {settings.metrics_port}")

    stop_event = asyncio.Event()
    event_loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            event_loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops
            pass

    try:
        await app.notifier.send_system_message(
            f"Started, watching: {', '.join(stats['search_terms'])}"
        )
    except (NotificationError, RateLimitedError) as e:
        logger.warning(f"Startup message not delivered: {e}")

    try:
        await app.loop.run(stop_event)
    finally:
        logger.info("Shutting down Vinted Sniper...")
        await app.search_client.close()
        await app.notifier.close()


def main() -> int:
    settings = Settings()
    log_buffer = setup_logging(settings.log_level)

    try:
        settings.validate_required()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    try:
        asyncio.run(run(settings, log_buffer))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())

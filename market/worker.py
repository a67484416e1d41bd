"""Event dispatcher process: ``python -m market.worker [--once]``."""

import argparse
import logging
import time

from market.bus import EventDispatcher
from market.config import SagaConfig, settings
from market.consumers import default_subscriptions
from market.db_init import init_db
from market.models.database import SessionLocal

logger = logging.getLogger("market.worker")


def build_dispatcher(config: SagaConfig | None = None) -> EventDispatcher:
    config = config or SagaConfig.from_settings()
    return EventDispatcher(SessionLocal, default_subscriptions(config), config)


def run(once: bool = False, batch_size: int = 100) -> None:
    dispatcher = build_dispatcher()
    logger.info("Dispatcher started for subscriptions: %s", ", ".join(dispatcher.subscriptions))
    while True:
        report = dispatcher.run_once(limit=batch_size)
        if report.delivered or report.retried or report.dead_lettered:
            logger.info(
                "Dispatch pass: delivered=%s retried=%s dead_lettered=%s",
                report.delivered,
                report.retried,
                report.dead_lettered,
            )
        if once:
            return
        time.sleep(settings.WORKER_POLL_INTERVAL_SECONDS)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Deliver saga events to their subscribers.")
    parser.add_argument("--once", action="store_true", help="run a single dispatch pass and exit")
    parser.add_argument("--batch-size", type=int, default=100)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    init_db()
    try:
        run(once=args.once, batch_size=args.batch_size)
    except KeyboardInterrupt:
        logger.info("Dispatcher stopped.")


if __name__ == "__main__":
    main()

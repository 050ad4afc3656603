"""Demo entry point — generates sample analytics events and ships them in batches."""

import logging
import random
import signal
import sys
import threading
import time

from analytics_pipeline.analytics import Analytics
from analytics_pipeline.config import load_config, parse_args
from analytics_pipeline.errors import ConfigurationError
from analytics_pipeline.messages import identify, screen, track

SAMPLE_USERS = ["user-1", "user-2", "user-3", "user-4", "user-5"]
SAMPLE_EVENTS = [
    "Signed Up",
    "Logged In",
    "Product Viewed",
    "Product Added",
    "Checkout Started",
    "Order Completed",
]
SAMPLE_SCREENS = ["Home", "Search", "Cart", "Settings"]


def random_message():
    user_id = random.choice(SAMPLE_USERS)
    kind = random.random()
    if kind < 0.1:
        return identify(user_id, traits={"plan": random.choice(["free", "pro"])})
    if kind < 0.3:
        return screen(user_id, name=random.choice(SAMPLE_SCREENS))
    return track(
        user_id,
        event=random.choice(SAMPLE_EVENTS),
        properties={"value": round(random.uniform(1, 100), 2)},
    )


def generate_sample_events(
    analytics: Analytics,
    events_per_second: int,
    run_time: int,
    shutdown_event: threading.Event,
):
    """Enqueue random events at the given rate for *run_time* seconds."""
    for _ in range(run_time):
        if shutdown_event.is_set():
            break

        second_start = time.monotonic()
        for _ in range(events_per_second):
            if shutdown_event.is_set():
                break
            analytics.enqueue(random_message())

        # Sleep until the next second boundary
        remaining = 1.0 - (time.monotonic() - second_start)
        if remaining > 0 and not shutdown_event.is_set():
            shutdown_event.wait(timeout=remaining)


def main(argv=None):
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger(__name__)

    args = parse_args(argv)
    try:
        config = load_config(argv)
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    shutdown_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    analytics = Analytics(config)
    logger.info(
        "Generating %d events/s for %ds", args.events_per_second, args.run_time
    )

    try:
        generate_sample_events(
            analytics, args.events_per_second, args.run_time, shutdown_event
        )
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        analytics.shutdown()
        if not analytics.join(timeout=config.request_timeout * (config.max_retries + 1) + 5):
            logger.warning("Worker did not terminate in time")
        logger.info("Pipeline metrics: %s", analytics.metrics.snapshot())
    return 0


if __name__ == "__main__":
    sys.exit(main())

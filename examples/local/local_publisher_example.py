"""
Example script publishing random meters to a local OpenTSDB.
Run OpenTSDB locally (e.g. the petergrace/opentsdb-docker image) before starting it.
"""
import asyncio
import logging
import random
from datetime import timedelta

from opentsdb_publisher import InMemoryMeterRegistry, OpenTsdbConfig, OpenTsdbPublisher
from opentsdb_publisher.core.models.meters import TimeUnit

# Configure logging
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

PAGE_NAMES = ["home", "products", "cart", "checkout"]


async def simulate_traffic(registry: InMemoryMeterRegistry, duration: float) -> None:
    """Record random page loads for the given number of seconds."""
    loop = asyncio.get_running_loop()
    end = loop.time() + duration
    while loop.time() < end:
        page = random.choice(PAGE_NAMES)
        registry.timer("page.load", tags={"page": page}).record(random.uniform(50, 500), TimeUnit.MILLISECONDS)
        registry.counter("page.views", tags={"page": page}).increment()
        registry.summary("page.size", tags={"page": page}, base_unit="bytes").record(random.randint(1_000, 50_000))
        await asyncio.sleep(0.05)


async def main():
    """Run the example."""
    config = OpenTsdbConfig.from_env()
    if config.step.total_seconds() >= 60:
        config = config.model_copy(update={"step": timedelta(seconds=5)})
    logger.info(f"Publishing to {config.uri} every {config.step.total_seconds()} seconds")

    registry = InMemoryMeterRegistry()
    queue = []
    registry.gauge("work.queue.size", lambda: len(queue))

    publisher = OpenTsdbPublisher(registry, config)
    await publisher.start()
    try:
        await simulate_traffic(registry, duration=12)
    finally:
        await publisher.stop()


if __name__ == "__main__":
    asyncio.run(main())

"""
Standalone entry point: run the pipeline until SIGINT/SIGTERM.

Usage:
    python -m gateway_metrics

Configuration comes from METRICS_* environment variables (or .env).
"""

import asyncio
import logging
import signal

from gateway_metrics.core.config import settings
from gateway_metrics.runtime import MetricsRuntime

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger("gateway_metrics")


async def main() -> None:
    runtime = MetricsRuntime(settings)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await runtime.start()
    try:
        await stop.wait()
    finally:
        await runtime.stop()


if __name__ == "__main__":
    asyncio.run(main())

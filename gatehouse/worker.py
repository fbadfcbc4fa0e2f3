"""Worker Entry Point — `python -m gatehouse.worker` / `gatehouse-worker`.

Invariants:
    - SMTP connectivity is verified before any job is claimed; failure exits non-zero
    - SIGINT/SIGTERM stop claiming and drain in-flight jobs (bounded by
      WORKER_SHUTDOWN_TIMEOUT_SECONDS)
    - All handles are released on exit
"""

import asyncio
import logging
import signal
import sys

from gatehouse.bootstrap import build_services
from gatehouse.config import Settings, get_settings
from gatehouse.core.errors import GatehouseError
from gatehouse.infrastructure.observability import setup_logging
from gatehouse.services.worker import Worker

logger = logging.getLogger("gatehouse.worker")


async def run(settings: Settings) -> None:
    services = build_services(settings, with_email=True)
    try:
        await services.transport.verify()
        logger.info(
            f"SMTP connection verified ({settings.smtp_host}:{settings.smtp_port})",
        )
        worker = Worker(
            services.jobs,
            services.emails,
            concurrency=settings.worker_concurrency,
            poll_interval_ms=settings.worker_poll_interval_ms,
            shutdown_timeout_seconds=settings.worker_shutdown_timeout_seconds,
        )
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, worker.stop)
        await worker.run_forever()
    finally:
        await services.close()


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    try:
        asyncio.run(run(settings))
    except GatehouseError as e:
        logger.critical(
            f"Worker failed to start: {e.message}", extra={"error_code": e.code},
        )
        sys.exit(1)


if __name__ == "__main__":
    main()

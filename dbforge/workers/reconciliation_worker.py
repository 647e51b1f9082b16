from __future__ import annotations

import asyncio
import logging
import signal

from dbforge.core.config import get_settings
from dbforge.core.logging import configure_logging
from dbforge.persistence.db import engine
from dbforge.providers.factory import build_cluster_client, build_registry
from dbforge.services.reconciler import Reconciler

logger = logging.getLogger(__name__)


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    # Stop on SIGINT/SIGTERM so in-flight checks are cancelled instead of killed mid-write.
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Platforms without signal support fall back to KeyboardInterrupt.
            pass


async def run_worker(stop_event: asyncio.Event | None = None) -> None:
    settings = get_settings()
    stop_event = stop_event or asyncio.Event()
    cluster = await build_cluster_client(settings)
    try:
        registry = build_registry(settings, cluster)
        reconciler = Reconciler(registry)
        logger.info("reconciliation worker running with providers %s", registry.names())
        await reconciler.run_forever(stop_event)
    finally:
        await cluster.close()
        await engine.dispose()


async def _main() -> None:
    # Run the control loop in its own process for deployments that separate it from the API.
    configure_logging()
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)
    await run_worker(stop_event)


if __name__ == "__main__":
    asyncio.run(_main())

from __future__ import annotations

import logging

from dbforge.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging() -> None:
    # Configure the root logger once per process; later calls only adjust the level.
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=_LOG_FORMAT)
    root.setLevel(level)
    # Keep the Kubernetes client's request logging out of INFO output.
    logging.getLogger("kubernetes_asyncio").setLevel(max(level, logging.WARNING))

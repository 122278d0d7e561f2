from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"


def setup_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, force=True)
    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(max(logging.getLogger().level, logging.INFO))

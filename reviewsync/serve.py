from __future__ import annotations

import logging
import os

import uvicorn

from .server.config import DEFAULT_SERVER_CONFIG


def main() -> None:
    logging.basicConfig(
        level=os.getenv("REVIEWSYNC_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "reviewsync.app:app",
        host=DEFAULT_SERVER_CONFIG.host,
        port=DEFAULT_SERVER_CONFIG.port,
    )


if __name__ == "__main__":
    main()

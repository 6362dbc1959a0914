import os
import logging
import sys
import traceback
import time

import uvicorn

from fraudboard.api import create_app
from fraudboard.config import load_config
from fraudboard.exceptions import ConfigError

DEBUG_LOG = os.environ.get("DEBUG_LOG", "false").lower() == "true"

logging.basicConfig(
    level=logging.DEBUG if DEBUG_LOG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("launcher")


def launch_asgi_app(app, port: int):
    """Launch the provided ASGI app with uvicorn."""
    logger.info(f"Starting uvicorn ASGI server on 0.0.0.0:{port} ...")
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="debug" if DEBUG_LOG else "info")


def main():
    start_ts = time.time()
    try:
        config = load_config()
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    logger.info(
        f"=== BOOTSTRAP === ENV={config.env} STORE_BACKEND={config.store_backend} "
        f"REFERENCE_DATASET={config.reference_dataset} PORT={config.port}"
    )

    try:
        app = create_app(config)
        logger.info(f"Application built in {time.time() - start_ts:.2f}s")
        # Startup failures (store unreachable, bad reference data) surface from
        # the lifespan hook; uvicorn then exits with a non-zero status.
        launch_asgi_app(app, config.port)
    except Exception as e:
        logger.error(f"CRITICAL FAILURE LAUNCHING PORTAL: {e}")
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()

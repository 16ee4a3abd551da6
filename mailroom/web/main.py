"""
Web entrypoint - runs the Mailroom API server.
"""

import argparse
import logging
import os

import uvicorn

logging.basicConfig(
    level=getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def main():
    from mailroom.config import load_config
    from mailroom.web import init_web_app

    parser = argparse.ArgumentParser(description="Mailroom conversation inbox API")
    parser.add_argument("--config", help="Path to config.yaml")
    args = parser.parse_args()

    config = load_config(args.config)
    logging.getLogger().setLevel(getattr(logging, config.web.log_level))
    app = init_web_app(config)

    logger.info(f"Starting Mailroom API on {config.web.host}:{config.web.port}")

    uvicorn.run(
        app,
        host=config.web.host,
        port=config.web.port,
        log_level=config.web.log_level.lower(),
    )


if __name__ == "__main__":
    main()

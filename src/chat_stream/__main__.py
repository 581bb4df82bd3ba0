"""
Main entry point for the Chat Stream server.

Can be called with: python -m chat_stream
"""

import argparse
import logging

import uvicorn

from .config import AppConfig
from .utils import configure_logging


def main():
    """Run the Chat Stream server with uvicorn."""
    config = AppConfig.from_env()

    parser = argparse.ArgumentParser(
        description="Chat Stream - streaming chat completions with tools"
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Interface to bind (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to run the server on (default: 8000)",
    )
    parser.add_argument(
        "--log-level",
        default=config.log_level,
        help=f"Log level (default: {config.log_level})",
    )
    args = parser.parse_args()

    log_level = args.log_level.upper()
    configure_logging(log_level)

    from .app import create_app

    logging.getLogger(__name__).info(
        f"Starting chat server on http://{args.host}:{args.port} "
        f"(provider={config.provider}, model={config.model})"
    )
    uvicorn.run(
        create_app(config),
        host=args.host,
        port=args.port,
        log_level=log_level.lower(),
    )


if __name__ == "__main__":
    main()

"""
Home-server automation server - main entry point.

Runs the FastAPI app with uvicorn. Timers are reconciled from the
database on startup and cancelled on SIGINT/SIGTERM through the
application lifespan.
"""

import argparse
import os

from dotenv import load_dotenv

from homelab.infra.logging_config import setup_logging


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Home-server automation API server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Default (HOST/PORT from .env, else 127.0.0.1:4000)
  homelab

  # Listen on the LAN
  homelab --host 0.0.0.0 --port 4000 --log-level DEBUG
        """,
    )
    parser.add_argument(
        "--host",
        type=str,
        default=os.getenv("HOST", "127.0.0.1"),
        help="Bind address (default: HOST env or 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "4000")),
        help="Bind port (default: PORT env or 4000)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=os.getenv("LOG_LEVEL", "INFO").upper(),
        help="DEBUG, INFO, WARNING, ERROR",
    )
    return parser.parse_args(argv)


def main(argv=None) -> None:
    load_dotenv()
    args = parse_args(argv)

    logger = setup_logging(args.log_level)
    logger.info(f"Starting home-server automation API on {args.host}:{args.port}")

    import uvicorn

    from homelab.api.main import app

    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())


if __name__ == "__main__":
    main()

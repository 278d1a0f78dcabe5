#!/usr/bin/env python3
"""
Signal Execution Service - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
Starts the HTTP API (webhook + admin) with the execution
queue running in the same event loop.

============================================================
USAGE
============================================================
Direct execution:
    python app.py

Paper trading against the in-process mock exchange:
    python app.py --paper

With PM2:
    pm2 start app.py --interpreter python --name signal-exec

Environment-based configuration (.env is loaded):
    PORT=3000 LOG_LEVEL=DEBUG python app.py

============================================================
"""

import argparse
import logging
import sys
from dataclasses import replace
from typing import List, Optional

import uvicorn

from core.exceptions import ConfigurationError
from core.logging_setup import setup_logging
from core.settings import load_settings


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="signal-exec",
        description="Trading signal execution service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                          # Live service, settings from environment
  %(prog)s --paper                  # Mock exchange, no real orders
  %(prog)s --port 8080 --log-level DEBUG
        """,
    )

    parser.add_argument("--host", type=str, default=None, help="Bind address (default: HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: PORT or 3000)")
    parser.add_argument(
        "--paper",
        action="store_true",
        help="Paper trading: use the mock exchange gateway",
    )
    parser.add_argument("--database-url", type=str, default=None, help="SQLAlchemy database URL")

    logging_group = parser.add_argument_group("Logging Options")
    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)",
    )
    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["text", "json"],
        default=None,
        help="Log output format (default: LOG_FORMAT or text)",
    )

    return parser


def print_banner(settings) -> None:
    """Print startup banner."""
    print()
    print("=" * 60)
    print("  SIGNAL EXECUTION SERVICE")
    print("=" * 60)
    print(f"  Listen:     {settings.host}:{settings.port}")
    print(f"  Exchange:   {'mock (paper)' if settings.paper_trading else 'binance'}")
    print(f"  Trading:    {'enabled' if settings.trading.trading_enabled else 'disabled'}")
    print(f"  Database:   {settings.database_url}")
    print(f"  Log Level:  {settings.log_level}")
    print("=" * 60)
    print()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = create_parser().parse_args(argv)

    try:
        settings = load_settings()
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    overrides = {
        "host": args.host,
        "port": args.port,
        "database_url": args.database_url,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None})
    if args.paper:
        settings = replace(settings, paper_trading=True)

    setup_logging(settings.log_level, settings.log_format, service_name="signal-exec")
    print_banner(settings)

    # Deferred until logging is configured
    from api.main import create_app
    from api.container import build_services

    app = create_app(build_services(settings))
    logging.getLogger(__name__).info(f"Starting server on {settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    return 0


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    sys.exit(main())

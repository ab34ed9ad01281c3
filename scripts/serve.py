#!/usr/bin/env python3
"""Run the Chirpy API server.

Usage:
    JWT_SECRET=... POLKA_API_KEY=... python scripts/serve.py

    # Start from an empty database:
    python scripts/serve.py --debug

Environment Variables:
    JWT_SECRET: HS256 signing secret (required)
    POLKA_API_KEY: Key expected on Polka webhook calls
    DATABASE_PATH: JSON document path (default database/database.json)
    LOG_LEVEL: Minimum log level (default INFO)
    LOG_JSON: JSON log lines when true (default), console output otherwise
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def reset_database(path: str) -> bool:
    """Delete the database file. Returns False when there was nothing to delete."""
    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    return True


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Run the Chirpy API server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--host", default=os.environ.get("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", "8080")))
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Delete the database file before starting",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL for this run (DEBUG, INFO, WARNING, ERROR)",
    )
    args = parser.parse_args(argv)

    # Import here so a missing JWT_SECRET is reported instead of a traceback
    from chirpy.config import get_settings
    from chirpy.logging import configure_logging

    if args.log_level:
        configure_logging(
            level=args.log_level,
            json_output=os.environ.get("LOG_JSON", "true").lower() in {"1", "true", "yes", "on"},
        )

    try:
        settings = get_settings()
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    if args.debug or settings.debug:
        if reset_database(settings.database_path):
            print(f"Debug mode: removed {settings.database_path}")

    import uvicorn

    from chirpy.app import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()

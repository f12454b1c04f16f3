#!/usr/bin/env python3
"""Run the fund engine API server.

Usage:
    python scripts/run_api.py [--host HOST] [--port PORT]

Environment:
    DATABASE_URL - Optional. PostgreSQL connection string for persisted fund state.
    FUND_ID, FUND_BASE_ASSET, FUND_DECIMALS - Fund identity and precision.
    FUND_MANAGEMENT_FEE_ANNUAL, FUND_PERFORMANCE_FEE_RATE - Fee configuration.

Examples:
    python scripts/run_api.py
    python scripts/run_api.py --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

# Ensure imports work when invoked as a script
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def main() -> int:
    """Run the API server."""
    parser = argparse.ArgumentParser(description="Run the fund engine API server.")
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not os.environ.get("DATABASE_URL"):
        print("DATABASE_URL not set: fund state is kept in memory only", file=sys.stderr)

    print(f"Starting FastAPI server on {args.host}:{args.port}")
    print("Endpoints:")
    print(f"  - GET  http://{args.host}:{args.port}/health")
    print(f"  - GET  http://{args.host}:{args.port}/fund/summary")
    print(f"  - POST http://{args.host}:{args.port}/fund/invest")
    print(f"  - POST http://{args.host}:{args.port}/fund/redeem")
    print()

    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
    )

    return 0


if __name__ == "__main__":
    sys.exit(main())

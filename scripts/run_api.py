#!/usr/bin/env python3
"""Serve the FIDE ratings read API with uvicorn."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add src to path so this script can be run directly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import uvicorn

from fideratings.config import settings


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the FIDE ratings API server.")
    parser.add_argument("--host", default=settings.api_host)
    parser.add_argument("--port", type=int, default=settings.api_port)
    parser.add_argument("--reload", action="store_true", default=settings.api_reload)
    args = parser.parse_args()

    uvicorn.run(
        "fideratings.web.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

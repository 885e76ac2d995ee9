from __future__ import annotations

import argparse
import sys
from pathlib import Path

APP_DIR = Path(__file__).resolve().parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import uvicorn  # noqa: E402

from logging_config import setup_logging  # noqa: E402
from settings import settings  # noqa: E402


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve the staff roster app.")
    parser.add_argument("--host", default=settings.HOST, help=f"Interface to bind (default {settings.HOST}).")
    parser.add_argument("--port", type=int, default=settings.PORT, help=f"Port to listen on (default {settings.PORT}).")
    parser.add_argument("--reload", action="store_true", help="Restart the server when source files change.")
    return parser.parse_args(argv)


def launch_app(argv=None) -> int:
    args = parse_args(argv)
    setup_logging()
    uvicorn.run(
        "api:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        app_dir=str(APP_DIR),
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    sys.exit(launch_app())

from __future__ import annotations
from dotenv import load_dotenv
load_dotenv()  # Load .env file before reading the config module

import argparse
import logging
import sys
import time
from typing import Callable, List, Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware

from . import __version__
from .config import (
    DEV_PATH,
    LISTEN,
    LOG_LEVEL,
    LOG_LEVELS,
    POLL_TIMEOUT_SECONDS,
    parse_listen,
)
from .frontend.manager import DeviceRegistry, RegistryError
from .routes import router
from .service import ExpositionWriter

logger = logging.getLogger(__name__)

# paths scraped often enough that per-request INFO logs would be noise
_QUIET_PATHS = {"/metrics", "/health"}


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log request and response information."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"

        response = await call_next(request)

        process_time = time.time() - start_time
        level = logging.DEBUG if request.url.path in _QUIET_PATHS else logging.INFO
        logger.log(
            level,
            f"{request.method} {request.url.path} | "
            f"IP: {client_ip} | "
            f"Status: {response.status_code} | "
            f"Time: {process_time:.3f}s",
        )
        return response


class RecoverMiddleware(BaseHTTPMiddleware):
    """Turn an unhandled handler exception into a plain 500 instead of a dropped connection."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception:
            logger.exception(f"Unhandled error serving {request.method} {request.url.path}")
            return PlainTextResponse("Internal Server Error", status_code=500)


def create_app(
    registry: DeviceRegistry,
    poll_timeout: Optional[float] = POLL_TIMEOUT_SECONDS,
) -> FastAPI:
    app = FastAPI(title="DVB Frontend Exporter", version=__version__)
    app.state.registry = registry
    app.state.writer = ExpositionWriter(registry, poll_timeout=poll_timeout)

    app.add_middleware(RecoverMiddleware)
    # added last so it wraps the recovery layer and sees its 500s
    app.add_middleware(LoggingMiddleware)

    app.include_router(router)
    return app


def _non_negative_float(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}") from None
    if seconds < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {value!r}")
    return seconds


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dvb-exporter",
        description="Export Linux DVB frontend status as Prometheus metrics",
    )
    parser.add_argument(
        "-devpath", "--devpath", default=DEV_PATH,
        help="Base path to dvb adapters (default: %(default)s)",
    )
    parser.add_argument(
        "-listen", "--listen", default=LISTEN,
        help="Listen bind in format [host]:port (default: %(default)s)",
    )
    parser.add_argument(
        "--poll-timeout", type=_non_negative_float, default=POLL_TIMEOUT_SECONDS,
        help="Seconds to wait for each frontend per scrape, 0 to wait forever (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level", default=LOG_LEVEL,
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging level (default: %(default)s)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    # defaults come from the environment; argparse skips choices for them and type for floats
    if args.log_level not in LOG_LEVELS:
        parser.error(f"invalid log level {args.log_level!r} (choose from {', '.join(LOG_LEVELS)})")
    if args.poll_timeout < 0:
        parser.error(f"poll timeout must not be negative, got {args.poll_timeout}")

    logging.basicConfig(
        level=args.log_level,
        format='%(levelname)s: %(name)s: %(message)s'
    )

    try:
        host, port = parse_listen(args.listen)
    except ValueError as e:
        parser.error(str(e))

    try:
        registry = DeviceRegistry.scan(args.devpath)
    except RegistryError as e:
        print(e, file=sys.stderr)
        sys.exit(e.exit_code)

    app = create_app(registry, poll_timeout=args.poll_timeout)
    logger.info(f"Serving {len(registry)} frontends on {host}:{port}")
    server = uvicorn.Server(
        uvicorn.Config(app, host=host, port=port, log_level=args.log_level.lower())
    )
    try:
        server.run()
    except OSError as e:
        print(f"Error listening on {host}:{port}: {e}", file=sys.stderr)
        sys.exit(1)
    except SystemExit:
        # uvicorn logs a failed bind and exits on its own
        if server.started:
            raise
    if not server.started:
        print(f"Error listening on {host}:{port}: server failed to start", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

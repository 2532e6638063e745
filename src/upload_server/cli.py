"""
Command line entry point: ``upload-server --uploads-dir PATH [...]``.
"""

import argparse
import sys
from typing import List, Optional

from .app import UploadServer
from .config import (
    DEFAULT_BODY_TIMEOUT,
    DEFAULT_LISTEN,
    DEFAULT_MAX_BODY_SIZE,
    DEFAULT_NAME,
    ServerConfig,
)
from .errors import StartupError
from .logger import create_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="upload-server",
        description=(
            "HTTP server that saves uploaded files and submitted text "
            "into a directory"
        ),
    )
    parser.add_argument(
        '--listen', default=DEFAULT_LISTEN, metavar='ADDR',
        help=f'Listen on ADDR in HOST:PORT form (default: {DEFAULT_LISTEN})',
    )
    parser.add_argument(
        '--uploads-dir', required=True, metavar='PATH',
        help='Save received files and texts into PATH (must already exist)',
    )
    parser.add_argument(
        '--name', default=DEFAULT_NAME,
        help='Display name shown on the home page',
    )
    parser.add_argument(
        '--save-meta', action='store_true',
        help='Write a "--meta" sidecar describing each upload',
    )
    parser.add_argument(
        '--max-body-size', type=int, default=DEFAULT_MAX_BODY_SIZE, metavar='BYTES',
        help=f'Reject request bodies larger than BYTES (default: {DEFAULT_MAX_BODY_SIZE})',
    )
    parser.add_argument(
        '--body-timeout', type=float, default=DEFAULT_BODY_TIMEOUT, metavar='SECONDS',
        help=f'Give up on a request body not received within SECONDS (default: {DEFAULT_BODY_TIMEOUT:g})',
    )
    parser.add_argument(
        '--log-level', default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        type=str.upper,
        help='Logging level (default: $UPLOAD_SERVER_LOG_LEVEL or INFO)',
    )
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """
    Build and validate a ServerConfig from parsed arguments.

    Raises:
        StartupError: If the listen address or uploads directory is unusable
    """
    try:
        config = ServerConfig.from_listen(
            args.listen,
            args.uploads_dir,
            name=args.name,
            save_meta=args.save_meta,
            max_body_size=args.max_body_size,
            body_timeout=args.body_timeout,
            log_level=args.log_level,
        )
    except ValueError as error:
        raise StartupError(str(error)) from error
    return config.validate()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logger = create_logger('UploadServer.CLI', level=args.log_level)

    try:
        config = config_from_args(args)
    except StartupError as error:
        logger.error(f"Cannot start: {error.message}")
        return 1

    server = UploadServer(config)
    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("Shutting down server...")
    except StartupError as error:
        logger.error(f"Server error: {error.message}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Server configuration.

A single immutable ``ServerConfig`` is built once at startup (by the CLI or
by an embedding caller) and handed to the server and writer explicitly.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple, Union

from .errors import StartupError


DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 2022
DEFAULT_LISTEN = f"{DEFAULT_HOST}:{DEFAULT_PORT}"
DEFAULT_NAME = "upload-server"
DEFAULT_MAX_BODY_SIZE = 64 * 1024 * 1024
DEFAULT_BODY_TIMEOUT = 300.0


def parse_listen(value: str) -> Tuple[str, int]:
    """
    Parse a ``host:port`` listen address.

    Args:
        value: Address such as ``127.0.0.1:2022`` or ``:8080``

    Returns:
        tuple: (host, port); an empty host means all interfaces

    Raises:
        ValueError: If the value is not HOST:PORT or the port is out of range
    """
    item = (value or "").strip()
    if not item:
        raise ValueError("Empty listen address")
    if ":" not in item:
        raise ValueError(
            f"Invalid listen address '{value}'. Expected HOST:PORT (example: {DEFAULT_LISTEN})"
        )
    host, port_part = item.rsplit(":", 1)
    host = host.strip().strip("[]") or DEFAULT_HOST
    try:
        port = int(port_part.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid port in listen address '{value}'") from exc
    if not 1 <= port <= 65535:
        raise ValueError(f"Port out of range in listen address '{value}'")
    return host, port


@dataclass(frozen=True)
class ServerConfig:
    """Resolved, read-only server configuration."""

    uploads_dir: Path
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    name: str = DEFAULT_NAME
    save_meta: bool = False
    max_body_size: int = DEFAULT_MAX_BODY_SIZE
    body_timeout: float = DEFAULT_BODY_TIMEOUT
    log_level: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        # Accept str paths; frozen dataclasses need object.__setattr__.
        object.__setattr__(self, "uploads_dir", Path(self.uploads_dir))

    @classmethod
    def from_listen(
        cls,
        listen: str,
        uploads_dir: Union[str, Path],
        **options,
    ) -> "ServerConfig":
        host, port = parse_listen(listen)
        return cls(uploads_dir=Path(uploads_dir), host=host, port=port, **options)

    @property
    def listen(self) -> str:
        return f"{self.host}:{self.port}"

    def validate(self) -> "ServerConfig":
        """
        Check the configuration is usable before serving traffic.

        The uploads directory is never created here; it must already exist.

        Raises:
            StartupError: If the uploads directory is missing or not writable,
                or max_body_size or body_timeout is not positive
        """
        if self.max_body_size <= 0:
            raise StartupError(
                f"max_body_size must be positive, got {self.max_body_size}"
            )
        if self.body_timeout <= 0:
            raise StartupError(
                f"body_timeout must be positive, got {self.body_timeout}"
            )
        if not self.uploads_dir.exists():
            raise StartupError(f"Uploads directory does not exist: {self.uploads_dir}")
        if not self.uploads_dir.is_dir():
            raise StartupError(f"Uploads path is not a directory: {self.uploads_dir}")
        if not os.access(self.uploads_dir, os.W_OK | os.X_OK):
            raise StartupError(f"Uploads directory is not writable: {self.uploads_dir}")
        return self

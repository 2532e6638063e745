"""
upload-server - Python implementation
A minimal service that saves pushed files and text into a directory.
"""

__version__ = "1.0.0"

from .logger import create_logger
from .errors import (
    UploadServerError,
    ClientError,
    MalformedBodyError,
    MissingPayloadError,
    PayloadTooLargeError,
    UnsupportedMediaTypeError,
    RequestTimeoutError,
    StorageError,
    StartupError,
)
from .models import UploadKind, UploadRequest, StoredArtifact, MetadataRecord
from .config import ServerConfig, parse_listen
from .naming import FilenameGenerator, sanitize_filename
from .writer import PayloadWriter
from .decoder import RequestDecoder
from .app import UploadServer

__all__ = [
    "create_logger",
    "UploadServerError",
    "ClientError",
    "MalformedBodyError",
    "MissingPayloadError",
    "PayloadTooLargeError",
    "UnsupportedMediaTypeError",
    "RequestTimeoutError",
    "StorageError",
    "StartupError",
    "UploadKind",
    "UploadRequest",
    "StoredArtifact",
    "MetadataRecord",
    "ServerConfig",
    "parse_listen",
    "FilenameGenerator",
    "sanitize_filename",
    "PayloadWriter",
    "RequestDecoder",
    "UploadServer",
]

"""
Exceptions raised by the upload pipeline.

Per-request errors carry the HTTP status they are answered with; the
route handler converts them into a JSON error response.
"""

from typing import Any, Dict


class UploadServerError(Exception):
    """Base class for all upload-server errors."""

    status_code = 500
    description = "Server error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.description, "message": self.message}


class ClientError(UploadServerError):
    """The request itself is unacceptable (4xx)."""

    status_code = 400
    description = "Client error"


class MalformedBodyError(ClientError):
    """Body could not be parsed (bad multipart framing, bad form data)."""


class MissingPayloadError(ClientError):
    """Body parsed fine but carries no file or text to store."""


class PayloadTooLargeError(ClientError):
    status_code = 413
    description = "Payload too large"


class UnsupportedMediaTypeError(ClientError):
    status_code = 415
    description = "Unsupported media type"


class RequestTimeoutError(ClientError):
    """The body did not arrive within the configured time."""

    status_code = 408
    description = "Request timeout"


class StorageError(UploadServerError):
    """Writing to the uploads directory failed (disk full, permissions, ...)."""


class StartupError(UploadServerError):
    """Configuration is unusable; raised before any traffic is served."""

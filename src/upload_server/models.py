"""
Data types flowing through the upload pipeline.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple


class UploadKind(str, Enum):
    """What the client sent: a multipart file or a plain text body."""

    FILE = "file"
    TEXT = "text"


@dataclass(frozen=True)
class UploadRequest:
    """One decoded request payload, consumed immediately by the writer."""

    kind: UploadKind
    content: bytes
    original_name: Optional[str] = None
    content_type: Optional[str] = None
    remote_addr: Optional[str] = None
    user_agent: Optional[str] = None

    def __post_init__(self):
        if self.kind is UploadKind.TEXT and self.original_name is not None:
            raise ValueError("Text uploads do not carry an original name")

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class StoredArtifact:
    """Result of a successful write."""

    path: Path
    created_at: datetime
    kind: UploadKind
    original_name: Optional[str]
    size: int
    metadata_path: Optional[Path] = None

    @property
    def name(self) -> str:
        return self.path.name


def _clean(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        value = value.value
    return str(value).replace("\r", " ").replace("\n", " ")


@dataclass(frozen=True)
class MetadataRecord:
    """
    Provenance sidecar for a stored artifact.

    Rendered as ``key: value`` lines, one field per line, in a fixed order.
    """

    created_at: datetime
    kind: UploadKind
    original_name: Optional[str]
    artifact: str
    size: int
    remote_addr: Optional[str] = None
    user_agent: Optional[str] = None
    content_type: Optional[str] = None

    @classmethod
    def for_upload(
        cls,
        upload: UploadRequest,
        created_at: datetime,
        artifact: str,
    ) -> "MetadataRecord":
        return cls(
            created_at=created_at,
            kind=upload.kind,
            original_name=upload.original_name,
            artifact=artifact,
            size=upload.size,
            remote_addr=upload.remote_addr,
            user_agent=upload.user_agent,
            content_type=upload.content_type,
        )

    def items(self) -> List[Tuple[str, str]]:
        return [
            ("created_at", _clean(self.created_at)),
            ("kind", _clean(self.kind)),
            ("original_name", _clean(self.original_name)),
            ("artifact", _clean(self.artifact)),
            ("size", _clean(self.size)),
            ("remote_addr", _clean(self.remote_addr)),
            ("user_agent", _clean(self.user_agent)),
            ("content_type", _clean(self.content_type)),
        ]

    def render(self) -> str:
        return "".join(f"{key}: {value}\n" for key, value in self.items())

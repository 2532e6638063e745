"""
Filename generation for stored uploads.

Artifacts are named ``{date}--{time}--{filename}--payload`` using local time,
e.g. ``2024-01-02--03-04-05--report.pdf--payload``. When that name is taken
the time part gains a counter: ``03-04-05.1``, ``03-04-05.2`` and so on.
Metadata sidecars replace the ``--payload`` suffix with ``--meta``.
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

from .models import UploadKind


PAYLOAD_SUFFIX = "--payload"
META_SUFFIX = "--meta"
SEPARATOR = "--"
DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H-%M-%S"
MAX_NAME_LENGTH = 128


def _is_valid_char(c: str) -> bool:
    return c.isascii() and (c.isalnum() or c in "._")


def sanitize_filename(filename: str) -> str:
    """
    Make a client-supplied name safe to embed in a single path component.

    Keeps ASCII letters, digits, ``.`` and ``_``. Every run of other
    characters (path separators, NUL, whitespace, non-ASCII) becomes a
    single ``_``. Leading dots are dropped and the result is capped at
    MAX_NAME_LENGTH characters. May return an empty string.
    """
    out = []
    skipping = False
    for c in filename:
        if _is_valid_char(c):
            out.append(c)
            skipping = False
        elif not skipping:
            out.append("_")
            skipping = True
    return "".join(out).lstrip(".")[:MAX_NAME_LENGTH]


def now() -> datetime:
    """Current local time, microsecond precision."""
    return datetime.now()


class FilenameGenerator:
    """
    Builds artifact names from a timestamp, an optional client name and the
    payload kind. Nameless payloads are named after their kind.
    """

    def __init__(self, placeholders: Optional[Dict[UploadKind, str]] = None):
        self.placeholders = {kind: kind.value for kind in UploadKind}
        if placeholders:
            self.placeholders.update(placeholders)

    def component(
        self,
        original_name: Optional[str],
        kind: UploadKind = UploadKind.TEXT,
    ) -> str:
        placeholder = self.placeholders[kind]
        if not original_name:
            return placeholder
        safe = sanitize_filename(original_name)
        # Nothing meaningful survived sanitizing
        if not safe.strip("._"):
            return placeholder
        return safe

    def build(
        self,
        created_at: datetime,
        original_name: Optional[str] = None,
        kind: UploadKind = UploadKind.TEXT,
        attempt: int = 0,
    ) -> str:
        time_part = created_at.strftime(TIME_FORMAT)
        if attempt:
            time_part = f"{time_part}.{attempt}"
        return SEPARATOR.join([
            created_at.strftime(DATE_FORMAT),
            time_part,
            self.component(original_name, kind),
        ]) + PAYLOAD_SUFFIX

    def candidates(
        self,
        created_at: datetime,
        original_name: Optional[str],
        kind: UploadKind,
        uploads_dir: Union[str, Path],
        max_attempts: int = 1000,
    ) -> Iterator[str]:
        """
        Yield names not currently present in ``uploads_dir``.

        The existence check only skips obviously taken names; callers must
        still publish with an exclusive create, since another writer can
        claim a name between this check and the create.
        """
        uploads_dir = Path(uploads_dir)
        for attempt in range(max_attempts):
            name = self.build(created_at, original_name, kind, attempt)
            if os.path.lexists(uploads_dir / name):
                continue
            if os.path.lexists(uploads_dir / self.metadata_name(name)):
                continue
            yield name

    @staticmethod
    def metadata_name(artifact_name: str) -> str:
        if artifact_name.endswith(PAYLOAD_SUFFIX):
            artifact_name = artifact_name[: -len(PAYLOAD_SUFFIX)]
        return artifact_name + META_SUFFIX

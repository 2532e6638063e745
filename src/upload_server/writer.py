"""
Payload writer.

Content is first written to a private temporary file inside the uploads
directory and then published under its final name with ``os.link``. A hard
link is an atomic exclusive create: it fails if the name already exists and
never overwrites, so concurrent writers (threads or separate processes
sharing the directory) can never be handed the same name, and readers never
see a partially written artifact.
"""

import errno
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from .config import ServerConfig
from .errors import StorageError
from .logger import create_logger
from .models import MetadataRecord, StoredArtifact, UploadRequest
from .naming import FilenameGenerator, now


TEMP_PREFIX = ".upload-"
TEMP_SUFFIX = ".part"
FILE_MODE = 0o644

# errno values meaning "this filesystem cannot hard link", as opposed to
# "this particular link failed"
_LINK_UNSUPPORTED = {
    errno.EPERM,
    errno.EXDEV,
    errno.ENOSYS,
    errno.EOPNOTSUPP,
    getattr(errno, "ENOTSUP", errno.EOPNOTSUPP),
}

# Only used when hard links are unavailable
_publish_lock = threading.Lock()


class PayloadWriter:
    """Persists decoded uploads (and optional metadata) to the uploads directory."""

    def __init__(
        self,
        config: ServerConfig,
        generator: Optional[FilenameGenerator] = None,
        max_attempts: int = 1000,
    ):
        self.config = config
        self.uploads_dir = Path(config.uploads_dir)
        self.generator = generator or FilenameGenerator()
        self.max_attempts = max_attempts
        self.logger = create_logger('UploadServer.Writer', level=config.log_level)
        self._hardlinks = hasattr(os, "link")

    def write(
        self,
        upload: UploadRequest,
        created_at: Optional[datetime] = None,
    ) -> StoredArtifact:
        """
        Store an upload under a fresh, unique name.

        Args:
            upload: Decoded request payload
            created_at: Timestamp to name the artifact after (default: now)

        Returns:
            StoredArtifact: Where and when the payload was stored

        Raises:
            StorageError: If the payload could not be written or no free
                name was found
        """
        created_at = created_at or now()

        tmp_path = self._write_temp(upload.content)
        try:
            path = self._publish(
                tmp_path,
                self.generator.candidates(
                    created_at,
                    upload.original_name,
                    upload.kind,
                    self.uploads_dir,
                    self.max_attempts,
                ),
            )
        finally:
            self._discard(tmp_path)

        self.logger.debug(
            f"Stored {upload.kind.value} -> {path.name} ({upload.size} bytes)"
        )

        metadata_path = None
        if self.config.save_meta:
            metadata_path = self._write_metadata(upload, created_at, path)

        return StoredArtifact(
            path=path.resolve(),
            created_at=created_at,
            kind=upload.kind,
            original_name=upload.original_name,
            size=upload.size,
            metadata_path=metadata_path,
        )

    def _write_metadata(
        self,
        upload: UploadRequest,
        created_at: datetime,
        artifact_path: Path,
    ) -> Optional[Path]:
        # A failed sidecar never rolls back the artifact.
        record = MetadataRecord.for_upload(upload, created_at, artifact_path.name)
        name = self.generator.metadata_name(artifact_path.name)
        try:
            tmp_path = self._write_temp(record.render().encode("utf-8"))
            try:
                path = self._publish(tmp_path, [name])
            finally:
                self._discard(tmp_path)
        except StorageError as error:
            self.logger.warning(f"Metadata not saved for {artifact_path.name}: {error}")
            return None
        return path.resolve()

    def _write_temp(self, data: bytes) -> Path:
        try:
            fd, tmp = tempfile.mkstemp(
                prefix=TEMP_PREFIX,
                suffix=TEMP_SUFFIX,
                dir=str(self.uploads_dir),
            )
        except OSError as error:
            raise StorageError(f"Cannot create file in uploads directory: {error}") from error

        tmp_path = Path(tmp)
        written = False
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, FILE_MODE)
            written = True
        except OSError as error:
            raise StorageError(f"Write error: {error}") from error
        finally:
            if not written:
                self._discard(tmp_path)
        return tmp_path

    def _publish(self, tmp_path: Path, names: Iterable[str]) -> Path:
        for name in names:
            target = self.uploads_dir / name
            try:
                self._link(tmp_path, target)
            except FileExistsError:
                self.logger.debug(f"Name taken by a concurrent upload, retrying: {name}")
                continue
            except OSError as error:
                raise StorageError(f"Cannot store {name}: {error}") from error
            self._sync_dir()
            return target
        raise StorageError("No free filename left for this upload")

    def _link(self, source: Path, target: Path) -> None:
        if self._hardlinks:
            try:
                os.link(source, target)
                return
            except FileExistsError:
                raise
            except OSError as error:
                if error.errno not in _LINK_UNSUPPORTED:
                    raise
                self.logger.warning(
                    f"Hard links unsupported in {self.uploads_dir} ({error}); "
                    "falling back to locked rename"
                )
                self._hardlinks = False

        with _publish_lock:
            if os.path.lexists(target):
                raise FileExistsError(errno.EEXIST, "File exists", str(target))
            os.rename(source, target)

    def _sync_dir(self) -> None:
        # Persist the new directory entry, not just the file contents.
        if os.name != "posix":
            return
        try:
            fd = os.open(self.uploads_dir, os.O_RDONLY)
            try:
                os.fsync(fd)
            finally:
                os.close(fd)
        except OSError as error:
            self.logger.warning(f"Could not sync uploads directory: {error}")

    def _discard(self, tmp_path: Path) -> None:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as error:
            self.logger.warning(f"Could not remove temporary file {tmp_path.name}: {error}")

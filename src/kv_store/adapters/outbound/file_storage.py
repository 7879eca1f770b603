"""File-based Storage Handle Manager.

This adapter implements the StorageManager protocol with one file per
database. Files are never rewritten in place: a commit writes a complete new
image next to the live one and then flips a meta slot.

File Format:
    - Header (offset 0): magic (8) + format version (4)
    - Meta slot 0 / 1 (right after the header): txid (8) + image offset (8)
      + image length (8) + image CRC32 (4) + slot CRC32 (4)
    - Images (offset 4096+): DatabaseImage blobs

The valid meta slot with the highest txid names the live image. Commit
order is: write image, fsync, write the other meta slot, fsync, truncate
the tail. A crash at any step leaves the previous meta slot and its image
untouched, so the file always opens in its last committed state. A failed
meta write or fsync zeroes the new slot before the error propagates; once
the meta slot is durable the commit stands, and truncation is best effort.

Opening a file checks only the header and meta slots. The image is decoded
once per transaction, and every commit rewrites the whole image.

Thread Safety:
    Handles are not shared between threads. Readers use pread and verify
    the image checksum, retrying if a concurrent commit recycled the region
    they were reading. Writers must hold lock_exclusive.
"""

from __future__ import annotations

import errno
import fcntl
import os
import struct
import time
import uuid
import zlib
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from kv_store.domain.entities import DatabaseImage
from kv_store.domain.errors import (
    LockTimeoutError,
    StorageCorruptedError,
    StorageUnavailableError,
    TransactionAbortedError,
)
from kv_store.domain.value_objects import (
    INVALID_TXN_ID,
    DatabaseName,
    TransactionId,
    database_name,
)
from kv_store.infrastructure.logging import get_logger
from kv_store.ports.outbound.storage import StoredImage

if TYPE_CHECKING:
    from kv_store.infrastructure.config import StorageConfig
    from kv_store.infrastructure.metrics import MetricsRegistry

logger = get_logger(__name__)


HEADER_MAGIC = b"KVSTORE\x00"
FORMAT_VERSION = 1
HEADER_FORMAT = ">8sI"  # magic, version
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)

META_FORMAT = ">QQQI"  # txid, image_offset, image_length, image_crc
META_BODY_SIZE = struct.calcsize(META_FORMAT)
META_CRC_FORMAT = ">I"
META_SIZE = META_BODY_SIZE + struct.calcsize(META_CRC_FORMAT)
META_OFFSETS = (HEADER_SIZE, HEADER_SIZE + META_SIZE)

DATA_START = 4096
READ_RETRIES = 5
FLOCK_POLL_SECONDS = 0.005


@dataclass(frozen=True)
class MetaSlot:
    """Pointer to the live image, stored twice in the file header."""

    txid: TransactionId
    image_offset: int
    image_length: int
    image_crc: int

    @property
    def slot_index(self) -> int:
        return self.txid % 2

    def to_bytes(self) -> bytes:
        body = struct.pack(
            META_FORMAT, self.txid, self.image_offset, self.image_length, self.image_crc
        )
        return body + struct.pack(META_CRC_FORMAT, zlib.crc32(body))

    @classmethod
    def from_bytes(cls, data: bytes) -> MetaSlot | None:
        """Parse a slot, returning None for empty or damaged slots."""
        if len(data) < META_SIZE:
            return None
        body = data[:META_BODY_SIZE]
        (crc,) = struct.unpack(META_CRC_FORMAT, data[META_BODY_SIZE:META_SIZE])
        if zlib.crc32(body) != crc:
            return None
        txid, offset, length, image_crc = struct.unpack(META_FORMAT, body)
        if txid == INVALID_TXN_ID or offset < DATA_START:
            return None
        return cls(TransactionId(txid), offset, length, image_crc)

    @classmethod
    def for_image(cls, txid: int, offset: int, data: bytes) -> MetaSlot:
        return cls(TransactionId(txid), offset, len(data), zlib.crc32(data))


def _pwrite_all(fd: int, data: bytes, offset: int) -> None:
    view = memoryview(data)
    while view:
        written = os.pwrite(fd, view, offset)
        view = view[written:]
        offset += written


def _pread_exact(fd: int, length: int, offset: int) -> bytes:
    chunks: list[bytes] = []
    remaining = length
    while remaining > 0:
        chunk = os.pread(fd, remaining, offset)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
        offset += len(chunk)
    return b"".join(chunks)


class FileHandle:
    """An open database file, held for the duration of one transaction."""

    def __init__(
        self,
        database: DatabaseName,
        path: Path,
        fd: int,
        sync: bool = True,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._database = database
        self._path = path
        self._fd: int | None = fd
        self._sync_enabled = sync
        self._metrics = metrics
        self._locked = False

    @property
    def database(self) -> DatabaseName:
        return self._database

    @property
    def path(self) -> Path:
        return self._path

    @property
    def closed(self) -> bool:
        return self._fd is None

    def read_image(self) -> StoredImage:
        """Load the most recently committed image.

        Raises:
            StorageCorruptedError: If no valid meta slot or image is found.
            StorageUnavailableError: If the file cannot be read.
        """
        fd = self._require_open()
        previous: MetaSlot | None = None

        try:
            for _ in range(READ_RETRIES):
                meta = self._read_meta(fd)
                data = _pread_exact(fd, meta.image_length, meta.image_offset)
                if len(data) == meta.image_length and zlib.crc32(data) == meta.image_crc:
                    try:
                        image = DatabaseImage.from_bytes(data)
                    except ValueError as exc:
                        raise self._corrupted(f"Malformed image: {exc}") from exc
                    return StoredImage(meta.txid, image)

                if meta == previous:
                    # Same meta twice with a bad image: not a concurrent commit
                    break
                previous = meta
        except OSError as exc:
            raise StorageUnavailableError(
                f"Cannot read database file: {exc.strerror or exc}", database=self._database
            ) from exc

        raise self._corrupted("Image checksum mismatch")

    def validate(self) -> MetaSlot:
        """Check the header and meta slots without decoding the image.

        Raises:
            StorageCorruptedError: If the header or both meta slots are invalid.
            StorageUnavailableError: If the file cannot be read.
        """
        fd = self._require_open()
        try:
            return self._read_meta(fd)
        except OSError as exc:
            raise StorageUnavailableError(
                f"Cannot read database file: {exc.strerror or exc}", database=self._database
            ) from exc

    def write_image(self, image: DatabaseImage, base_txid: TransactionId) -> TransactionId:
        """Commit a new image. Requires lock_exclusive."""
        fd = self._require_open()
        if not self._locked:
            raise TransactionAbortedError(
                "Write attempted without the file lock", database=self._database
            )

        current = self._read_meta(fd)
        if current.txid != base_txid:
            raise TransactionAbortedError(
                f"Database changed during transaction (expected commit {base_txid}, "
                f"found {current.txid})",
                database=self._database,
            )

        data = image.to_bytes()
        live_start = current.image_offset
        live_end = current.image_offset + current.image_length

        # Never overlap the live image: use the gap before it, else append after it
        if DATA_START + len(data) <= live_start:
            offset = DATA_START
        else:
            offset = max(DATA_START, live_end)

        _pwrite_all(fd, data, offset)
        self._sync(fd)

        meta = MetaSlot.for_image(current.txid + 1, offset, data)
        slot_offset = META_OFFSETS[meta.slot_index]
        try:
            _pwrite_all(fd, meta.to_bytes(), slot_offset)
            self._sync(fd)
        except OSError:
            self._invalidate_slot(fd, slot_offset)
            raise

        # Committed from here on; a failed truncate only leaves a longer file
        try:
            os.ftruncate(fd, offset + len(data))
        except OSError as exc:
            logger.warning(
                "truncate_failed", database=self._database, error=exc.strerror or str(exc)
            )

        if self._metrics is not None:
            self._metrics.commit_bytes.observe(len(data))

        return meta.txid

    def lock_exclusive(self, timeout: float | None = None) -> None:
        """Take the flock writer lock on the file."""
        fd = self._require_open()
        if self._locked:
            return

        try:
            if timeout is None:
                fcntl.flock(fd, fcntl.LOCK_EX)
            else:
                deadline = time.monotonic() + timeout
                while True:
                    try:
                        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                        break
                    except OSError as exc:
                        if exc.errno not in (errno.EAGAIN, errno.EACCES):
                            raise
                        if time.monotonic() >= deadline:
                            raise LockTimeoutError(
                                f"Timed out after {timeout}s waiting for the file lock",
                                database=self._database,
                            ) from exc
                        time.sleep(FLOCK_POLL_SECONDS)
        except OSError as exc:
            raise StorageUnavailableError(
                f"Cannot lock database file: {exc.strerror or exc}", database=self._database
            ) from exc

        self._locked = True

    def unlock(self) -> None:
        if self._fd is None or not self._locked:
            return
        fcntl.flock(self._fd, fcntl.LOCK_UN)
        self._locked = False

    def close(self) -> None:
        """Release the lock and close the descriptor. Idempotent."""
        if self._fd is None:
            return
        try:
            self.unlock()
        finally:
            fd, self._fd = self._fd, None
            os.close(fd)

    def __enter__(self) -> FileHandle:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"FileHandle({self._database!r}, {state})"

    def _require_open(self) -> int:
        if self._fd is None:
            raise StorageUnavailableError("Database handle is closed", database=self._database)
        return self._fd

    def _read_meta(self, fd: int) -> MetaSlot:
        header = _pread_exact(fd, META_OFFSETS[1] + META_SIZE, 0)
        if len(header) < HEADER_SIZE:
            raise self._corrupted("Header too short")

        magic, version = struct.unpack_from(HEADER_FORMAT, header)
        if magic != HEADER_MAGIC:
            raise self._corrupted(f"Bad magic {magic!r}")
        if version != FORMAT_VERSION:
            raise self._corrupted(f"Unsupported format version {version}")

        slots = [
            MetaSlot.from_bytes(header[offset:offset + META_SIZE]) for offset in META_OFFSETS
        ]
        valid = [slot for slot in slots if slot is not None]
        if not valid:
            raise self._corrupted("No valid meta slot")
        return max(valid, key=lambda slot: slot.txid)

    def _invalidate_slot(self, fd: int, slot_offset: int) -> None:
        """Zero a meta slot whose write did not reach disk, so the previous slot stays current."""
        try:
            _pwrite_all(fd, bytes(META_SIZE), slot_offset)
        except OSError as exc:
            logger.error(
                "meta_slot_invalidation_failed",
                database=self._database,
                error=exc.strerror or str(exc),
            )

    def _sync(self, fd: int) -> None:
        if self._sync_enabled:
            os.fsync(fd)

    def _corrupted(self, reason: str) -> StorageCorruptedError:
        logger.error("database_file_corrupted", database=self._database, reason=reason)
        return StorageCorruptedError(
            f"Database file {self._path.name} is corrupted: {reason}", database=self._database
        )


class FileStorageManager:
    """File-based implementation of the StorageManager protocol.

    Maps database names to `<data_dir>/<name><extension>` and creates
    missing files atomically with owner-only permissions.

    Attributes:
        data_dir: Directory holding the database files.
        file_extension: Suffix appended to database names.
    """

    def __init__(
        self,
        data_dir: str | Path,
        file_extension: str = ".db",
        file_mode: int = 0o600,
        sync: bool = True,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the storage manager.

        Args:
            data_dir: Directory for database files (created on demand).
            file_extension: Database file suffix.
            file_mode: Permission bits for newly created files.
            sync: Whether commits and file creation fsync.
            metrics: Optional metrics registry.
        """
        self._data_dir = Path(data_dir)
        self._file_extension = file_extension
        self._file_mode = file_mode
        self._sync = sync
        self._metrics = metrics

    @classmethod
    def from_config(
        cls, config: StorageConfig, metrics: MetricsRegistry | None = None
    ) -> FileStorageManager:
        return cls(
            data_dir=config.data_dir,
            file_extension=config.file_extension,
            file_mode=config.file_mode,
            sync=config.sync_mode == "fsync",
            metrics=metrics,
        )

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    @property
    def file_extension(self) -> str:
        return self._file_extension

    def path_for(self, database: str) -> Path:
        """Return the backing file path for a database name."""
        name = database_name(database)
        return (self._data_dir / f"{name}{self._file_extension}").absolute()

    def open(self, database: str) -> FileHandle:
        """Open the file for a database, creating it if absent.

        Raises:
            InvalidInputError: If the name is invalid.
            StorageUnavailableError: If the file cannot be opened or is corrupted.
        """
        name = database_name(database)
        path = self.path_for(name)

        try:
            if not path.exists():
                self._create(name, path)
            fd = os.open(path, os.O_RDWR)
        except OSError as exc:
            raise StorageUnavailableError(
                f"Cannot open database file {path.name}: {exc.strerror or exc}",
                database=name,
            ) from exc

        handle = FileHandle(name, path, fd, sync=self._sync, metrics=self._metrics)
        try:
            handle.validate()
        except BaseException:
            handle.close()
            raise
        return handle

    def close(self, handle: FileHandle) -> None:
        handle.close()

    @contextmanager
    def handle(self, database: str) -> Iterator[FileHandle]:
        """Open a handle for a with-block and always close it."""
        handle = self.open(database)
        try:
            yield handle
        finally:
            self.close(handle)

    def list_databases(self) -> list[str]:
        """Names of all database files in the data directory."""
        if not self._data_dir.is_dir():
            return []
        return sorted(
            path.name[: -len(self._file_extension)]
            for path in self._data_dir.glob(f"*{self._file_extension}")
            if path.is_file() and not path.name.startswith(".")
        )

    def _create(self, name: DatabaseName, path: Path) -> None:
        """Create a fresh database file without ever exposing a partial one.

        The file is fully written under a temporary name and then hard-linked
        into place; link() fails if another thread or process won the race,
        in which case their file is kept.
        """
        path.parent.mkdir(parents=True, exist_ok=True)

        data = DatabaseImage().to_bytes()
        meta = MetaSlot.for_image(1, DATA_START, data)
        header = bytearray(DATA_START)
        struct.pack_into(HEADER_FORMAT, header, 0, HEADER_MAGIC, FORMAT_VERSION)
        header[META_OFFSETS[meta.slot_index]:META_OFFSETS[meta.slot_index] + META_SIZE] = (
            meta.to_bytes()
        )

        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, self._file_mode)
        try:
            try:
                _pwrite_all(fd, bytes(header) + data, 0)
                if self._sync:
                    os.fsync(fd)
            finally:
                os.close(fd)

            try:
                os.link(tmp_path, path)
            except FileExistsError:
                return
        finally:
            tmp_path.unlink(missing_ok=True)

        if self._sync:
            self._sync_directory(path.parent)

        if self._metrics is not None:
            self._metrics.databases_created_total.inc()
        logger.info("database_created", database=name, path=str(path))

    @staticmethod
    def _sync_directory(directory: Path) -> None:
        dir_fd = os.open(directory, os.O_RDONLY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)

import uuid
from collections.abc import Iterable, Iterator
from pathlib import Path, PurePath
from typing import BinaryIO

from csv_ingest.config.settings import Settings
from csv_ingest.database.models import FileRecord, StorageStats
from csv_ingest.database.repositories.file_repository import FileRepository
from csv_ingest.exceptions import (
    FileReadError,
    StorageError,
    UnsupportedStorageDiskError,
    ValidationError,
)
from csv_ingest.hashing.hasher import CHUNK_SIZE, hash_bytes
from csv_ingest.logging.logger import Log

DEFAULT_MAX_FILE_SIZE = 50 * 1024 * 1024
DEFAULT_ALLOWED_MIME_TYPES = (
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
    "text/plain",
)
LOCAL_DISK = "local"


def original_file_path(owner_id: str, file_id: str, name: str) -> PurePath:
    """Relative path of an original upload: {owner}/{file_id}/original{ext}"""
    ext = PurePath(name).suffix or ".csv"
    return PurePath(owner_id, file_id, f"original{ext}")


def processed_file_path(owner_id: str, original_file_id: str, job_id: str) -> PurePath:
    """Relative path of a derived file: {owner}/{original}/processed_{job}.csv"""
    return PurePath(owner_id, original_file_id, f"processed_{job_id}.csv")


class ContentStore:
    """Persists file bytes under a per-owner directory tree and records them.

    Deleting only removes metadata; bytes on disk are left for
    out-of-band cleanup.
    """

    def __init__(
        self,
        files_root: Path,
        file_repo: FileRepository,
        max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE,
        allowed_mime_types: Iterable[str] = DEFAULT_ALLOWED_MIME_TYPES,
    ) -> None:
        self._files_root = files_root
        self._file_repo = file_repo
        self._max_file_size_bytes = max_file_size_bytes
        self._allowed_mime_types = frozenset(allowed_mime_types)

    @classmethod
    def from_settings(cls, settings: Settings, file_repo: FileRepository) -> "ContentStore":
        return cls(
            files_root=Path(settings.files_root).resolve(),
            file_repo=file_repo,
            max_file_size_bytes=settings.max_file_size_bytes,
            allowed_mime_types=settings.allowed_mime_types,
        )

    @property
    def files_root(self) -> Path:
        return self._files_root

    def store(
        self,
        owner_id: str,
        data: bytes,
        name: str,
        mime_type: str | None = None,
        content_hash: str | None = None,
    ) -> FileRecord:
        """Validate, write and record an original upload.

        Raises:
            ValidationError: if the file is too large or its type is not allowed.
            StorageError: if the bytes cannot be written.
        """
        self._validate(data, mime_type)
        file_id = str(uuid.uuid4())
        relative = original_file_path(owner_id, file_id, name)
        self._write(relative, data)

        record = self._file_repo.insert(
            FileRecord(
                id=file_id,
                owner_id=owner_id,
                name=name,
                mime_type=mime_type or "text/csv",
                size_bytes=len(data),
                content_hash=(content_hash or hash_bytes(data)).lower(),
                storage_path=relative.as_posix(),
            )
        )
        if record.id != file_id:
            Log.info(
                f"Upload for owner {owner_id} raced with file {record.id}; reusing it"
            )
        else:
            Log.info(f"Stored file {file_id} ({len(data)} bytes) for owner {owner_id}")
        return record

    def store_derived(
        self,
        owner_id: str,
        data: bytes,
        parent_file_id: str,
        job_id: str,
    ) -> FileRecord:
        """Write and record the output of a processing job.

        Raises:
            NotFoundError: if the parent file is missing or not owned.
            StorageError: if the bytes cannot be written.
        """
        parent = self._file_repo.find_by_id(parent_file_id, owner_id)
        relative = processed_file_path(owner_id, parent.id, job_id)
        self._write(relative, data)

        record = self._file_repo.insert(
            FileRecord(
                id=str(uuid.uuid4()),
                owner_id=owner_id,
                name=parent.name,
                mime_type="text/csv",
                size_bytes=len(data),
                content_hash=hash_bytes(data),
                storage_path=relative.as_posix(),
                parent_id=parent.id,
            )
        )
        Log.info(f"Stored derived file {record.id} for job {job_id}")
        return record

    def restore(self, record: FileRecord, data: bytes) -> None:
        """Rewrite the bytes of an existing record whose file went missing.

        Raises:
            ValidationError: if ``data`` does not hash to the record's hash.
        """
        if hash_bytes(data) != record.content_hash:
            raise ValidationError(f"Content does not match file {record.id}")
        self._write(PurePath(record.storage_path), data)
        Log.warning(f"Restored missing bytes for file {record.id}")

    def find(self, file_id: str, owner_id: str) -> FileRecord:
        return self._file_repo.find_by_id(file_id, owner_id)

    def read_bytes(self, file_id: str, owner_id: str) -> bytes:
        """Read stored bytes for a file owned by ``owner_id``.

        Raises:
            NotFoundError: if no record matches the id and owner.
            FileReadError: if the bytes are missing or unreadable.
        """
        return self.read_record(self._file_repo.find_by_id(file_id, owner_id))

    def read_record(self, record: FileRecord) -> bytes:
        path = self.resolve_path(record)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise FileReadError(f"File not found on disk: {path}") from exc
        except OSError as exc:
            raise FileReadError(f"Failed to read {path}: {exc}") from exc

    def open_stream(self, record: FileRecord, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
        """Open the file now and return a lazy chunk iterator over it.

        Raises:
            FileReadError: if the bytes are missing on disk.
        """
        path = self.resolve_path(record)
        try:
            handle = path.open("rb")
        except OSError as exc:
            raise FileReadError(f"File not found on disk: {path}") from exc
        return _iter_chunks(handle, chunk_size)

    def exists_by_hash(self, content_hash: str, owner_id: str) -> FileRecord | None:
        return self._file_repo.find_original_by_hash(content_hash, owner_id)

    def is_readable(self, record: FileRecord) -> bool:
        try:
            return self.resolve_path(record).is_file()
        except UnsupportedStorageDiskError:
            return False

    def delete(self, file_id: str, owner_id: str) -> None:
        """Remove the file's metadata record. Bytes stay on disk."""
        self._file_repo.delete(file_id, owner_id)
        Log.info(f"Deleted file record {file_id} for owner {owner_id}")

    def storage_stats(self, owner_id: str) -> StorageStats:
        return self._file_repo.storage_stats(owner_id)

    def resolve_path(self, record: FileRecord) -> Path:
        """Absolute path of a record's bytes.

        Raises:
            UnsupportedStorageDiskError: if storage_disk is not 'local'.
        """
        if record.storage_disk != LOCAL_DISK:
            raise UnsupportedStorageDiskError(
                f"storage_disk '{record.storage_disk}' is not supported"
            )
        return self._files_root / record.storage_path

    def _validate(self, data: bytes, mime_type: str | None) -> None:
        if len(data) > self._max_file_size_bytes:
            raise ValidationError(
                f"File size exceeds maximum of {self._max_file_size_bytes} bytes"
            )
        if mime_type and mime_type not in self._allowed_mime_types:
            raise ValidationError(f"File type {mime_type} is not allowed")

    def _write(self, relative: PurePath, data: bytes) -> None:
        path = self._files_root / relative
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            Log.error(f"Failed to create directory {path.parent}: {exc}")
            raise StorageError(f"Directory creation failed: {exc}") from exc
        try:
            path.write_bytes(data)
        except OSError as exc:
            Log.error(f"Failed to write {path}: {exc}")
            raise StorageError(f"File write failed: {exc}") from exc


def _iter_chunks(handle: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    with handle:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                break
            yield chunk

"""SHA-256 digests for file content and processing configs."""

import hashlib
import json
from collections.abc import Iterable
from pathlib import Path
from typing import BinaryIO

from csv_ingest.exceptions import FileReadError
from csv_ingest.processor.models import ProcessingConfig

CHUNK_SIZE = 1024 * 1024


def hash_bytes(data: bytes | str) -> str:
    """Hex SHA-256 of ``data``; strings are encoded as UTF-8."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def hash_stream(source: BinaryIO | Iterable[bytes], chunk_size: int = CHUNK_SIZE) -> str:
    """Hex SHA-256 of a binary file object or an iterable of byte chunks.

    Reads incrementally so the whole input is never held in memory.

    Raises:
        FileReadError: if reading from ``source`` fails.
    """
    digest = hashlib.sha256()
    try:
        for chunk in _chunks(source, chunk_size):
            digest.update(chunk)
    except OSError as exc:
        raise FileReadError(f"Failed to read stream while hashing: {exc}") from exc
    return digest.hexdigest()


def hash_file(path: Path, chunk_size: int = CHUNK_SIZE) -> str:
    """Stream a file from disk through SHA-256.

    Raises:
        FileReadError: if the file cannot be opened or read.
    """
    try:
        with path.open("rb") as handle:
            return hash_stream(handle, chunk_size)
    except OSError as exc:
        raise FileReadError(f"Failed to open {path} for hashing: {exc}") from exc


def canonical_config(config: ProcessingConfig) -> str:
    """Stable JSON form of a config: sorted keys, compact separators."""
    return json.dumps(
        config.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def hash_config(config: ProcessingConfig) -> str:
    return hash_bytes(canonical_config(config))


def compare_hashes(first: str, second: str) -> bool:
    return first.lower() == second.lower()


def _chunks(source: BinaryIO | Iterable[bytes], chunk_size: int) -> Iterable[bytes]:
    read = getattr(source, "read", None)
    if read is None:
        yield from source  # type: ignore[misc]
        return
    while True:
        chunk = read(chunk_size)
        if not chunk:
            break
        yield chunk

class IngestError(Exception):
    """Base exception for all ingestion errors.

    ``kind`` lets callers map an error to a response category without
    inspecting the concrete class.
    """

    kind = "internal"

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": str(self)}


class ValidationError(IngestError):
    """Raised for bad input: size, MIME type, limits or malformed config."""

    kind = "validation"


class NotFoundError(IngestError):
    """Raised when a file or job does not exist or is not owned by the caller."""

    kind = "not_found"


class ProcessingError(IngestError):
    """Raised when reading, parsing or transforming a file fails."""

    kind = "processing"


class FileReadError(ProcessingError):
    """Raised when stored bytes cannot be read from disk."""


class UnsupportedStorageDiskError(ProcessingError):
    """Raised when a file record uses an unsupported storage disk type."""


class StorageError(IngestError):
    """Raised when the content store cannot create directories or write bytes."""

    kind = "storage"

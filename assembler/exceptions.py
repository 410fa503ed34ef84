"""Custom exception classes for the assembler core."""

from typing import Iterable, List, Optional


class AssemblerError(Exception):
    """
    Base exception class for all upload assembly errors.
    """
    code = "ASSEMBLER_ERROR"


class MissingParameterError(AssemblerError):
    """
    Raised when a chunk or merge request lacks required fields.
    """
    code = "MISSING_PARAMETER"

    def __init__(self, missing: Iterable[str]):
        self.missing: List[str] = list(missing)
        super().__init__(f"Missing required parameters: {'/'.join(self.missing)}")


class InvalidParameterError(AssemblerError):
    """
    Raised when a field is present but malformed or out of range.
    """
    code = "INVALID_PARAMETER"


class PathTraversalError(AssemblerError):
    """
    Raised when a client-supplied path would escape a storage root.
    """
    code = "PATH_TRAVERSAL"


class StorageIOError(AssemblerError):
    """
    Raised when a filesystem operation fails.
    """
    code = "IO_FAILURE"


class ChunkTooLargeError(AssemblerError):
    """
    Raised when a chunk payload exceeds the configured limit.
    """
    code = "CHUNK_TOO_LARGE"


class IncompleteTransferError(AssemblerError):
    """
    Raised when a merge is attempted while chunk indices are missing.
    """
    code = "INCOMPLETE_TRANSFER"

    def __init__(self, missing: Iterable[int], folder_path: Optional[str] = None):
        self.missing: List[int] = sorted(missing)
        self.folder_path = folder_path
        super().__init__(f"Chunks {','.join(str(n) for n in self.missing)} missing")


class SizeMismatchError(AssemblerError):
    """
    Raised in strict mode when merged bytes disagree with the reported total size.
    """
    code = "SIZE_MISMATCH"

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Merged size {actual} does not match reported total size {expected}")


class TransferConflictError(AssemblerError):
    """
    Raised when two live transfers would store chunks under the same names.

    Chunk files are named after the filename inside the folder of relativePath,
    so two transfers of one identifier that share folder and filename collide.
    """
    code = "TRANSFER_CONFLICT"

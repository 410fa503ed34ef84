"""Shared data type definitions (TransferKey, ChunkUpload, MergeRequest, FinalArtifact)."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def normalize_relative_path(relative_path: str) -> str:
    """
    Canonical spelling of a relative path: '\\' as '/', empty and '.' segments dropped.

    Does not validate; PathResolver rejects traversal separately.
    """
    segments = relative_path.replace("\\", "/").split("/")
    return "/".join(s for s in segments if s not in ("", "."))


@dataclass(frozen=True)
class TransferKey:
    """
    Identity of one file being uploaded in chunks.

    Build keys with TransferKey.of so that "docs/a.bin", "docs//a.bin" and
    "./docs/a.bin" name the same transfer.
    """
    identifier: str
    relative_path: str

    @classmethod
    def of(cls, identifier: str, relative_path: str) -> "TransferKey":
        return cls(identifier, normalize_relative_path(relative_path))

    def __str__(self) -> str:
        return f"{self.identifier}:{self.relative_path}"


@dataclass(frozen=True)
class ChunkUpload:
    """
    Parsed fields of a single chunk request.
    """
    identifier: str
    relative_path: str
    filename: str
    chunk_number: int
    total_chunks: int
    chunk_size: Optional[int] = None
    current_chunk_size: Optional[int] = None
    total_size: Optional[int] = None

    @property
    def key(self) -> TransferKey:
        return TransferKey.of(self.identifier, self.relative_path)


@dataclass(frozen=True)
class ChunkReceipt:
    """
    Result of accepting one chunk.
    """
    upload: ChunkUpload
    chunk_path: Path
    folder_path: str
    stored_size: int
    need_merge: bool


@dataclass(frozen=True)
class MergeRequest:
    """
    Parsed fields of a merge request.
    """
    identifier: str
    relative_path: str
    filename: str
    total_chunks: int
    total_size: Optional[int] = None

    @property
    def key(self) -> TransferKey:
        return TransferKey.of(self.identifier, self.relative_path)


@dataclass(frozen=True)
class FinalArtifact:
    """
    A merged file published under the upload root.
    """
    identifier: str
    original_name: str
    folder_path: str
    file_name: str
    relative_path: str
    final_path: Path
    size: int
    url: str
    size_mismatch: bool = False

"""Manages physical chunk files on disk: atomic write, existence checks, streaming read, delete."""

import logging
import os
import re
import uuid
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Union

from assembler.exceptions import ChunkTooLargeError, StorageIOError
from common.constants import CHUNK_NAME_MARKER, STREAM_PIECE_BYTES, TEMP_CHUNK_SUFFIX

logger = logging.getLogger(__name__)

ChunkPayload = Union[bytes, bytearray, memoryview, BinaryIO]


def chunk_file_name(filename: str, chunk_number: int) -> str:
    """
    Build the on-disk name of a chunk.

    Args:
        filename: Original file name (e.g., "movie.mp4")
        chunk_number: 1-based chunk index

    Returns:
        "<stem>-chunk-<n><ext>", e.g. "movie-chunk-3.mp4"
    """
    stem, ext = os.path.splitext(filename)
    return f"{stem}{CHUNK_NAME_MARKER}{chunk_number}{ext}"


class ChunkStore:
    """
    Stores chunks under deterministic names inside a transfer's chunk directory.

    A chunk becomes visible under its final name only after its bytes are
    fully flushed, so an existence check never counts a partially written chunk.
    """

    def __init__(self, max_chunk_bytes: Optional[int] = None, piece_size: int = STREAM_PIECE_BYTES):
        self.max_chunk_bytes = max_chunk_bytes
        self.piece_size = piece_size

    def chunk_path(self, chunk_dir: Path, filename: str, chunk_number: int) -> Path:
        return chunk_dir / chunk_file_name(filename, chunk_number)

    def put(self, chunk_dir: Path, chunk_number: int, filename: str, data: ChunkPayload) -> Path:
        """
        Write chunk data to disk, replacing any previous bytes for the same number.

        Args:
            chunk_dir: Directory resolved by PathResolver
            chunk_number: 1-based chunk index
            filename: Original file name used to derive the chunk name
            data: Raw bytes or a readable binary stream

        Returns:
            Path of the stored chunk

        Raises:
            ChunkTooLargeError: If the payload exceeds max_chunk_bytes
            StorageIOError: If the write or rename fails
        """
        target = self.chunk_path(chunk_dir, filename, chunk_number)
        temp = chunk_dir / f".{target.name}.{uuid.uuid4().hex}{TEMP_CHUNK_SUFFIX}"

        try:
            written = self._write_file(temp, data)
            os.replace(temp, target)
        except OSError as e:
            self._discard(temp)
            raise StorageIOError(f"Failed to store chunk {chunk_number} at {target}: {e}") from e
        except BaseException:
            self._discard(temp)
            raise

        logger.debug(f"Stored chunk {chunk_number} ({written} bytes) at {target}")
        return target

    def chunk_exists(self, chunk_dir: Path, filename: str, chunk_number: int) -> bool:
        return self.chunk_path(chunk_dir, filename, chunk_number).is_file()

    def chunk_size(self, chunk_dir: Path, filename: str, chunk_number: int) -> Optional[int]:
        """
        Get size of a chunk file in bytes.

        Returns:
            Size in bytes, or None if the chunk doesn't exist
        """
        try:
            return self.chunk_path(chunk_dir, filename, chunk_number).stat().st_size
        except FileNotFoundError:
            return None

    def missing_chunks(self, chunk_dir: Path, filename: str, total_chunks: int) -> List[int]:
        """
        Check storage for every expected chunk.

        Returns:
            Sorted list of chunk numbers in [1, total_chunks] with no file on disk
        """
        return [
            n for n in range(1, total_chunks + 1)
            if not self.chunk_exists(chunk_dir, filename, n)
        ]

    def list_chunk_numbers(self, chunk_dir: Path, filename: str) -> List[int]:
        """
        List chunk numbers stored for one file name, ignoring in-flight temp files.
        """
        stem, ext = os.path.splitext(filename)
        pattern = re.compile(rf"^{re.escape(stem)}{re.escape(CHUNK_NAME_MARKER)}(\d+){re.escape(ext)}$")
        if not chunk_dir.is_dir():
            return []

        numbers = []
        for entry in chunk_dir.iterdir():
            match = pattern.match(entry.name)
            if match and entry.is_file():
                numbers.append(int(match.group(1)))
        return sorted(numbers)

    def iter_chunk(self, path: Path, piece_size: Optional[int] = None) -> Iterator[bytes]:
        """
        Stream chunk data in pieces.

        Yields:
            Chunk data pieces of at most piece_size bytes

        Raises:
            FileNotFoundError: If chunk does not exist
            OSError: If read operation fails
        """
        piece_size = piece_size or self.piece_size
        with open(path, 'rb') as f:
            while True:
                piece = f.read(piece_size)
                if not piece:
                    break
                yield piece

    def delete_chunks(self, chunk_dir: Path, filename: str, stop_at: Path) -> int:
        """
        Delete every stored chunk of one file and prune directories left empty.

        Chunks of sibling files sharing the same folder are not touched.

        Args:
            chunk_dir: Directory holding the chunks
            filename: Original file name
            stop_at: Directory at which pruning stops (never removed)

        Returns:
            Number of chunk files deleted
        """
        deleted = 0
        for n in self.list_chunk_numbers(chunk_dir, filename):
            try:
                self.chunk_path(chunk_dir, filename, n).unlink()
                deleted += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageIOError(f"Failed to delete chunk {n} in {chunk_dir}: {e}") from e

        current = chunk_dir
        while current != stop_at and stop_at in current.parents:
            try:
                current.rmdir()
            except OSError:
                break
            current = current.parent

        logger.debug(f"Deleted {deleted} chunk(s) of {filename} from {chunk_dir}")
        return deleted

    def _write_file(self, path: Path, data: ChunkPayload) -> int:
        with self._open_temp(path) as f:
            if isinstance(data, (bytes, bytearray, memoryview)):
                self._check_limit(len(data))
                f.write(data)
                written = len(data)
            else:
                written = 0
                while True:
                    piece = data.read(self.piece_size)
                    if not piece:
                        break
                    written += len(piece)
                    self._check_limit(written)
                    f.write(piece)
            f.flush()
            os.fsync(f.fileno())
        return written

    @staticmethod
    def _open_temp(path: Path) -> BinaryIO:
        try:
            return open(path, 'wb')
        except FileNotFoundError:
            # folder pruned by chunk cleanup of a sibling transfer; nothing was read yet
            logger.warning(f"Chunk directory {path.parent} vanished; recreating it")
            path.parent.mkdir(parents=True, exist_ok=True)
            return open(path, 'wb')

    def _check_limit(self, size: int) -> None:
        if self.max_chunk_bytes is not None and size > self.max_chunk_bytes:
            raise ChunkTooLargeError(f"Chunk exceeds limit of {self.max_chunk_bytes} bytes")

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove temp file {path}: {e}")

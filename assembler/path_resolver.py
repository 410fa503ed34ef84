"""Maps (identifier, relativePath) onto sandboxed chunk and final directories."""

import logging
import re
from pathlib import Path
from typing import List

from assembler.exceptions import InvalidParameterError, PathTraversalError, StorageIOError
from common.types import normalize_relative_path

logger = logging.getLogger(__name__)

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


def split_relative_path(relative_path: str) -> List[str]:
    """
    Normalize a client-supplied relative path into its segments.

    Backslashes are treated as separators; empty and '.' segments are dropped.

    Args:
        relative_path: Slash-separated path such as "docs/videos/a.mp4"

    Returns:
        List of path segments, leaf last

    Raises:
        PathTraversalError: If the path is absolute or contains a '..' segment
        InvalidParameterError: If nothing remains after normalization
    """
    if "\x00" in relative_path:
        raise PathTraversalError(f"NUL byte in relative path {relative_path!r}")

    unified = relative_path.replace("\\", "/")
    if unified.startswith("/") or _DRIVE_PREFIX.match(unified):
        raise PathTraversalError(f"Absolute relative path rejected: {relative_path!r}")

    normalized = normalize_relative_path(unified)
    segments = normalized.split("/") if normalized else []
    if any(s == ".." for s in segments):
        raise PathTraversalError(f"Parent segment in relative path rejected: {relative_path!r}")
    if not segments:
        raise InvalidParameterError(f"Relative path {relative_path!r} names no file")

    return segments


def folder_of(relative_path: str) -> str:
    """
    Get the folder component of a relative path.

    Returns:
        "a/b" for "a/b/c.txt", "." when the path is a bare file name
    """
    segments = split_relative_path(relative_path)
    return "/".join(segments[:-1]) or "."


class PathResolver:
    """
    Resolves chunk and final directories under two fixed storage roots.
    """

    def __init__(self, chunk_root: Path, upload_root: Path):
        self.chunk_root = Path(chunk_root).resolve()
        self.upload_root = Path(upload_root).resolve()

    def resolve_chunk_dir(self, identifier: str, relative_path: str, create: bool = True) -> Path:
        """
        Resolve the chunk directory for a transfer, creating it unless create is False.

        Layout: <chunk_root>/<identifier>/<folder of relative_path>

        Raises:
            PathTraversalError: If identifier or relative_path escape the chunk root
            StorageIOError: If the directory cannot be created
        """
        try:
            self.validate_identifier(identifier)
            folder = split_relative_path(relative_path)[:-1]
            target = self._confine(self.chunk_root, self.chunk_root.joinpath(identifier, *folder))
        except PathTraversalError as e:
            logger.warning(f"Path traversal rejected (chunk dir): identifier={identifier!r} relative_path={relative_path!r}: {e}")
            raise
        if create:
            self._ensure_dir(target)
        return target

    def resolve_final_dir(self, relative_path: str) -> Path:
        """
        Resolve and create the final directory mirroring relative_path's folder.

        Raises:
            PathTraversalError: If relative_path escapes the upload root
            StorageIOError: If the directory cannot be created
        """
        try:
            folder = split_relative_path(relative_path)[:-1]
            target = self._confine(self.upload_root, self.upload_root.joinpath(*folder))
            # the default chunk root lives inside the upload root
            if target == self.chunk_root or self.chunk_root in target.parents:
                raise PathTraversalError(f"{target} lies inside the chunk storage root")
        except PathTraversalError as e:
            logger.warning(f"Path traversal rejected (final dir): relative_path={relative_path!r}: {e}")
            raise
        self._ensure_dir(target)
        return target

    def identifier_dir(self, identifier: str) -> Path:
        """Top-level chunk directory of one identifier, not created."""
        self.validate_identifier(identifier)
        return self.chunk_root / identifier

    @staticmethod
    def validate_identifier(identifier: str) -> None:
        if not identifier or identifier in (".", "..") or "/" in identifier or "\\" in identifier or "\x00" in identifier:
            raise PathTraversalError(f"Invalid identifier {identifier!r}")

    @staticmethod
    def validate_filename(filename: str) -> None:
        """
        Ensure filename is a bare leaf name.

        Raises:
            PathTraversalError: If filename contains separators or is '.'/'..'
        """
        if not filename or filename in (".", "..") or "/" in filename or "\\" in filename or "\x00" in filename:
            logger.warning(f"Path traversal rejected (filename): {filename!r}")
            raise PathTraversalError(f"Invalid filename {filename!r}")

    @staticmethod
    def _confine(root: Path, target: Path) -> Path:
        # resolve() follows symlinks planted inside the root
        resolved = target.resolve()
        try:
            resolved.relative_to(root)
        except ValueError:
            raise PathTraversalError(f"{target} resolves outside {root}")
        return resolved

    @staticmethod
    def _ensure_dir(target: Path) -> None:
        try:
            target.mkdir(parents=True, exist_ok=True)
        except FileExistsError as e:
            # exist_ok only covers directories; a regular file is in the way
            raise StorageIOError(f"Cannot create directory {target}: {e}")
        except OSError as e:
            raise StorageIOError(f"Cannot create directory {target}: {e}")

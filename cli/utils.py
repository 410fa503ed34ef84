"""Utility functions for CLI operations."""

import math
import re
from pathlib import Path
from typing import Iterator, List, Tuple

_UNSAFE_IDENTIFIER_CHARS = re.compile(r"[^0-9A-Za-z_-]")


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable format with appropriate unit.

    Uses binary units (1024-based) and automatically selects the most
    appropriate unit (B, KiB, MiB, GiB, TiB).

    Args:
        size_bytes: File size in bytes

    Returns:
        Formatted string with size and unit (e.g., "1.50 MiB", "512 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"

    units = ['KiB', 'MiB', 'GiB', 'TiB']
    size = size_bytes / 1024.0

    for unit in units:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0

    return f"{size:.2f} PiB"


def make_identifier(size: int, relative_path: str) -> str:
    """
    Derive a stable upload identifier from file size and relative path.

    Returns:
        e.g. "1048576-docs-videos-a_mp4"
    """
    cleaned = _UNSAFE_IDENTIFIER_CHARS.sub("_", relative_path.replace("/", "-"))
    return f"{size}-{cleaned}"


def count_chunks(size: int, chunk_size: int) -> int:
    """Number of chunks for a file; an empty file still takes one chunk."""
    return max(1, math.ceil(size / chunk_size))


def collect_upload_files(source: Path, base_name: str = None) -> List[Tuple[Path, str]]:
    """
    List files to upload with the relative path each one is stored under.

    A single file maps to its own name. A folder maps each file below it to
    "<folder name>/<path inside folder>", preserving the tree.

    Args:
        source: File or directory to upload
        base_name: Folder name to use instead of source.name

    Returns:
        Sorted list of (absolute file path, slash-separated relative path)
    """
    source = source.resolve()
    if source.is_file():
        return [(source, source.name)]

    prefix = base_name or source.name
    files = []
    for path in sorted(source.rglob("*")):
        if path.is_file():
            inner = path.relative_to(source).as_posix()
            files.append((path, f"{prefix}/{inner}" if prefix else inner))
    return files


def iter_file_chunks(path: Path, chunk_size: int) -> Iterator[Tuple[int, bytes]]:
    """
    Read a file as numbered chunks.

    Yields:
        (chunk number starting at 1, chunk bytes)
    """
    with open(path, 'rb') as f:
        number = 1
        while True:
            data = f.read(chunk_size)
            if not data and number > 1:
                break
            yield number, data
            if len(data) < chunk_size:
                break
            number += 1

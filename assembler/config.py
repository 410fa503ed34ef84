"""Configuration settings for the assembler core."""

import os
from dataclasses import dataclass
from pathlib import Path

from common.constants import (
    DEFAULT_CHUNK_ROOT,
    DEFAULT_UPLOAD_ROOT,
    GATEWAY_HOST,
    GATEWAY_PORT,
    MAX_CHUNK_BYTES,
    PUBLIC_BASE_URL,
    STREAM_PIECE_BYTES,
)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True)
class AssemblerSettings:
    """
    Runtime settings for chunk storage, merging and the HTTP gateway.

    cleanup_chunks_after_merge is off by default so a failed or repeated
    merge can reuse the stored chunks.
    """
    chunk_root: Path
    upload_root: Path
    cleanup_chunks_after_merge: bool = False
    strict_size_check: bool = False
    max_chunk_bytes: int = MAX_CHUNK_BYTES
    piece_size: int = STREAM_PIECE_BYTES
    public_base_url: str = PUBLIC_BASE_URL
    stale_transfer_ttl: int = 0
    cleanup_interval: int = 3600
    host: str = GATEWAY_HOST
    port: int = GATEWAY_PORT

    @classmethod
    def from_env(cls) -> "AssemblerSettings":
        """
        Build settings from ASSEMBLER_* environment variables.

        Returns:
            AssemblerSettings with absolute storage roots
        """
        return cls(
            chunk_root=Path(os.environ.get("ASSEMBLER_CHUNK_ROOT", DEFAULT_CHUNK_ROOT)).resolve(),
            upload_root=Path(os.environ.get("ASSEMBLER_UPLOAD_ROOT", DEFAULT_UPLOAD_ROOT)).resolve(),
            cleanup_chunks_after_merge=_env_flag("ASSEMBLER_CLEANUP_CHUNKS", False),
            strict_size_check=_env_flag("ASSEMBLER_STRICT_SIZE", False),
            max_chunk_bytes=int(os.environ.get("ASSEMBLER_MAX_CHUNK_BYTES", str(MAX_CHUNK_BYTES))),
            piece_size=int(os.environ.get("ASSEMBLER_PIECE_SIZE", str(STREAM_PIECE_BYTES))),
            public_base_url=os.environ.get("ASSEMBLER_PUBLIC_BASE_URL", PUBLIC_BASE_URL).rstrip("/"),
            stale_transfer_ttl=int(os.environ.get("ASSEMBLER_STALE_TRANSFER_TTL", "0")),
            cleanup_interval=int(os.environ.get("ASSEMBLER_CLEANUP_INTERVAL", "3600")),
            host=os.environ.get("ASSEMBLER_HOST", GATEWAY_HOST),
            port=int(os.environ.get("ASSEMBLER_PORT", str(GATEWAY_PORT))),
        )

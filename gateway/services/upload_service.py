"""Upload service: parses request fields and drives the assembler core."""

import asyncio
import logging
from typing import Any, Mapping, Optional

from assembler.chunk_store import ChunkPayload, ChunkStore
from assembler.config import AssemblerSettings
from assembler.exceptions import InvalidParameterError, MissingParameterError
from assembler.merge_engine import MergeEngine
from assembler.path_resolver import PathResolver, folder_of
from assembler.transfer_tracker import TransferTracker
from common.types import ChunkReceipt, ChunkUpload, FinalArtifact, MergeRequest

logger = logging.getLogger(__name__)

REQUIRED_CHUNK_FIELDS = ("identifier", "chunkNumber", "totalChunks", "filename", "relativePath")
REQUIRED_MERGE_FIELDS = ("identifier", "filename", "totalChunks", "relativePath")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _require(fields: Mapping[str, Any], names) -> None:
    missing = [name for name in names if _is_blank(fields.get(name))]
    if missing:
        raise MissingParameterError(missing)


def _parse_int(fields: Mapping[str, Any], name: str) -> Optional[int]:
    value = fields.get(name)
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        raise InvalidParameterError(f"{name} must be an integer, got {value!r}")
    try:
        return int(str(value).strip())
    except ValueError:
        raise InvalidParameterError(f"{name} must be an integer, got {value!r}")


def parse_chunk_fields(fields: Mapping[str, Any]) -> ChunkUpload:
    """
    Build a ChunkUpload from raw request fields.

    Args:
        fields: Mapping of camelCase field name to raw value

    Returns:
        Parsed ChunkUpload

    Raises:
        MissingParameterError: If a required field is absent or empty
        InvalidParameterError: If a numeric field is malformed or out of range
    """
    _require(fields, REQUIRED_CHUNK_FIELDS)

    upload = ChunkUpload(
        identifier=str(fields["identifier"]),
        relative_path=str(fields["relativePath"]),
        filename=str(fields["filename"]),
        chunk_number=_parse_int(fields, "chunkNumber"),
        total_chunks=_parse_int(fields, "totalChunks"),
        chunk_size=_parse_int(fields, "chunkSize"),
        current_chunk_size=_parse_int(fields, "currentChunkSize"),
        total_size=_parse_int(fields, "totalSize"),
    )
    if upload.total_chunks < 1:
        raise InvalidParameterError(f"totalChunks must be positive, got {upload.total_chunks}")
    if not 1 <= upload.chunk_number <= upload.total_chunks:
        raise InvalidParameterError(
            f"chunkNumber {upload.chunk_number} outside [1, {upload.total_chunks}]"
        )
    return upload


def parse_merge_fields(fields: Mapping[str, Any]) -> MergeRequest:
    """
    Build a MergeRequest from raw request fields.

    Raises:
        MissingParameterError: If a required field is absent or empty
        InvalidParameterError: If totalChunks or totalSize is malformed
    """
    _require(fields, REQUIRED_MERGE_FIELDS)

    request = MergeRequest(
        identifier=str(fields["identifier"]),
        relative_path=str(fields["relativePath"]),
        filename=str(fields["filename"]),
        total_chunks=_parse_int(fields, "totalChunks"),
        total_size=_parse_int(fields, "totalSize"),
    )
    if request.total_chunks < 1:
        raise InvalidParameterError(f"totalChunks must be positive, got {request.total_chunks}")
    return request


class UploadService:
    """
    Wires PathResolver, ChunkStore, TransferTracker and MergeEngine together.
    """

    def __init__(self, settings: AssemblerSettings):
        self.settings = settings
        self.resolver = PathResolver(settings.chunk_root, settings.upload_root)
        self.chunk_store = ChunkStore(
            max_chunk_bytes=settings.max_chunk_bytes,
            piece_size=settings.piece_size,
        )
        self.tracker = TransferTracker(self.chunk_store)
        self.merge_engine = MergeEngine(self.resolver, self.chunk_store, self.tracker, settings)

    async def accept_chunk(self, upload: ChunkUpload, data: ChunkPayload) -> ChunkReceipt:
        """
        Store one chunk and report whether its transfer is now complete.

        Args:
            upload: Parsed chunk fields
            data: Chunk bytes or a readable binary stream

        Returns:
            ChunkReceipt with need_merge set on the arrival that completed the transfer
        """
        return await asyncio.to_thread(self._accept_chunk, upload, data)

    def _accept_chunk(self, upload: ChunkUpload, data: ChunkPayload) -> ChunkReceipt:
        self.resolver.validate_filename(upload.filename)
        chunk_dir = self.resolver.resolve_chunk_dir(upload.identifier, upload.relative_path)
        folder = folder_of(upload.relative_path)

        self.tracker.claim(
            upload.key,
            chunk_dir=chunk_dir,
            filename=upload.filename,
            total_chunks=upload.total_chunks,
            total_size=upload.total_size,
        )
        chunk_path = self.chunk_store.put(chunk_dir, upload.chunk_number, upload.filename, data)
        stored_size = chunk_path.stat().st_size

        if upload.current_chunk_size is not None and upload.current_chunk_size != stored_size:
            logger.warning(
                f"[{folder}] chunk {upload.chunk_number} of {upload.key}: "
                f"reported {upload.current_chunk_size} bytes, stored {stored_size}"
            )

        need_merge = self.tracker.record_arrival(
            upload.key,
            upload.chunk_number,
            upload.total_chunks,
            chunk_dir=chunk_dir,
            filename=upload.filename,
            total_size=upload.total_size,
        )

        logger.info(
            f"[{folder}] chunk {upload.chunk_number}/{upload.total_chunks} of {upload.filename} stored"
            f"{' (transfer complete)' if need_merge else ''}"
        )
        return ChunkReceipt(
            upload=upload,
            chunk_path=chunk_path,
            folder_path=folder,
            stored_size=stored_size,
            need_merge=need_merge,
        )

    async def merge(self, request: MergeRequest) -> FinalArtifact:
        """Merge a completed transfer; see MergeEngine.merge."""
        return await self.merge_engine.merge(request)

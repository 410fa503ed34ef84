"""Streams the chunks of a completed transfer into one published file."""

import asyncio
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Dict, Optional, Tuple
from urllib.parse import quote

from assembler.chunk_store import ChunkStore
from assembler.config import AssemblerSettings
from assembler.exceptions import (
    IncompleteTransferError,
    SizeMismatchError,
    StorageIOError,
    TransferConflictError
)
from assembler.keyed_lock import KeyedLock
from assembler.path_resolver import PathResolver, folder_of
from assembler.transfer_tracker import TransferTracker
from common.constants import STATIC_MOUNT_PATH, TEMP_MERGE_SUFFIX
from common.types import FinalArtifact, MergeRequest, TransferKey

logger = logging.getLogger(__name__)

MAX_NAME_ATTEMPTS = 1000


class MergeEngine:
    """
    Concatenates chunks 1..N of a transfer, in order, into a final artifact.

    At most one merge runs per transfer key. A merge request arriving while
    another merge of the same key is in flight waits for and shares that
    merge's outcome instead of merging again.
    """

    def __init__(
        self,
        resolver: PathResolver,
        chunk_store: ChunkStore,
        tracker: TransferTracker,
        settings: AssemblerSettings,
    ):
        self.resolver = resolver
        self.chunk_store = chunk_store
        self.tracker = tracker
        self.settings = settings
        self.locks = KeyedLock()
        self._inflight: Dict[TransferKey, asyncio.Future] = {}

    async def merge(self, request: MergeRequest) -> FinalArtifact:
        """
        Merge a transfer into its final file.

        Args:
            request: Parsed merge request

        Returns:
            FinalArtifact describing the published file

        Raises:
            PathTraversalError: If identifier, relative path or filename escape storage
            IncompleteTransferError: If any chunk in [1, total_chunks] is missing
            TransferConflictError: If another live transfer owns the chunk files
            SizeMismatchError: In strict mode, if merged bytes differ from total_size
            StorageIOError: If any read, write or rename fails
        """
        key = request.key
        inflight = self._inflight.get(key)
        if inflight is not None:
            logger.info(f"Merge of {key} already running; waiting for its result")
            return await asyncio.shield(inflight)

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            async with self.locks.hold(key):
                artifact = await self._merge_locked(request)
        except Exception as e:
            future.set_exception(e)
            # mark retrieved; waiters, if any, still receive it
            future.exception()
            raise
        else:
            future.set_result(artifact)
            return artifact
        finally:
            if not future.done():
                future.cancel()
            self._inflight.pop(key, None)

    async def _merge_locked(self, request: MergeRequest) -> FinalArtifact:
        key = request.key
        self.resolver.validate_filename(request.filename)
        chunk_dir = self.resolver.resolve_chunk_dir(request.identifier, request.relative_path, create=False)
        folder = folder_of(request.relative_path)

        owner = self.tracker.owner(chunk_dir, request.filename)
        if owner is not None and owner != key:
            raise TransferConflictError(
                f"Chunks of {request.filename!r} in this folder belong to transfer {owner}, not {key}"
            )

        missing = await asyncio.to_thread(
            self.chunk_store.missing_chunks, chunk_dir, request.filename, request.total_chunks
        )
        if missing:
            self.tracker.release(key)
            logger.warning(f"Merge of {key} refused: chunks {missing} missing")
            raise IncompleteTransferError(missing, folder_path=folder)

        expected_size = request.total_size
        if expected_size is None:
            state = self.tracker.get(key)
            expected_size = state.total_size if state is not None else None

        try:
            final_dir = self.resolver.resolve_final_dir(request.relative_path)
            final_path, size = await asyncio.to_thread(
                self._assemble, request, chunk_dir, final_dir, expected_size
            )
        except BaseException:
            self.tracker.release(key)
            raise

        size_mismatch = expected_size is not None and expected_size != size
        self.tracker.forget(key)

        if self.settings.cleanup_chunks_after_merge:
            await self._cleanup(request, chunk_dir)

        relative_file = final_path.name if folder == "." else f"{folder}/{final_path.name}"
        artifact = FinalArtifact(
            identifier=request.identifier,
            original_name=request.filename,
            folder_path=folder,
            file_name=final_path.name,
            relative_path=relative_file,
            final_path=final_path,
            size=size,
            url=f"{self.settings.public_base_url}{STATIC_MOUNT_PATH}/{quote(relative_file)}",
            size_mismatch=size_mismatch,
        )
        logger.info(f"[{folder}] Merged {request.total_chunks} chunk(s) of {key} into {final_path} ({size} bytes)")
        return artifact

    def _assemble(
        self,
        request: MergeRequest,
        chunk_dir: Path,
        final_dir: Path,
        expected_size: Optional[int],
    ) -> Tuple[Path, int]:
        temp = final_dir / f".{uuid.uuid4().hex}{TEMP_MERGE_SUFFIX}"
        try:
            size = 0
            with open(temp, 'wb') as out:
                for n in range(1, request.total_chunks + 1):
                    path = self.chunk_store.chunk_path(chunk_dir, request.filename, n)
                    for piece in self.chunk_store.iter_chunk(path, self.settings.piece_size):
                        out.write(piece)
                        size += len(piece)
                    out.flush()
                os.fsync(out.fileno())

            if expected_size is not None and expected_size != size:
                if self.settings.strict_size_check:
                    raise SizeMismatchError(expected_size, size)
                logger.warning(
                    f"Size mismatch for {request.key}: reported {expected_size}, merged {size}"
                )

            stem, ext = os.path.splitext(request.filename)
            final_path = self._publish(temp, final_dir, stem, ext)
        except OSError as e:
            self._discard(temp)
            raise StorageIOError(f"Merge of {request.key} failed: {e}") from e
        except BaseException:
            self._discard(temp)
            raise
        return final_path, size

    def _publish(self, temp: Path, final_dir: Path, stem: str, ext: str) -> Path:
        """
        Expose the finished temp file under a name no other file holds.

        os.link fails instead of overwriting, so an existing file is never replaced.
        Where hard links are unsupported the name is first reserved with an
        exclusive create, then the temp file is renamed over the reservation.
        """
        base = f"{int(time.time() * 1000)}-{stem}"
        for attempt in range(MAX_NAME_ATTEMPTS):
            name = f"{base}{ext}" if attempt == 0 else f"{base}-{attempt}{ext}"
            candidate = final_dir / name
            try:
                os.link(temp, candidate)
            except FileExistsError:
                continue
            except OSError as e:
                if not self._reserve(candidate):
                    continue
                logger.warning(f"Hard links unavailable in {final_dir} ({e}); publishing by rename")
                try:
                    os.replace(temp, candidate)
                except OSError:
                    self._discard(candidate)
                    raise
                return candidate
            temp.unlink()
            return candidate
        raise StorageIOError(f"No free final name for {stem}{ext} in {final_dir}")

    @staticmethod
    def _reserve(path: Path) -> bool:
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        os.close(fd)
        return True

    async def _cleanup(self, request: MergeRequest, chunk_dir: Path) -> None:
        try:
            deleted = await asyncio.to_thread(
                self.chunk_store.delete_chunks, chunk_dir, request.filename, self.resolver.chunk_root
            )
            logger.info(f"Removed {deleted} merged chunk(s) of {request.key}")
        except StorageIOError as e:
            # merged file is already published; stale chunks are left for the cleaner
            logger.warning(f"Chunk cleanup after merge of {request.key} failed: {e}")

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove partial merge file {path}: {e}")

"""In-memory completion state per (identifier, relativePath)."""

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Set, Tuple

from assembler.chunk_store import ChunkStore
from assembler.exceptions import InvalidParameterError, TransferConflictError
from common.types import TransferKey

logger = logging.getLogger(__name__)

# (chunk directory, filename): every chunk file name of a transfer derives from it
ChunkSlot = Tuple[Path, str]


@dataclass
class TransferState:
    """
    What the tracker knows about one transfer.
    """
    key: TransferKey
    filename: str
    total_chunks: int
    chunk_dir: Path
    total_size: Optional[int] = None
    received: Set[int] = field(default_factory=set)
    completion_signalled: bool = False
    last_arrival: float = field(default_factory=time.time)

    @property
    def slot(self) -> ChunkSlot:
        return (self.chunk_dir, self.filename)


class TransferTracker:
    """
    Decides when a transfer is complete.

    Arrivals are counted in memory; storage is checked for every chunk only once
    each of 1..total_chunks has been seen, and the check runs outside the
    tracker lock so other transfers never wait on it. Only the first arrival
    that observes a full set on disk is told to merge.

    The tracker also records which live transfer owns each chunk slot, so two
    transfers never write chunks under the same file names.
    """

    def __init__(self, chunk_store: ChunkStore):
        self.chunk_store = chunk_store
        self._states: Dict[TransferKey, TransferState] = {}
        self._slots: Dict[ChunkSlot, TransferKey] = {}
        self._lock = threading.Lock()

    def claim(
        self,
        key: TransferKey,
        *,
        chunk_dir: Path,
        filename: str,
        total_chunks: int,
        total_size: Optional[int] = None,
    ) -> TransferState:
        """
        Register key as the owner of its chunk slot, creating its state if needed.

        Must be called before a chunk is written.

        Raises:
            TransferConflictError: If another live transfer owns the same slot
        """
        slot = (chunk_dir, filename)
        with self._lock:
            owner = self._slots.get(slot)
            if owner is not None and owner != key and owner in self._states:
                raise TransferConflictError(
                    f"Chunks of {filename!r} in this folder already belong to transfer {owner}"
                )

            state = self._states.get(key)
            if state is None or state.total_chunks != total_chunks or state.slot != slot:
                if state is not None:
                    logger.warning(
                        f"Transfer {key} re-announced (totalChunks {state.total_chunks} -> {total_chunks}, "
                        f"filename {state.filename!r} -> {filename!r}); resetting state"
                    )
                    self._release_slot(state)
                state = TransferState(
                    key=key,
                    filename=filename,
                    total_chunks=total_chunks,
                    chunk_dir=chunk_dir,
                )
                self._states[key] = state

            self._slots[slot] = key
            if total_size is not None:
                state.total_size = total_size
            return state

    def record_arrival(
        self,
        key: TransferKey,
        chunk_number: int,
        total_chunks: int,
        *,
        chunk_dir: Path,
        filename: str,
        total_size: Optional[int] = None,
    ) -> bool:
        """
        Record a stored chunk and report whether the transfer just became complete.

        Args:
            key: Transfer identity
            chunk_number: Index of the chunk that was stored
            total_chunks: Number of chunks the client announced
            chunk_dir: Directory holding the transfer's chunks
            filename: Original file name used for chunk naming
            total_size: Reported size of the whole file, if known

        Returns:
            True exactly once per completion, False otherwise

        Raises:
            InvalidParameterError: If chunk_number is outside [1, total_chunks]
            TransferConflictError: If another live transfer owns the same slot
        """
        if total_chunks < 1 or not 1 <= chunk_number <= total_chunks:
            raise InvalidParameterError(
                f"chunkNumber {chunk_number} outside [1, {total_chunks}]"
            )

        state = self.claim(
            key, chunk_dir=chunk_dir, filename=filename, total_chunks=total_chunks, total_size=total_size
        )
        with self._lock:
            state.received.add(chunk_number)
            state.last_arrival = time.time()
            if state.completion_signalled or len(state.received) < state.total_chunks:
                return False

        missing = self.chunk_store.missing_chunks(chunk_dir, filename, total_chunks)
        if missing:
            logger.debug(f"Transfer {key}: chunks {missing} not on disk yet")
            return False

        with self._lock:
            if self._states.get(key) is not state or state.completion_signalled:
                return False
            state.completion_signalled = True

        logger.info(f"Transfer {key} complete ({total_chunks} chunks)")
        return True

    def get(self, key: TransferKey) -> Optional[TransferState]:
        with self._lock:
            return self._states.get(key)

    def owner(self, chunk_dir: Path, filename: str) -> Optional[TransferKey]:
        """Live transfer owning a chunk slot, if any."""
        with self._lock:
            key = self._slots.get((chunk_dir, filename))
            return key if key in self._states else None

    def release(self, key: TransferKey) -> None:
        """
        Re-arm the completion signal after a failed merge.
        """
        with self._lock:
            state = self._states.get(key)
            if state is not None:
                state.completion_signalled = False

    def forget(self, key: TransferKey) -> None:
        """Drop all state of a merged transfer."""
        with self._lock:
            state = self._states.pop(key, None)
            if state is not None:
                self._release_slot(state)

    def forget_identifier(self, identifier: str) -> int:
        """
        Drop the state of every transfer under one identifier.

        Returns:
            Number of transfers forgotten
        """
        with self._lock:
            keys = [k for k in self._states if k.identifier == identifier]
            for k in keys:
                self._release_slot(self._states.pop(k))
            return len(keys)

    def count(self) -> int:
        with self._lock:
            return len(self._states)

    def _release_slot(self, state: TransferState) -> None:
        if self._slots.get(state.slot) == state.key:
            del self._slots[state.slot]

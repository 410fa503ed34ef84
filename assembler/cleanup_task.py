"""Background task for reclaiming chunk directories of abandoned transfers."""

import asyncio
import logging
import os
import shutil
import time
from pathlib import Path
from typing import List, Optional

from assembler.keyed_lock import KeyedLock
from assembler.transfer_tracker import TransferTracker

logger = logging.getLogger(__name__)


def newest_mtime(directory: Path) -> float:
    """
    Get the most recent modification time of a directory tree.

    Returns:
        Newest mtime among the directory itself and everything below it
    """
    newest = directory.stat().st_mtime
    for root, dirs, files in os.walk(directory):
        for name in dirs + files:
            try:
                newest = max(newest, os.stat(os.path.join(root, name)).st_mtime)
            except FileNotFoundError:
                continue
    return newest


class StaleTransferCleaner:
    """
    Background task that periodically removes identifier directories under the
    chunk root that have not received a chunk within the TTL.
    """

    def __init__(
        self,
        chunk_root: Path,
        tracker: TransferTracker,
        locks: KeyedLock,
        ttl_seconds: int,
        interval_seconds: int = 3600,
    ):
        """
        Initialize cleaner task.

        Args:
            chunk_root: Root directory of chunk storage
            tracker: Tracker whose state is dropped with the directories
            locks: Merge locks; identifiers with a merge in progress are skipped
            ttl_seconds: Age after which an untouched transfer is stale
            interval_seconds: Time between cleanup cycles
        """
        self.chunk_root = Path(chunk_root)
        self.tracker = tracker
        self.locks = locks
        self.ttl_seconds = ttl_seconds
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Start the background cleanup task."""
        if self._running:
            logger.warning("Stale transfer cleaner already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"Started stale transfer cleaner (ttl: {self.ttl_seconds}s, interval: {self.interval_seconds}s)"
        )

    async def stop(self) -> None:
        """Stop the background cleanup task."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Stopped stale transfer cleaner")

    async def _run(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)

                if not self._running:
                    break

                await self.cleanup_cycle()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in stale transfer cleaner: {e}", exc_info=True)

    async def cleanup_cycle(self, now: Optional[float] = None) -> List[str]:
        """
        Execute one cleanup cycle.

        Args:
            now: Reference time (defaults to time.time())

        Returns:
            Identifiers whose chunk directories were removed
        """
        now = time.time() if now is None else now
        if not self.chunk_root.is_dir():
            return []

        busy = {key.identifier for key in self.locks.keys()}
        removed = []

        for entry in self.chunk_root.iterdir():
            if not entry.is_dir() or entry.name in busy:
                continue
            try:
                age = now - await asyncio.to_thread(newest_mtime, entry)
                if age < self.ttl_seconds:
                    continue
                await asyncio.to_thread(shutil.rmtree, entry)
            except OSError as e:
                logger.warning(f"Failed to reclaim stale chunks of {entry.name}: {e}")
                continue

            self.tracker.forget_identifier(entry.name)
            removed.append(entry.name)
            logger.info(f"Reclaimed stale transfer {entry.name} (idle {int(age)}s)")

        if removed:
            logger.info(f"Cleanup cycle complete: {len(removed)} stale transfer(s) removed")
        else:
            logger.debug("Cleanup cycle complete: nothing stale")
        return removed

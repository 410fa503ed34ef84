"""Tests for the stale transfer cleaner."""

import time

import pytest

from assembler.cleanup_task import StaleTransferCleaner, newest_mtime
from assembler.keyed_lock import KeyedLock
from common.types import TransferKey


@pytest.fixture
def cleaner(settings, tracker):
    return StaleTransferCleaner(
        chunk_root=settings.chunk_root,
        tracker=tracker,
        locks=KeyedLock(),
        ttl_seconds=60,
        interval_seconds=3600,
    )


def make_transfer(resolver, chunk_store, tracker, identifier):
    chunk_dir = resolver.resolve_chunk_dir(identifier, 'folder/file.bin')
    chunk_store.put(chunk_dir, 1, 'file.bin', b'data')
    tracker.record_arrival(
        TransferKey(identifier, 'folder/file.bin'), 1, 2, chunk_dir=chunk_dir, filename='file.bin'
    )
    return chunk_dir


@pytest.mark.asyncio
async def test_fresh_transfers_are_kept(cleaner, resolver, chunk_store, tracker, settings):
    make_transfer(resolver, chunk_store, tracker, 'fresh')

    removed = await cleaner.cleanup_cycle()

    assert removed == []
    assert (settings.chunk_root / 'fresh').is_dir()


@pytest.mark.asyncio
async def test_stale_transfers_are_removed(cleaner, resolver, chunk_store, tracker, settings):
    make_transfer(resolver, chunk_store, tracker, 'old')

    removed = await cleaner.cleanup_cycle(now=time.time() + 120)

    assert removed == ['old']
    assert not (settings.chunk_root / 'old').exists()
    assert tracker.count() == 0


@pytest.mark.asyncio
async def test_transfers_being_merged_are_skipped(cleaner, resolver, chunk_store, tracker, settings):
    make_transfer(resolver, chunk_store, tracker, 'busy')

    async with cleaner.locks.hold(TransferKey('busy', 'folder/file.bin')):
        removed = await cleaner.cleanup_cycle(now=time.time() + 120)

    assert removed == []
    assert (settings.chunk_root / 'busy').is_dir()


@pytest.mark.asyncio
async def test_missing_chunk_root_is_noop(cleaner):
    assert await cleaner.cleanup_cycle() == []


@pytest.mark.asyncio
async def test_start_and_stop(cleaner):
    await cleaner.start()
    await cleaner.stop()

    assert cleaner._running is False


def test_newest_mtime_sees_nested_files(tmp_path):
    nested = tmp_path / 'a' / 'b'
    nested.mkdir(parents=True)
    (nested / 'f').write_bytes(b'x')

    assert newest_mtime(tmp_path) >= (nested / 'f').stat().st_mtime

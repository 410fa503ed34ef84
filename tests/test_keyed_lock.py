"""Tests for per-key asyncio locking."""

import asyncio

import pytest

from assembler.keyed_lock import KeyedLock


@pytest.mark.asyncio
async def test_same_key_is_serialized():
    locks = KeyedLock()
    events = []

    async def worker(name):
        async with locks.hold('k'):
            events.append(f'{name}-in')
            await asyncio.sleep(0.01)
            events.append(f'{name}-out')

    await asyncio.gather(worker('a'), worker('b'))

    assert events in (['a-in', 'a-out', 'b-in', 'b-out'], ['b-in', 'b-out', 'a-in', 'a-out'])


@pytest.mark.asyncio
async def test_different_keys_do_not_contend():
    locks = KeyedLock()
    inside = asyncio.Event()

    async def holder():
        async with locks.hold('a'):
            inside.set()
            await asyncio.sleep(0.05)

    task = asyncio.create_task(holder())
    await inside.wait()

    async with locks.hold('b'):
        assert locks.locked('a')
        assert locks.locked('b')

    await task


@pytest.mark.asyncio
async def test_entries_are_dropped_after_release():
    locks = KeyedLock()

    async with locks.hold('a'):
        assert len(locks) == 1
        assert locks.keys() == ['a']

    assert len(locks) == 0
    assert not locks.locked('a')


@pytest.mark.asyncio
async def test_entry_dropped_when_holder_raises():
    locks = KeyedLock()

    with pytest.raises(RuntimeError):
        async with locks.hold('a'):
            raise RuntimeError('boom')

    assert len(locks) == 0

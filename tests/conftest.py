"""Shared pytest fixtures for all tests."""

import pytest
from pathlib import Path

from assembler.chunk_store import ChunkStore
from assembler.config import AssemblerSettings
from assembler.merge_engine import MergeEngine
from assembler.path_resolver import PathResolver
from assembler.transfer_tracker import TransferTracker
from cli.config import Config


@pytest.fixture
def settings(tmp_path):
    """
    Settings with both storage roots under tmp_path.

    The chunk root sits inside the upload root, like the default layout.
    """
    upload_root = tmp_path / 'uploads'
    return AssemblerSettings(
        chunk_root=upload_root / 'chunks',
        upload_root=upload_root,
        piece_size=4,
    )


@pytest.fixture
def resolver(settings):
    return PathResolver(settings.chunk_root, settings.upload_root)


@pytest.fixture
def chunk_store(settings):
    return ChunkStore(max_chunk_bytes=settings.max_chunk_bytes, piece_size=settings.piece_size)


@pytest.fixture
def tracker(chunk_store):
    return TransferTracker(chunk_store)


@pytest.fixture
def make_engine(resolver, chunk_store, tracker):
    """Factory building a MergeEngine for given settings."""
    def _make(settings):
        return MergeEngine(resolver, chunk_store, tracker, settings)
    return _make


@pytest.fixture
def engine(make_engine, settings):
    return make_engine(settings)


@pytest.fixture
def snapshot_tree():
    """Function listing every path below a root, relative to it."""
    def _snapshot(root: Path) -> set:
        return {p.relative_to(root) for p in root.rglob("*")}
    return _snapshot


@pytest.fixture
def temp_config_dir(tmp_path):
    """
    Create temporary config directory.

    Returns:
        Path to temporary .chunkup directory
    """
    config_dir = tmp_path / '.chunkup'
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def temp_config(temp_config_dir):
    """
    Create temporary config instance.

    Returns:
        Config instance with temp config file
    """
    return Config(temp_config_dir / 'config.json')


@pytest.fixture
def sample_tree(tmp_path):
    """
    Create a small folder tree for folder uploads.

    Returns:
        Path to the 'album' folder
    """
    root = tmp_path / 'src' / 'album'
    (root / 'raw').mkdir(parents=True)
    (root / 'cover.jpg').write_bytes(b'JPEGDATA-0123456789')
    (root / 'raw' / 'shot1.bin').write_bytes(bytes(range(50)))
    (root / 'raw' / 'empty.txt').write_bytes(b'')
    return root

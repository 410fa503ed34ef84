"""Pydantic schemas for chunk upload and merge endpoints."""

from typing import Optional

from gateway.schemas.common import CamelModel


class ChunkInfo(CamelModel):
    """Details of one accepted chunk."""
    original_name: str
    relative_path: str
    folder_path: str
    chunk_number: int
    total_chunks: int
    chunk_size: Optional[int] = None
    current_chunk_size: Optional[int] = None
    stored_size: int
    total_size: Optional[int] = None
    identifier: str


class ChunkUploadResponse(CamelModel):
    """Response model for a chunk upload."""
    code: int = 0
    msg: str
    data: ChunkInfo
    need_merge: bool


class MergedFileInfo(CamelModel):
    """Details of a merged file."""
    original_name: str
    original_folder_path: str
    file_name: str
    file_size: int
    file_size_text: str
    file_path: str
    full_url: str
    identifier: str
    size_mismatch: bool = False


class MergeResponse(CamelModel):
    """Response model for a merge."""
    code: int = 0
    msg: str
    data: MergedFileInfo

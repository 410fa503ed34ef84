"""Pydantic schemas for API requests and responses."""

from gateway.schemas.common import CamelModel, ErrorResponse
from gateway.schemas.uploads import (
    ChunkInfo,
    ChunkUploadResponse,
    MergedFileInfo,
    MergeResponse
)

__all__ = [
    "CamelModel",
    "ErrorResponse",
    "ChunkInfo",
    "ChunkUploadResponse",
    "MergedFileInfo",
    "MergeResponse"
]

"""Business logic services."""

from gateway.services.upload_service import UploadService, parse_chunk_fields, parse_merge_fields

__all__ = ["UploadService", "parse_chunk_fields", "parse_merge_fields"]

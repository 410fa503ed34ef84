"""Common schemas used across multiple endpoints."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with the camelCase field names the upload clients use."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(CamelModel):
    """Response model for errors."""
    code: int = -1
    error: str
    detail: str
    missing: Optional[List[str]] = None
    missing_chunks: Optional[List[int]] = None
    folder_path: Optional[str] = None

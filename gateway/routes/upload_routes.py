"""Chunk upload and merge API routes."""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from assembler.exceptions import MissingParameterError
from gateway.schemas.uploads import ChunkInfo, ChunkUploadResponse, MergedFileInfo, MergeResponse
from gateway.services.upload_service import UploadService, parse_chunk_fields, parse_merge_fields

router = APIRouter(prefix="/upload", tags=["Uploads"])


def get_upload_service(request: Request) -> UploadService:
    """Upload service bound to the running application."""
    return request.app.state.upload_service


@router.api_route("/multiple", methods=["POST", "PUT"], response_model=ChunkUploadResponse)
async def upload_chunk(
    file: Optional[UploadFile] = File(None),
    identifier: Optional[str] = Form(None),
    relative_path: Optional[str] = Form(None, alias="relativePath"),
    filename: Optional[str] = Form(None),
    chunk_number: Optional[str] = Form(None, alias="chunkNumber"),
    total_chunks: Optional[str] = Form(None, alias="totalChunks"),
    chunk_size: Optional[str] = Form(None, alias="chunkSize"),
    current_chunk_size: Optional[str] = Form(None, alias="currentChunkSize"),
    total_size: Optional[str] = Form(None, alias="totalSize"),
    service: UploadService = Depends(get_upload_service)
):
    """
    Upload one chunk of a file (multipart/form-data).

    Parameters:
        - file: Chunk bytes
        - identifier, relativePath, filename, chunkNumber, totalChunks (required)
        - chunkSize, currentChunkSize, totalSize (optional)

    Returns:
        - data: Details of the stored chunk
        - needMerge: True on the upload that completed the transfer

    Raises:
        - 400: Missing or invalid parameter, path traversal
        - 409: Another transfer in this folder uses the same filename
        - 413: Chunk larger than the configured limit
        - 500: Storage failure
    """
    upload = parse_chunk_fields({
        "identifier": identifier,
        "relativePath": relative_path,
        "filename": filename,
        "chunkNumber": chunk_number,
        "totalChunks": total_chunks,
        "chunkSize": chunk_size,
        "currentChunkSize": current_chunk_size,
        "totalSize": total_size,
    })
    if file is None:
        raise MissingParameterError(["file"])

    receipt = await service.accept_chunk(upload, file.file)

    return ChunkUploadResponse(
        msg=f"[{receipt.folder_path}] chunk {upload.chunk_number}/{upload.total_chunks} uploaded",
        data=ChunkInfo(
            original_name=upload.filename,
            relative_path=upload.relative_path,
            folder_path=receipt.folder_path,
            chunk_number=upload.chunk_number,
            total_chunks=upload.total_chunks,
            chunk_size=upload.chunk_size,
            current_chunk_size=upload.current_chunk_size,
            stored_size=receipt.stored_size,
            total_size=upload.total_size,
            identifier=upload.identifier,
        ),
        need_merge=receipt.need_merge,
    )


@router.post("/merge", response_model=MergeResponse)
async def merge_upload(
    request: Request,
    service: UploadService = Depends(get_upload_service)
):
    """
    Merge all chunks of a transfer into its final file.

    Parameters (JSON or form body):
        - identifier, filename, totalChunks, relativePath (required)
        - totalSize (optional, overrides the size reported with the chunks)

    Returns:
        - data: Final file name, size, relative path and URL

    Raises:
        - 400: Missing or invalid parameter, path traversal
        - 409: Chunks missing (missingChunks lists them) or owned by another transfer
        - 422: Merged size differs from totalSize (strict mode only)
        - 500: Storage failure
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            fields = await request.json()
        except ValueError:
            fields = {}
        if not isinstance(fields, dict):
            fields = {}
    else:
        fields = dict(await request.form())

    merge_request = parse_merge_fields(fields)
    artifact = await service.merge(merge_request)

    return MergeResponse(
        msg=f"[{artifact.folder_path}] file merged",
        data=MergedFileInfo(
            original_name=artifact.original_name,
            original_folder_path=artifact.folder_path,
            file_name=artifact.file_name,
            file_size=artifact.size,
            file_size_text=f"{artifact.size / 1024 / 1024:.2f} MB",
            file_path=artifact.relative_path,
            full_url=artifact.url,
            identifier=artifact.identifier,
            size_mismatch=artifact.size_mismatch,
        ),
    )

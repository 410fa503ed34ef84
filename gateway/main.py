"""Entry point for the upload gateway service."""

import time
import uuid
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from assembler.cleanup_task import StaleTransferCleaner
from assembler.config import AssemblerSettings
from assembler.exceptions import (
    AssemblerError,
    ChunkTooLargeError,
    IncompleteTransferError,
    InvalidParameterError,
    MissingParameterError,
    PathTraversalError,
    SizeMismatchError,
    StorageIOError,
    TransferConflictError
)
from common.constants import STATIC_MOUNT_PATH
from common.logging_config import mask_storage_roots, setup_logging
from gateway.routes.upload_routes import router as upload_router
from gateway.schemas.common import ErrorResponse
from gateway.services.upload_service import UploadService
from gateway.static import UploadStaticFiles

logger = setup_logging('gateway')
core_logger = setup_logging('assembler')

STATUS_BY_ERROR = {
    MissingParameterError: status.HTTP_400_BAD_REQUEST,
    InvalidParameterError: status.HTTP_400_BAD_REQUEST,
    PathTraversalError: status.HTTP_400_BAD_REQUEST,
    ChunkTooLargeError: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    IncompleteTransferError: status.HTTP_409_CONFLICT,
    SizeMismatchError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    StorageIOError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    TransferConflictError: status.HTTP_409_CONFLICT,
}


def _error_response(exc: AssemblerError, status_code: int, **extra) -> JSONResponse:
    body = ErrorResponse(error=exc.code, detail=str(exc), **extra)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True)
    )


def create_app(settings: Optional[AssemblerSettings] = None) -> FastAPI:
    """
    Build the gateway application.

    Args:
        settings: Assembler settings (defaults to AssemblerSettings.from_env())

    Returns:
        Configured FastAPI application
    """
    settings = settings or AssemblerSettings.from_env()

    app = FastAPI(
        title="Chunked Upload Gateway",
        description="Receives file chunks, tracks completion and merges them preserving folder structure",
        version="1.0.0"
    )
    app.state.settings = settings
    app.state.upload_service = UploadService(settings)
    app.state.cleaner = None

    mask_storage_roots(logger, {"<chunks>": str(settings.chunk_root), "<uploads>": str(settings.upload_root)})
    mask_storage_roots(core_logger, {"<chunks>": str(settings.chunk_root), "<uploads>": str(settings.upload_root)})

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        Middleware to log all HTTP requests and responses.
        """
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        logger.info(f"Request started: {request.method} {request.url.path} [request_id={request_id}]")

        response = await call_next(request)

        duration = time.time() - start_time
        logger.info(
            f"Request completed: {request.method} {request.url.path} "
            f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
        )

        response.headers["X-Request-ID"] = request_id
        return response

    @app.on_event("startup")
    async def startup_event():
        """
        Create storage roots and start the optional stale transfer cleaner.
        """
        logger.info("Upload gateway starting up...")
        settings.chunk_root.mkdir(parents=True, exist_ok=True)
        settings.upload_root.mkdir(parents=True, exist_ok=True)
        logger.info(
            f"Storage roots ready: chunks={settings.chunk_root} uploads={settings.upload_root} "
            f"cleanup_chunks_after_merge={settings.cleanup_chunks_after_merge} "
            f"strict_size_check={settings.strict_size_check}"
        )

        if settings.stale_transfer_ttl > 0:
            service: UploadService = app.state.upload_service
            app.state.cleaner = StaleTransferCleaner(
                chunk_root=settings.chunk_root,
                tracker=service.tracker,
                locks=service.merge_engine.locks,
                ttl_seconds=settings.stale_transfer_ttl,
                interval_seconds=settings.cleanup_interval,
            )
            await app.state.cleaner.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Upload gateway shutting down...")
        if app.state.cleaner:
            await app.state.cleaner.stop()

    @app.exception_handler(MissingParameterError)
    async def missing_parameter_handler(request: Request, exc: MissingParameterError):
        request_id = getattr(request.state, 'request_id', 'unknown')
        logger.warning(f"Missing parameter: {exc} [request_id={request_id}] path={request.url.path}")
        return _error_response(exc, status.HTTP_400_BAD_REQUEST, missing=exc.missing)

    @app.exception_handler(PathTraversalError)
    async def path_traversal_handler(request: Request, exc: PathTraversalError):
        request_id = getattr(request.state, 'request_id', 'unknown')
        client = request.client.host if request.client else 'unknown'
        logger.warning(
            f"SECURITY path traversal rejected: {exc} [request_id={request_id}] client={client} path={request.url.path}"
        )
        return _error_response(exc, status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(IncompleteTransferError)
    async def incomplete_transfer_handler(request: Request, exc: IncompleteTransferError):
        request_id = getattr(request.state, 'request_id', 'unknown')
        logger.warning(f"Incomplete transfer: {exc} [request_id={request_id}] path={request.url.path}")
        return _error_response(
            exc,
            status.HTTP_409_CONFLICT,
            missing_chunks=exc.missing,
            folder_path=exc.folder_path
        )

    @app.exception_handler(StorageIOError)
    async def storage_io_handler(request: Request, exc: StorageIOError):
        request_id = getattr(request.state, 'request_id', 'unknown')
        logger.error(f"Storage failure: {exc} [request_id={request_id}] path={request.url.path}")
        return _error_response(exc, status.HTTP_500_INTERNAL_SERVER_ERROR)

    @app.exception_handler(AssemblerError)
    async def assembler_error_handler(request: Request, exc: AssemblerError):
        request_id = getattr(request.state, 'request_id', 'unknown')
        status_code = STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
        logger.warning(
            f"{type(exc).__name__}: {exc} [request_id={request_id}] path={request.url.path}"
        )
        return _error_response(exc, status_code)

    @app.get("/")
    async def root(id: Optional[str] = None):
        """
        Health check endpoint.
        """
        return {"status": "running", "service": "upload-gateway", "id": id}

    app.include_router(upload_router)
    app.mount(
        STATIC_MOUNT_PATH,
        UploadStaticFiles(
            directory=str(settings.upload_root),
            hidden_root=settings.chunk_root,
            check_dir=False
        ),
        name="uploads"
    )

    return app


def main() -> None:
    """Run the gateway with uvicorn."""
    settings = AssemblerSettings.from_env()
    logger.info(f"Starting upload gateway on {settings.host}:{settings.port}")
    logger.info("Endpoints:")
    logger.info("  POST /upload/multiple  (multipart: file + chunk fields)")
    logger.info("  POST /upload/merge     (identifier/filename/totalChunks/relativePath)")
    logger.info(f"  GET  {STATIC_MOUNT_PATH}/<folder>/<file>")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()

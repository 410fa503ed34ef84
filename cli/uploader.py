"""HTTP client that uploads files to the gateway in chunks."""

import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import httpx

from cli.config import Config
from cli.utils import collect_upload_files, count_chunks, iter_file_chunks, make_identifier
from common.logging_config import get_logger

logger = get_logger(__name__)


class UploadError(Exception):
    """Raised when the gateway rejects a chunk or a merge."""

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


@dataclass
class UploadResult:
    """
    Outcome of uploading one file.
    """
    relative_path: str
    identifier: str
    size: int
    total_chunks: int
    file_path: Optional[str] = None
    url: Optional[str] = None


class UploaderClient:
    """HTTP client for the gateway with retry logic and error handling."""

    def __init__(self, config: Config, transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize uploader client.

        Args:
            config: Configuration instance
            transport: Optional httpx transport (used by tests)
        """
        self.config = config
        self.session = httpx.Client(
            base_url=config.get_base_url(),
            timeout=config.get_timeout(),
            transport=transport
        )
        self.request_id = None
        logger.info(f"Initialized UploaderClient [base_url={config.get_base_url()}]")

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> 'UploaderClient':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        max_retries: Optional[int] = None,
        **kwargs
    ) -> httpx.Response:
        """
        Make HTTP request with retry logic on 5xx errors and network failures.

        Args:
            method: HTTP method (GET, POST, ...)
            endpoint: API endpoint path
            max_retries: Max retry attempts (uses config default if None)
            **kwargs: Additional arguments to pass to httpx request

        Returns:
            HTTP response object

        Raises:
            ConnectionError: If max retries exceeded or connection fails
        """
        retry_config = self.config.get_retry_config()
        max_retries = max_retries if max_retries is not None else retry_config['max_retries']
        backoff = retry_config['retry_backoff_multiplier']

        last_exception = None

        self.request_id = str(uuid.uuid4())
        kwargs.setdefault('headers', {})['X-Request-ID'] = self.request_id

        for attempt in range(max_retries + 1):
            try:
                response = self.session.request(method, endpoint, **kwargs)

                logger.debug(
                    f"Response received: {method} {endpoint} status={response.status_code} [request_id={self.request_id}]"
                )

                if response.status_code >= 500 and attempt < max_retries:
                    delay = backoff ** attempt
                    logger.warning(
                        f"Server error (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{method} {endpoint} status={response.status_code}, retrying in {delay}s [request_id={self.request_id}]"
                    )
                    time.sleep(delay)
                    continue

                return response

            except (httpx.ConnectError, httpx.TimeoutException) as e:
                last_exception = e
                if attempt < max_retries:
                    delay = backoff ** attempt
                    logger.warning(
                        f"Network error (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{method} {endpoint} error={type(e).__name__}, retrying in {delay}s [request_id={self.request_id}]"
                    )
                    time.sleep(delay)
                    continue
                logger.error(
                    f"Network error (max retries exceeded): {method} {endpoint} error={e} [request_id={self.request_id}]"
                )

        if isinstance(last_exception, httpx.TimeoutException):
            raise ConnectionError("Request timed out. Server may be overloaded.")
        raise ConnectionError("Cannot connect to upload server. Is it running?")

    @staticmethod
    def _raise_for_error(response: httpx.Response) -> dict:
        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400 or body.get('code', 0) != 0:
            detail = body.get('detail') or response.text or 'Unknown error'
            code = body.get('error')
            if body.get('missingChunks'):
                detail = f"{detail} (missing chunks: {body['missingChunks']})"
            raise UploadError(detail, code=code, status_code=response.status_code)
        return body

    def upload_chunk(
        self,
        *,
        identifier: str,
        relative_path: str,
        filename: str,
        chunk_number: int,
        total_chunks: int,
        chunk_size: int,
        total_size: int,
        data: bytes
    ) -> dict:
        """
        Upload one chunk.

        Returns:
            Decoded response body (contains 'needMerge')

        Raises:
            UploadError: If the gateway rejects the chunk
        """
        response = self._request_with_retry(
            'POST',
            '/upload/multiple',
            data={
                'identifier': identifier,
                'relativePath': relative_path,
                'filename': filename,
                'chunkNumber': str(chunk_number),
                'totalChunks': str(total_chunks),
                'chunkSize': str(chunk_size),
                'currentChunkSize': str(len(data)),
                'totalSize': str(total_size),
            },
            files={'file': (filename, data, 'application/octet-stream')}
        )
        return self._raise_for_error(response)

    def merge(self, *, identifier: str, relative_path: str, filename: str, total_chunks: int, total_size: int) -> dict:
        """
        Ask the gateway to merge a completed transfer.

        Returns:
            The 'data' object of the merge response

        Raises:
            UploadError: If the merge fails (e.g., chunks missing)
        """
        response = self._request_with_retry(
            'POST',
            '/upload/merge',
            json={
                'identifier': identifier,
                'relativePath': relative_path,
                'filename': filename,
                'totalChunks': total_chunks,
                'totalSize': total_size,
            }
        )
        return self._raise_for_error(response)['data']

    def upload_file(self, path: Path, relative_path: str, chunk_size: Optional[int] = None) -> UploadResult:
        """
        Upload one local file in chunks and merge it.

        Args:
            path: Local file
            relative_path: Path (with folders) the file is stored under
            chunk_size: Bytes per chunk (config default if None)

        Returns:
            UploadResult with the merged file's server path and URL
        """
        chunk_size = chunk_size or self.config.get_chunk_size()
        size = path.stat().st_size
        total_chunks = count_chunks(size, chunk_size)
        identifier = make_identifier(size, relative_path)
        result = UploadResult(
            relative_path=relative_path,
            identifier=identifier,
            size=size,
            total_chunks=total_chunks,
        )

        need_merge = False
        for number, data in iter_file_chunks(path, chunk_size):
            body = self.upload_chunk(
                identifier=identifier,
                relative_path=relative_path,
                filename=path.name,
                chunk_number=number,
                total_chunks=total_chunks,
                chunk_size=chunk_size,
                total_size=size,
                data=data,
            )
            need_merge = need_merge or bool(body.get('needMerge'))
            logger.debug(f"Uploaded chunk {number}/{total_chunks} of {relative_path}")

        if not need_merge:
            # merge re-checks completeness server-side
            logger.warning(f"Server did not signal completion for {relative_path}; requesting merge")

        data = self.merge(
            identifier=identifier,
            relative_path=relative_path,
            filename=path.name,
            total_chunks=total_chunks,
            total_size=size,
        )
        result.file_path = data.get('filePath')
        result.url = data.get('fullUrl')
        logger.info(f"Uploaded {relative_path} ({size} bytes, {total_chunks} chunks) -> {result.file_path}")
        return result

    def upload_path(self, source: Path, chunk_size: Optional[int] = None, base_name: Optional[str] = None) -> List[UploadResult]:
        """
        Upload a file or every file below a folder, preserving the folder tree.

        Returns:
            One UploadResult per file, in upload order
        """
        return [
            self.upload_file(path, relative_path, chunk_size)
            for path, relative_path in collect_upload_files(source, base_name)
        ]

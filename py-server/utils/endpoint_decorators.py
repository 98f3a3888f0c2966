"""
Decorators for FastAPI endpoint error handling and resource management.

This module provides the decorator shared by every transform endpoint: upload
validation, storage of the uploads inside a request-owned artifact scope,
processing timeouts, and translation of failures into the toolkit's error
taxonomy.
"""

import json
import logging
import asyncio
from functools import wraps
from pathlib import Path
from typing import Callable, List, Optional

from fastapi import Request, UploadFile
from pydantic import ValidationError

from engine.artifacts import ArtifactScope
from engine.config import ServiceConfig
from utils.validation import (
    PdfToolError,
    PdfValidationError,
    ProcessingTimeoutError,
    validate_file_extension,
    validate_pdf_signature,
    validate_processing_environment,
)

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_BYTES = 1024 * 1024


def _collect_uploads(kwargs: dict) -> List[UploadFile]:
    uploads = kwargs.get('files')
    if uploads is None:
        single = kwargs.get('file')
        uploads = [single] if single is not None else []
    return [upload for upload in uploads if upload is not None]


async def store_upload(upload: UploadFile, scope: ArtifactScope, config: ServiceConfig, kind: str) -> str:
    """
    Stream one upload into the artifact directory.

    Returns:
        Path of the stored file, registered with `scope`

    Raises:
        PdfValidationError: Wrong extension, oversized file, or bad PDF signature
    """
    is_valid, error = validate_file_extension(upload.filename, kind)
    if not is_valid:
        raise PdfValidationError(error, code="UNSUPPORTED_FILE_TYPE", details={'filename': upload.filename})

    path = scope.new_path("upload", Path(upload.filename).suffix.lower())
    written = 0
    with open(path, 'wb') as f:
        while True:
            chunk = await upload.read(UPLOAD_CHUNK_BYTES)
            if not chunk:
                break
            written += len(chunk)
            if written > config.max_upload_bytes:
                raise PdfValidationError(
                    f"File '{upload.filename}' exceeds the {config.max_upload_mb} MB upload limit",
                    code="FILE_TOO_LARGE",
                    details={'filename': upload.filename, 'maxSizeMb': config.max_upload_mb},
                    status_code=413,
                )
            f.write(chunk)

    if kind == 'pdf':
        is_valid, error = validate_pdf_signature(path)
        if not is_valid:
            raise PdfValidationError(error, code="INVALID_PDF", details={'filename': upload.filename})

    logger.debug(f"Stored upload {upload.filename} ({written} bytes) as {Path(path).name}")
    return path


def handle_transform(input_kind: str = 'pdf') -> Callable:
    """
    Decorator factory for transform endpoints:
    - Upload type and size validation
    - Storage of uploads inside an ArtifactScope
    - Processing timeout management
    - Translation of errors into PdfToolError

    The decorated function must accept `request: Request` as a keyword argument
    and either `file: UploadFile` or `files: List[UploadFile]`. The decorator
    stores data in `request.state`:
    - `request.state.input_paths`: stored upload paths, in upload order
    - `request.state.input_names`: original filenames
    - `request.state.artifacts`: the ArtifactScope owning them
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            request: Optional[Request] = kwargs.get('request')
            if request is None:
                raise RuntimeError("Endpoint decorated with handle_transform must accept 'request: Request'")

            runtime = request.app.state.runtime
            config = runtime.config
            timeout_seconds = config.processing_timeout_seconds
            uploads = _collect_uploads(kwargs)
            names = [upload.filename for upload in uploads]

            runtime.ensure_artifact_dir()
            is_ready, env_error = validate_processing_environment(runtime.artifact_dir)
            if not is_ready:
                logger.error(f"Refusing request: {env_error}")
                raise PdfToolError(env_error, code="INSUFFICIENT_RESOURCES", status_code=507)

            with runtime.scope(owner=func.__name__) as scope:
                try:
                    request.state.input_paths = [
                        await store_upload(upload, scope, config, input_kind) for upload in uploads
                    ]
                    request.state.input_names = names
                    request.state.artifacts = scope

                    return await asyncio.wait_for(func(*args, **kwargs), timeout=timeout_seconds)

                except asyncio.TimeoutError:
                    logger.error(f"Processing timed out after {timeout_seconds}s for {names}")
                    raise ProcessingTimeoutError(
                        f"Processing timed out after {timeout_seconds} seconds",
                        details={'timeoutSeconds': timeout_seconds},
                    )
                except PdfValidationError as e:
                    logger.warning(f"Validation failed for {names}: [{e.code}] {e.message}")
                    raise
                except PdfToolError as e:
                    logger.error(f"Processing failed for {names}: [{e.code}] {e.message}")
                    raise
                except ValidationError as e:
                    logger.warning(f"Invalid parameters for {names}: {e}")
                    raise PdfValidationError(
                        "Invalid request parameters",
                        code="INVALID_PARAMETER",
                        details={'errors': e.errors(include_url=False, include_context=False, include_input=False)},
                    )
                except json.JSONDecodeError as e:
                    logger.warning(f"Malformed JSON parameter for {names}: {e}")
                    raise PdfValidationError(f"Malformed JSON parameter: {e.msg}", code="INVALID_PARAMETER")
                except Exception as e:
                    logger.error(f"Unexpected error processing {names}: {e}")
                    logger.exception("Full exception details:")
                    raise PdfToolError("Internal server error during processing")

        return wrapper
    return decorator


__all__ = ['handle_transform', 'store_upload']

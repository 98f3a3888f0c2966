"""
Upload Validation and Error Taxonomy
Error types shared by the pipeline and the HTTP layer, plus the checks run
against uploaded files before any transform touches them.
"""

from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Dict, Any
import logging

import psutil

logger = logging.getLogger(__name__)

# Validation constants
VALIDATION_CONSTANTS = {
    'PDF_SIGNATURE': b'%PDF',
    'MIN_FREE_DISK_MB': 100,
    'MIN_AVAILABLE_MEMORY_MB': 100,
}

ALLOWED_EXTENSIONS = {
    'pdf': {'.pdf'},
    'image': {'.jpg', '.jpeg', '.png'},
    'word': {'.docx'},
    'excel': {'.xlsx', '.xlsm'},
    'html': {'.html', '.htm'},
}


class ErrorCategory(str, Enum):
    """Top-level error taxonomy reported to callers"""
    VALIDATION = "VALIDATION_ERROR"
    PROCESSING = "PROCESSING_ERROR"
    INTERNAL = "INTERNAL_ERROR"


class PdfToolError(Exception):
    """Base exception for every failure surfaced by the toolkit"""
    category = ErrorCategory.INTERNAL
    default_code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON error body"""
        body = {
            'success': False,
            'error': self.code,
            'category': self.category.value,
            'message': self.message,
        }
        if self.details:
            body['details'] = self.details
        return body


class PdfValidationError(PdfToolError):
    """Bad or missing parameters, detected before a document is processed"""
    category = ErrorCategory.VALIDATION
    default_code = "VALIDATION_ERROR"
    status_code = 400


class MalformedRangeError(PdfValidationError):
    """A page-range token could not be parsed"""
    default_code = "MALFORMED_RANGE"

    def __init__(self, token: str, reason: str = "not a page number or range"):
        super().__init__(
            f"Malformed page range '{token}': {reason}",
            details={'token': token},
        )
        self.token = token


class PdfProcessingError(PdfToolError):
    """The underlying document library failed to parse or render an input"""
    category = ErrorCategory.PROCESSING
    default_code = "PROCESSING_ERROR"
    status_code = 400


class ProcessingTimeoutError(PdfToolError):
    """Processing exceeded the configured request timeout"""
    default_code = "PROCESSING_TIMEOUT"
    status_code = 408


def validate_pdf_signature(file_path: str) -> Tuple[bool, Optional[str]]:
    """
    Validate PDF file signature (magic bytes)

    Args:
        file_path: Path to the PDF file

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        with open(file_path, 'rb') as f:
            # The header may be preceded by junk bytes; readers accept it within the first KB
            header = f.read(1024)

        if len(header) < 4:
            return False, "File too small to be a valid PDF"

        if VALIDATION_CONSTANTS['PDF_SIGNATURE'] not in header:
            return False, f"Invalid PDF signature. Expected {VALIDATION_CONSTANTS['PDF_SIGNATURE']}, got {header[:4]}"

        return True, None

    except FileNotFoundError:
        return False, f"File not found: {file_path}"
    except PermissionError:
        return False, f"Permission denied accessing file: {file_path}"


def validate_file_extension(filename: Optional[str], kind: str) -> Tuple[bool, Optional[str]]:
    """
    Validate an uploaded filename against the extensions accepted for `kind`

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not filename:
        return False, "No filename provided"

    allowed = ALLOWED_EXTENSIONS.get(kind)
    if allowed is None:
        raise ValueError(f"Unknown upload kind: {kind}")

    ext = Path(filename).suffix.lower()
    if ext not in allowed:
        return False, f"Unsupported file type '{ext or filename}'. Allowed: {', '.join(sorted(allowed))}"

    return True, None


def validate_processing_environment(work_dir: str) -> Tuple[bool, Optional[str]]:
    """
    Validate that the system has sufficient resources for document processing

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        memory = psutil.virtual_memory()
        available_mb = memory.available / (1024 * 1024)

        if available_mb < VALIDATION_CONSTANTS['MIN_AVAILABLE_MEMORY_MB']:
            return False, f"Insufficient memory available: {available_mb:.1f}MB"

        disk_usage = psutil.disk_usage(work_dir)
        free_mb = disk_usage.free / (1024 * 1024)

        if free_mb < VALIDATION_CONSTANTS['MIN_FREE_DISK_MB']:
            return False, f"Insufficient disk space in {work_dir}: {free_mb:.1f}MB"

        logger.debug(f"Environment validation passed: {available_mb:.1f}MB memory, {free_mb:.1f}MB disk")
        return True, None

    except OSError as e:
        return False, f"Error checking system resources: {str(e)}"


__all__ = [
    'ErrorCategory',
    'PdfToolError',
    'PdfValidationError',
    'MalformedRangeError',
    'PdfProcessingError',
    'ProcessingTimeoutError',
    'validate_pdf_signature',
    'validate_file_extension',
    'validate_processing_environment',
    'VALIDATION_CONSTANTS',
    'ALLOWED_EXTENSIONS',
]

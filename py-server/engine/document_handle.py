"""
Document Handle - owned reference to a loaded PDF

A DocumentHandle wraps one pikepdf.Pdf for the duration of a single pipeline
invocation. It opens lazily on __enter__, exposes page geometry for the
transforms, and always releases the backing file on exit.

Usage:
    >>> from engine.document_handle import DocumentHandle
    >>>
    >>> with DocumentHandle('document.pdf') as handle:
    ...     print(f"Document has {handle.page_count} pages")
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pikepdf

from constants.pdf_keys import KEY_ROTATE
from utils.validation import PdfProcessingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageInfo:
    """Geometry of a single page"""
    index: int  # 0-based
    width: float
    height: float
    rotation: int  # one of 0, 90, 180, 270


class DocumentHandle:
    """
    Context manager over a pikepdf document.

    Example:
        >>> with DocumentHandle('in.pdf') as handle:
        ...     handle.page_info(0).rotation
        0
    """

    def __init__(self, file_path: Optional[str] = None, password: Optional[str] = None):
        """
        Args:
            file_path: PDF to open, or None for a new empty document
            password: Password for encrypted inputs

        Note: the file is not opened until entering the context manager.
        """
        self.file_path = file_path
        self._password = password
        self._pdf: Optional[pikepdf.Pdf] = None
        self._file_size_bytes: Optional[int] = None

    @classmethod
    def new(cls) -> 'DocumentHandle':
        """Create a handle around an empty, already-open document."""
        handle = cls()
        handle._pdf = pikepdf.Pdf.new()
        return handle

    def __enter__(self) -> 'DocumentHandle':
        if self._pdf is None:
            self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        # Don't suppress exceptions
        return False

    def open(self) -> None:
        """
        Open the backing file.

        Raises:
            PdfProcessingError: If the document is encrypted and the password is
                wrong, or the file cannot be parsed
        """
        if self.file_path is None:
            raise RuntimeError("No file path to open")

        name = Path(self.file_path).name
        try:
            if self._password is not None:
                self._pdf = pikepdf.open(self.file_path, password=self._password)
            else:
                self._pdf = pikepdf.open(self.file_path)
        except pikepdf.PasswordError:
            raise PdfProcessingError(
                "Incorrect password or the PDF is encrypted",
                code="INVALID_PASSWORD",
                details={'filename': name},
            )
        except pikepdf.PdfError as e:
            logger.error(f"Failed to open PDF {name}: {e}")
            raise PdfProcessingError(
                f"Failed to open PDF '{name}': {e}",
                code="INVALID_PDF",
                details={'filename': name},
            )

        self._file_size_bytes = os.path.getsize(self.file_path)
        logger.debug(f"Opened {name}: {len(self._pdf.pages)} pages, {self._file_size_bytes} bytes")

    def close(self) -> None:
        """Release the document. Safe to call more than once."""
        if self._pdf is None:
            return
        try:
            self._pdf.close()
        except Exception as e:
            logger.warning(f"Error closing pikepdf document: {e}")
        finally:
            self._pdf = None

    # Public API - Document Information

    @property
    def is_open(self) -> bool:
        return self._pdf is not None

    @property
    def pdf(self) -> pikepdf.Pdf:
        """
        Underlying pikepdf document.

        Raises:
            RuntimeError: If the handle is not open
        """
        if self._pdf is None:
            raise RuntimeError("Document not opened - use within context manager")
        return self._pdf

    @property
    def pages(self):
        return self.pdf.pages

    @property
    def page_count(self) -> int:
        return len(self.pdf.pages)

    @property
    def file_size_bytes(self) -> Optional[int]:
        """Size of the source file, None for documents built in memory"""
        return self._file_size_bytes

    def page_info(self, page_index: int) -> PageInfo:
        """
        Geometry for one page.

        Raises:
            IndexError: If page index out of bounds
        """
        if page_index < 0 or page_index >= self.page_count:
            raise IndexError(f"Page index {page_index} out of bounds (0-{self.page_count - 1})")

        page = self.pdf.pages[page_index]
        x0, y0, x1, y1 = (float(v) for v in page.mediabox)
        rotation = int(page.obj.get(KEY_ROTATE, 0)) % 360
        return PageInfo(index=page_index, width=x1 - x0, height=y1 - y0, rotation=rotation)

    def save(self, output_path: str, **save_options) -> int:
        """
        Write the document to `output_path`.

        Returns:
            Size of the written file in bytes
        """
        self.pdf.save(output_path, **save_options)
        return os.path.getsize(output_path)

    def __repr__(self) -> str:
        source = Path(self.file_path).name if self.file_path else "<memory>"
        status = f"{self.page_count} pages" if self.is_open else "closed"
        return f"DocumentHandle({source}, {status})"


__all__ = ['DocumentHandle', 'PageInfo']

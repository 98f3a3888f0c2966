"""
Pydantic models for the PDF toolkit API
Transform descriptors (one tagged variant per operation) and response bodies
"""

import re
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from utils.page_ranges import PageSelector, parse_expression, resolve
from utils.pdf_drawing import TEXT_ENCODING, is_drawable
from utils.validation import PdfValidationError

_LANGUAGE_RE = re.compile(r"^[a-z_]+(\+[a-z_]+)*$")


class Position(str, Enum):
    """Overlay anchor on a page"""
    TOP_LEFT = "top-left"
    TOP_CENTER = "top-center"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_CENTER = "bottom-center"
    BOTTOM_RIGHT = "bottom-right"
    CENTER = "center"


class SplitMode(str, Enum):
    """How a document is split"""
    PAGES = "pages"
    RANGES = "ranges"


class SplitRange(BaseModel):
    """1-based inclusive page range for split-by-ranges"""
    start: int
    end: int


class RedactionArea(BaseModel):
    """Area to black out, measured from the top-left corner of the page"""
    page: Optional[Union[int, Literal["all"]]] = Field(None, description="1-based page number; omitted or 'all' targets every page")
    x: float = 0
    y: float = 0
    width: float = 100
    height: float = 20

    def applies_to(self, page_index: int) -> bool:
        return self.page is None or self.page == "all" or self.page == page_index + 1


# Base descriptor
class TransformDescriptor(BaseModel):
    """
    Typed description of one requested operation.

    Subclasses declare how many inputs they accept and which upload kind they
    expect; validate_parameters() rejects bad combinations before any
    document is opened.
    """
    model_config = ConfigDict(extra="forbid")

    operation: str

    min_inputs: ClassVar[int] = 1
    max_inputs: ClassVar[Optional[int]] = 1
    input_kind: ClassVar[str] = "pdf"

    def validate_parameters(self) -> None:
        """Raise PdfValidationError if the parameters cannot produce a result."""

    @property
    def open_password(self) -> Optional[str]:
        """Password used to open the inputs, if any"""
        return None


def _require_font_size(font_size: float) -> None:
    if font_size <= 0:
        raise PdfValidationError(f"fontSize must be positive, got {font_size}", code="INVALID_FONT_SIZE")


def _require_drawable(text: str, field: str) -> None:
    if not is_drawable(text):
        raise PdfValidationError(
            f"{field} contains characters the standard PDF fonts cannot draw",
            code="INVALID_PARAMETER",
            details={'field': field, 'encoding': TEXT_ENCODING},
        )


# Organize
class MergeDescriptor(TransformDescriptor):
    operation: Literal["merge"] = "merge"
    min_inputs: ClassVar[int] = 2
    max_inputs: ClassVar[Optional[int]] = None


class SplitDescriptor(TransformDescriptor):
    operation: Literal["split"] = "split"
    mode: SplitMode = SplitMode.PAGES
    ranges: List[SplitRange] = Field(default_factory=list)

    def validate_parameters(self) -> None:
        if self.mode != SplitMode.RANGES:
            return
        if not self.ranges:
            raise PdfValidationError("Split by ranges requires at least one range", code="INVALID_SPLIT_RANGE")
        for split_range in self.ranges:
            if split_range.start < 1 or split_range.end < split_range.start:
                raise PdfValidationError(
                    f"Invalid range {split_range.start}-{split_range.end}: pages start at 1 and end must not precede start",
                    code="INVALID_SPLIT_RANGE",
                    details={'start': split_range.start, 'end': split_range.end},
                )


class RemovePagesDescriptor(TransformDescriptor):
    operation: Literal["remove_pages"] = "remove_pages"
    pages: str

    def validate_parameters(self) -> None:
        parse_expression(self.pages)

    def selector(self, total_pages: int) -> PageSelector:
        return resolve(parse_expression(self.pages), total_pages)


class ExtractPagesDescriptor(TransformDescriptor):
    operation: Literal["extract_pages"] = "extract_pages"
    pages: str

    def validate_parameters(self) -> None:
        parse_expression(self.pages)

    def selector(self, total_pages: int) -> PageSelector:
        return resolve(parse_expression(self.pages), total_pages)


# Edit
class RotateDescriptor(TransformDescriptor):
    operation: Literal["rotate"] = "rotate"
    angle: int = 90
    pages: str = "all"

    @property
    def targets_all_pages(self) -> bool:
        return self.pages.strip().lower() == "all"

    def validate_parameters(self) -> None:
        if self.angle % 90 != 0:
            raise PdfValidationError(
                f"Rotation must be a multiple of 90 degrees, got {self.angle}",
                code="INVALID_ANGLE",
                details={'angle': self.angle},
            )
        if not self.targets_all_pages:
            parse_expression(self.pages)

    def selector(self, total_pages: int) -> PageSelector:
        if self.targets_all_pages:
            return PageSelector.all_pages(total_pages)
        return resolve(parse_expression(self.pages), total_pages)


class WatermarkDescriptor(TransformDescriptor):
    operation: Literal["watermark"] = "watermark"
    text: str = "WATERMARK"
    position: Position = Position.CENTER
    opacity: float = 0.3
    font_size: float = 50
    color: str = "#999999"

    def validate_parameters(self) -> None:
        if not self.text.strip():
            raise PdfValidationError("Watermark text must not be empty", code="INVALID_PARAMETER")
        _require_drawable(self.text, "text")
        if not 0.0 <= self.opacity <= 1.0:
            raise PdfValidationError(f"opacity must be between 0 and 1, got {self.opacity}", code="INVALID_OPACITY")
        _require_font_size(self.font_size)


class PageNumbersDescriptor(TransformDescriptor):
    operation: Literal["page_numbers"] = "page_numbers"
    position: Position = Position.BOTTOM_CENTER
    font_size: float = 12
    color: str = "#000000"
    start_page: int = 1
    format: str = "{page}"

    def validate_parameters(self) -> None:
        _require_font_size(self.font_size)
        if self.start_page < 1:
            raise PdfValidationError(f"startPage must be at least 1, got {self.start_page}", code="INVALID_PARAMETER")
        if not self.format.strip():
            raise PdfValidationError("Page number format must not be empty", code="INVALID_PARAMETER")
        _require_drawable(self.format, "format")

    def render_label(self, page_index: int, total_pages: int) -> str:
        """Substitute {page} and {total} for the 0-based `page_index`"""
        return (
            self.format
            .replace("{page}", str(page_index + self.start_page))
            .replace("{total}", str(total_pages))
        )


class CompressDescriptor(TransformDescriptor):
    operation: Literal["compress"] = "compress"


# Security
class ProtectDescriptor(TransformDescriptor):
    operation: Literal["protect"] = "protect"
    password: str
    owner_password: Optional[str] = None

    def validate_parameters(self) -> None:
        if len(self.password) < 4:
            raise PdfValidationError("Password must be at least 4 characters long", code="PASSWORD_TOO_SHORT")


class UnlockDescriptor(TransformDescriptor):
    operation: Literal["unlock"] = "unlock"
    password: str

    def validate_parameters(self) -> None:
        if not self.password:
            raise PdfValidationError("Password is required to unlock PDF", code="PASSWORD_REQUIRED")

    @property
    def open_password(self) -> Optional[str]:
        return self.password


class SignDescriptor(TransformDescriptor):
    """Visible signature block stamped on the first page"""
    operation: Literal["sign"] = "sign"
    signature_name: str = "Digital Signature"
    reason: str = "Document approval"
    location: str = "Digital"
    contact_info: str = ""

    def validate_parameters(self) -> None:
        if not self.signature_name.strip():
            raise PdfValidationError("Signature name must not be empty", code="INVALID_PARAMETER")
        for field in ("signature_name", "reason"):
            _require_drawable(getattr(self, field), field)


class RedactDescriptor(TransformDescriptor):
    operation: Literal["redact"] = "redact"
    areas: List[RedactionArea]
    color: str = "#000000"

    def validate_parameters(self) -> None:
        if not self.areas:
            raise PdfValidationError("Please specify areas to redact", code="EMPTY_SELECTION")
        for area in self.areas:
            if area.width <= 0 or area.height <= 0:
                raise PdfValidationError(
                    "Redaction areas must have a positive width and height",
                    code="INVALID_PARAMETER",
                    details=area.model_dump(),
                )


class CompareDescriptor(TransformDescriptor):
    operation: Literal["compare"] = "compare"
    min_inputs: ClassVar[int] = 2
    max_inputs: ClassVar[Optional[int]] = 2


# Convert
class ImageToPdfDescriptor(TransformDescriptor):
    operation: Literal["image_to_pdf"] = "image_to_pdf"
    max_inputs: ClassVar[Optional[int]] = None
    input_kind: ClassVar[str] = "image"


class PdfToJpgDescriptor(TransformDescriptor):
    operation: Literal["pdf_to_jpg"] = "pdf_to_jpg"
    dpi: int = 150
    quality: int = 90

    def validate_parameters(self) -> None:
        if not 36 <= self.dpi <= 600:
            raise PdfValidationError(f"dpi must be between 36 and 600, got {self.dpi}", code="INVALID_PARAMETER")
        if not 1 <= self.quality <= 95:
            raise PdfValidationError(f"quality must be between 1 and 95, got {self.quality}", code="INVALID_PARAMETER")


class ImageToTextDescriptor(TransformDescriptor):
    operation: Literal["image_to_text"] = "image_to_text"
    language: str = "eng"
    input_kind: ClassVar[str] = "image"

    def validate_parameters(self) -> None:
        if not _LANGUAGE_RE.match(self.language):
            raise PdfValidationError(f"Invalid OCR language '{self.language}'", code="INVALID_PARAMETER")


class PdfToWordDescriptor(TransformDescriptor):
    operation: Literal["pdf_to_word"] = "pdf_to_word"


class WordToPdfDescriptor(TransformDescriptor):
    operation: Literal["word_to_pdf"] = "word_to_pdf"
    input_kind: ClassVar[str] = "word"


class ExcelToPdfDescriptor(TransformDescriptor):
    operation: Literal["excel_to_pdf"] = "excel_to_pdf"
    input_kind: ClassVar[str] = "excel"


class HtmlToPdfDescriptor(TransformDescriptor):
    operation: Literal["html_to_pdf"] = "html_to_pdf"
    input_kind: ClassVar[str] = "html"


AnyDescriptor = Annotated[
    Union[
        MergeDescriptor, SplitDescriptor, RemovePagesDescriptor, ExtractPagesDescriptor,
        RotateDescriptor, WatermarkDescriptor, PageNumbersDescriptor, CompressDescriptor,
        ProtectDescriptor, UnlockDescriptor, SignDescriptor, RedactDescriptor, CompareDescriptor,
        ImageToPdfDescriptor, PdfToJpgDescriptor, ImageToTextDescriptor, PdfToWordDescriptor,
        WordToPdfDescriptor, ExcelToPdfDescriptor, HtmlToPdfDescriptor,
    ],
    Field(discriminator="operation"),
]

_descriptor_adapter = TypeAdapter(AnyDescriptor)


def parse_descriptor(data: Dict[str, Any]) -> TransformDescriptor:
    """Build the descriptor variant selected by data['operation']"""
    return _descriptor_adapter.validate_python(data)


# Response models
class OutputFile(BaseModel):
    """One generated artifact"""
    model_config = ConfigDict(extra="allow")

    filename: str
    downloadUrl: str
    size: Optional[int] = None
    pageCount: Optional[int] = None


class TransformResponse(BaseModel):
    """Success body; operation-specific metadata is carried as extra fields"""
    model_config = ConfigDict(extra="allow")

    success: bool = True
    message: str
    downloadUrl: Optional[str] = None
    filename: Optional[str] = None
    files: Optional[List[OutputFile]] = None

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ErrorResponse(BaseModel):
    """Error response model"""
    success: bool = False
    error: str
    category: str
    message: str
    details: Optional[Dict[str, Any]] = None

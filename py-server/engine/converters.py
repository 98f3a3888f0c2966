"""
Format converters

Path-in/path-out conversions between PDF and images, text, Word, Excel and
HTML. Each converter allocates its outputs from the request's ArtifactScope
so they are cleaned up exactly like pipeline outputs.
"""

import logging
import zipfile
from pathlib import Path
from typing import List

import docx
import openpyxl
import pdfplumber
import pytesseract
from bs4 import BeautifulSoup
from docx.opc.exceptions import PackageNotFoundError
from openpyxl.utils.exceptions import InvalidFileException
from PIL import Image, ImageOps, UnidentifiedImageError

from engine.artifacts import ArtifactScope
from engine.base_transform import FileConverter, OutputDocument, TransformResult
from engine.document_handle import DocumentHandle
from models.transform_types import (
    ExcelToPdfDescriptor,
    HtmlToPdfDescriptor,
    ImageToPdfDescriptor,
    ImageToTextDescriptor,
    PdfToJpgDescriptor,
    PdfToWordDescriptor,
    WordToPdfDescriptor,
)
from utils.pdf_drawing import text_to_pdf
from utils.validation import PdfProcessingError

logger = logging.getLogger(__name__)

OCR_TARGET_HEIGHT = 2000
TEXT_PREVIEW_CHARS = 500


def _open_image(path: str) -> Image.Image:
    try:
        image = Image.open(path)
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise PdfProcessingError(
            f"Could not read image '{Path(path).name}': {e}",
            code="INVALID_IMAGE",
        )
    return image


def _check_pdf(path: str) -> int:
    """Open with pikepdf first so broken or encrypted inputs get a clean error"""
    with DocumentHandle(path) as handle:
        return handle.page_count


def _write_text_pdf(paragraphs: List[str], artifacts: ArtifactScope, prefix: str) -> OutputDocument:
    pdf = text_to_pdf(paragraphs)
    try:
        output_path = artifacts.new_path(prefix, ".pdf")
        pdf.save(output_path)
        page_count = len(pdf.pages)
    finally:
        pdf.close()
    return OutputDocument(name=prefix, path=output_path, page_count=page_count)


class ImageToPdfConverter(FileConverter):
    """One page per image, page size taken from the image at 72 dpi"""

    operation = "image_to_pdf"

    def convert(self, input_paths: List[str], descriptor: ImageToPdfDescriptor, artifacts: ArtifactScope) -> TransformResult:
        images = [_open_image(path).convert("RGB") for path in input_paths]
        output_path = artifacts.new_path("converted", ".pdf")
        try:
            first, rest = images[0], images[1:]
            first.save(output_path, "PDF", save_all=True, append_images=rest, resolution=72.0)
        finally:
            for image in images:
                image.close()

        logger.info(f"Converted {len(images)} image(s) to PDF")
        return TransformResult(
            message="Image converted to PDF successfully",
            outputs=[OutputDocument(name="converted", path=output_path, page_count=len(images))],
            metadata={'pageCount': len(images)},
        )


class PdfToJpgConverter(FileConverter):
    """Rasterise every page to a JPEG"""

    operation = "pdf_to_jpg"
    lists_outputs = True

    def convert(self, input_paths: List[str], descriptor: PdfToJpgDescriptor, artifacts: ArtifactScope) -> TransformResult:
        source = input_paths[0]
        _check_pdf(source)
        outputs: List[OutputDocument] = []

        with pdfplumber.open(source) as pdf:
            for page in pdf.pages:
                page_number = page.page_number
                image = page.to_image(resolution=descriptor.dpi).original.convert("RGB")
                output_path = artifacts.new_path(f"page-{page_number}", ".jpg")
                image.save(output_path, "JPEG", quality=descriptor.quality)
                outputs.append(OutputDocument(
                    name=f"page-{page_number}",
                    path=output_path,
                    suffix=".jpg",
                    extra={'pageNumber': page_number},
                ))

        logger.info(f"Rendered {len(outputs)} page(s) at {descriptor.dpi} dpi")
        return TransformResult(
            message=f"PDF converted to {len(outputs)} JPG image(s)",
            outputs=outputs,
            metadata={'pageCount': len(outputs)},
        )


class ImageToTextConverter(FileConverter):
    """OCR with Tesseract; writes the full text and returns a preview"""

    operation = "image_to_text"

    @staticmethod
    def _prepare(image: Image.Image) -> Image.Image:
        gray = ImageOps.grayscale(image)
        if gray.height == OCR_TARGET_HEIGHT:
            return gray
        width = max(1, round(gray.width * OCR_TARGET_HEIGHT / gray.height))
        return gray.resize((width, OCR_TARGET_HEIGHT), Image.Resampling.LANCZOS)

    @staticmethod
    def _mean_confidence(data: dict) -> float:
        scores = [float(c) for c in data.get('conf', []) if float(c) >= 0]
        return round(sum(scores) / len(scores), 2) if scores else 0.0

    def convert(self, input_paths: List[str], descriptor: ImageToTextDescriptor, artifacts: ArtifactScope) -> TransformResult:
        with _open_image(input_paths[0]) as image:
            prepared = self._prepare(image)

        try:
            text = pytesseract.image_to_string(prepared, lang=descriptor.language)
            data = pytesseract.image_to_data(prepared, lang=descriptor.language, output_type=pytesseract.Output.DICT)
        except pytesseract.TesseractNotFoundError:
            raise PdfProcessingError(
                "Tesseract OCR is not installed on the server",
                code="OCR_UNAVAILABLE",
                status_code=500,
            )
        except pytesseract.TesseractError as e:
            raise PdfProcessingError(
                f"OCR failed for language '{descriptor.language}': {e.message}",
                code="OCR_FAILED",
                status_code=422,
            )
        finally:
            prepared.close()

        text = text.strip()
        confidence = self._mean_confidence(data)
        output_path = artifacts.new_path("extracted-text", ".txt")
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(text)

        logger.info(f"OCR extracted {len(text)} characters, confidence {confidence}")
        return TransformResult(
            message="Text extracted successfully",
            outputs=[OutputDocument(name="extracted-text", path=output_path, suffix=".txt")],
            metadata={
                'extractedText': text[:TEXT_PREVIEW_CHARS],
                'textLength': len(text),
                'confidence': confidence,
            },
        )


class PdfToWordConverter(FileConverter):
    """Text of each page as paragraphs, with a page break between pages"""

    operation = "pdf_to_word"

    def convert(self, input_paths: List[str], descriptor: PdfToWordDescriptor, artifacts: ArtifactScope) -> TransformResult:
        source = input_paths[0]
        page_count = _check_pdf(source)
        document = docx.Document()

        with pdfplumber.open(source) as pdf:
            for index, page in enumerate(pdf.pages):
                if index:
                    document.add_page_break()
                text = page.extract_text() or ""
                for line in text.splitlines():
                    if line.strip():
                        document.add_paragraph(line.strip())

        output_path = artifacts.new_path("converted", ".docx")
        document.save(output_path)

        logger.info(f"Converted {page_count}-page PDF to Word")
        return TransformResult(
            message="PDF converted to Word successfully",
            outputs=[OutputDocument(name="converted", path=output_path, suffix=".docx")],
            metadata={'pageCount': page_count},
        )


class WordToPdfConverter(FileConverter):
    operation = "word_to_pdf"

    def convert(self, input_paths: List[str], descriptor: WordToPdfDescriptor, artifacts: ArtifactScope) -> TransformResult:
        try:
            document = docx.Document(input_paths[0])
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError) as e:
            raise PdfProcessingError(f"Could not read Word document: {e}", code="INVALID_DOCUMENT")

        paragraphs = [p.text for p in document.paragraphs]
        for table in document.tables:
            for row in table.rows:
                paragraphs.append("\t".join(cell.text for cell in row.cells))

        output = _write_text_pdf(paragraphs, artifacts, "converted")
        logger.info(f"Converted Word document to {output.page_count}-page PDF")
        return TransformResult(
            message="Word document converted to PDF successfully",
            outputs=[output],
            metadata={'pageCount': output.page_count},
        )


class ExcelToPdfConverter(FileConverter):
    """Each sheet as a titled block of tab-separated rows"""

    operation = "excel_to_pdf"

    def convert(self, input_paths: List[str], descriptor: ExcelToPdfDescriptor, artifacts: ArtifactScope) -> TransformResult:
        try:
            workbook = openpyxl.load_workbook(input_paths[0], read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError) as e:
            raise PdfProcessingError(f"Could not read spreadsheet: {e}", code="INVALID_DOCUMENT")

        paragraphs: List[str] = []
        try:
            for sheet in workbook.worksheets:
                rows = [
                    "\t".join("" if value is None else str(value) for value in row)
                    for row in sheet.iter_rows(values_only=True)
                ]
                paragraphs.append("\n".join([f"Sheet: {sheet.title}", *rows]))
            sheet_count = len(workbook.worksheets)
        finally:
            workbook.close()

        output = _write_text_pdf(paragraphs, artifacts, "converted")
        logger.info(f"Converted {sheet_count} sheet(s) to {output.page_count}-page PDF")
        return TransformResult(
            message="Excel file converted to PDF successfully",
            outputs=[output],
            metadata={'pageCount': output.page_count, 'sheetCount': sheet_count},
        )


class HtmlToPdfConverter(FileConverter):
    """Visible text of the page; scripts and styles are dropped"""

    operation = "html_to_pdf"

    def convert(self, input_paths: List[str], descriptor: HtmlToPdfDescriptor, artifacts: ArtifactScope) -> TransformResult:
        with open(input_paths[0], 'r', encoding='utf-8', errors='replace') as f:
            soup = BeautifulSoup(f.read(), "html.parser")

        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()

        paragraphs: List[str] = []
        if soup.title and soup.title.string:
            paragraphs.append(soup.title.string.strip())
        body = soup.body or soup
        paragraphs.extend(
            line.strip()
            for line in body.get_text("\n").splitlines()
            if line.strip()
        )

        output = _write_text_pdf(paragraphs, artifacts, "converted")
        logger.info(f"Converted HTML to {output.page_count}-page PDF")
        return TransformResult(
            message="HTML converted to PDF successfully",
            outputs=[output],
            metadata={'pageCount': output.page_count},
        )


__all__ = [
    'ImageToPdfConverter',
    'PdfToJpgConverter',
    'ImageToTextConverter',
    'PdfToWordConverter',
    'WordToPdfConverter',
    'ExcelToPdfConverter',
    'HtmlToPdfConverter',
]

"""
Pytest configuration and fixtures for the test suite.

Documents are built in memory with pikepdf. Pages are identified by width:
a document built from widths [101, 102, 103] has pages 1..3 with those widths.
"""

import os
import uuid
from typing import List

import pikepdf
import pytest

from engine.config import ServiceConfig
from engine.runtime import RuntimeContext

PAGE_HEIGHT = 792


def write_pdf(path: str, widths: List[int], height: int = PAGE_HEIGHT) -> str:
    pdf = pikepdf.Pdf.new()
    for width in widths:
        pdf.add_blank_page(page_size=(width, height))
    pdf.save(path)
    pdf.close()
    return path


def widths_of(pdf: pikepdf.Pdf) -> List[int]:
    return [round(float(p.mediabox[2]) - float(p.mediabox[0])) for p in pdf.pages]


@pytest.fixture
def config(tmp_path) -> ServiceConfig:
    return ServiceConfig(upload_dir=str(tmp_path / "uploads"))


@pytest.fixture
def runtime(config) -> RuntimeContext:
    context = RuntimeContext(config)
    context.ensure_artifact_dir()
    return context


@pytest.fixture
def make_pdf(runtime):
    """Factory writing a PDF into the artifact directory, as an upload would be"""
    def _make(widths: List[int], height: int = PAGE_HEIGHT) -> str:
        path = os.path.join(runtime.artifact_dir, f"upload-{uuid.uuid4().hex[:8]}.pdf")
        return write_pdf(path, widths, height)
    return _make


@pytest.fixture
def page_widths():
    """Widths of every page of a saved PDF, in order"""
    def _widths(path: str) -> List[int]:
        with pikepdf.open(path) as pdf:
            return widths_of(pdf)
    return _widths


@pytest.fixture
def shown_text():
    """Strings drawn with Tj across all pages of a saved PDF"""
    def _text(path: str) -> List[str]:
        shown = []
        with pikepdf.open(path) as pdf:
            for page in pdf.pages:
                for operands, operator in pikepdf.parse_content_stream(page):
                    if str(operator) == "Tj":
                        shown.append(bytes(operands[0]).decode("cp1252"))
        return shown
    return _text


@pytest.fixture
def artifact_files(runtime):
    """Names currently present in the artifact directory"""
    def _files() -> List[str]:
        return sorted(os.listdir(runtime.artifact_dir))
    return _files

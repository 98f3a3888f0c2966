"""PDF Toolkit Python Server"""

import sys
import json
import logging
import asyncio
from contextlib import asynccontextmanager
from typing import Optional, List

import uvicorn
from fastapi import APIRouter, FastAPI, UploadFile, File, Form, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from rich.console import Console
from rich.logging import RichHandler

from engine.config import ServiceConfig
from engine.pipeline import run
from engine.runtime import RuntimeContext
from models.transform_types import (
    CompareDescriptor,
    CompressDescriptor,
    ErrorResponse,
    ExcelToPdfDescriptor,
    ExtractPagesDescriptor,
    HtmlToPdfDescriptor,
    ImageToPdfDescriptor,
    ImageToTextDescriptor,
    MergeDescriptor,
    PageNumbersDescriptor,
    PdfToJpgDescriptor,
    PdfToWordDescriptor,
    ProtectDescriptor,
    RedactDescriptor,
    RemovePagesDescriptor,
    RotateDescriptor,
    SignDescriptor,
    SplitDescriptor,
    TransformDescriptor,
    UnlockDescriptor,
    WatermarkDescriptor,
    WordToPdfDescriptor,
)
from utils.endpoint_decorators import handle_transform
from utils.validation import PdfToolError, PdfValidationError

API_VERSION = "1.0.0"
ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    408: {"model": ErrorResponse},
    413: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}

logger = logging.getLogger("rich")

router = APIRouter(prefix="/api", responses=ERROR_RESPONSES)


async def _run_transform(request: Request, descriptor: TransformDescriptor) -> dict:
    """Run the pipeline in a worker thread over the uploads stored by handle_transform"""
    runtime = request.app.state.runtime
    response = await asyncio.to_thread(
        run,
        request.state.input_paths,
        descriptor,
        runtime,
        None,
        request.state.artifacts,
    )
    logger.info(f"{descriptor.operation} complete for {request.state.input_names}")
    return response.to_json()


@router.get("/health")
async def health_check(request: Request):
    """Health check with dependency verification"""
    import PIL
    import pdfplumber
    import pikepdf
    import pytesseract

    try:
        tesseract = str(pytesseract.get_tesseract_version())
    except pytesseract.TesseractNotFoundError:
        tesseract = None

    runtime = request.app.state.runtime
    return {
        "status": "healthy",
        "version": API_VERSION,
        "reaperRunning": runtime.reaper.is_running,
        "dependencies": {
            "pikepdf": pikepdf.__version__,
            "pdfplumber": pdfplumber.__version__,
            "PIL": PIL.__version__,
            "tesseract": tesseract,
        },
    }


# --- Organize ---

@router.post("/organize/merge")
@handle_transform('pdf')
async def merge_pdfs(*, request: Request, files: List[UploadFile] = File(...)):
    """Merge 2 or more PDFs in upload order."""
    return await _run_transform(request, MergeDescriptor())


@router.post("/organize/split")
@handle_transform('pdf')
async def split_pdf(
    *,
    request: Request,
    file: UploadFile = File(...),
    split_type: str = Form("pages", alias="splitType"),
    ranges: Optional[str] = Form(None, description='JSON list of {"start": n, "end": m}'),
):
    """
    Split a PDF.

    - `splitType=pages`: one file per page
    - `splitType=ranges`: one file per entry of `ranges`, e.g. `[{"start": 1, "end": 3}]`
    """
    parsed_ranges = json.loads(ranges) if ranges else []
    return await _run_transform(request, SplitDescriptor(mode=split_type, ranges=parsed_ranges))


@router.post("/organize/remove-pages")
@handle_transform('pdf')
async def remove_pages(
    *,
    request: Request,
    file: UploadFile = File(...),
    pages_to_remove: str = Form(..., alias="pagesToRemove", description='e.g. "2,4-6"'),
):
    return await _run_transform(request, RemovePagesDescriptor(pages=pages_to_remove))


@router.post("/organize/extract-pages")
@handle_transform('pdf')
async def extract_pages(
    *,
    request: Request,
    file: UploadFile = File(...),
    pages_to_extract: str = Form(..., alias="pagesToExtract", description='e.g. "1,3,5-8"'),
):
    return await _run_transform(request, ExtractPagesDescriptor(pages=pages_to_extract))


# --- Edit ---

@router.post("/edit/rotate")
@handle_transform('pdf')
async def rotate_pdf(
    *,
    request: Request,
    file: UploadFile = File(...),
    rotation: int = Form(90, description="Multiple of 90; negative values rotate counter-clockwise"),
    pages: str = Form("all", description='"all" or a page range expression'),
):
    return await _run_transform(request, RotateDescriptor(angle=rotation, pages=pages))


@router.post("/edit/watermark")
@handle_transform('pdf')
async def add_watermark(
    *,
    request: Request,
    file: UploadFile = File(...),
    text: str = Form("WATERMARK"),
    opacity: float = Form(0.3),
    font_size: float = Form(50, alias="fontSize"),
    color: str = Form("#999999"),
    position: str = Form("center"),
):
    descriptor = WatermarkDescriptor(
        text=text,
        opacity=opacity,
        font_size=font_size,
        color=color,
        position=position,
    )
    return await _run_transform(request, descriptor)


@router.post("/edit/page-numbers")
@handle_transform('pdf')
async def add_page_numbers(
    *,
    request: Request,
    file: UploadFile = File(...),
    position: str = Form("bottom-center"),
    font_size: float = Form(12, alias="fontSize"),
    color: str = Form("#000000"),
    start_page: int = Form(1, alias="startPage"),
    label_format: str = Form("{page}", alias="format", description="Supports {page} and {total}"),
):
    descriptor = PageNumbersDescriptor(
        position=position,
        font_size=font_size,
        color=color,
        start_page=start_page,
        format=label_format,
    )
    return await _run_transform(request, descriptor)


@router.post("/edit/compress")
@handle_transform('pdf')
async def compress_pdf(*, request: Request, file: UploadFile = File(...)):
    return await _run_transform(request, CompressDescriptor())


# --- Security ---

@router.post("/security/protect")
@handle_transform('pdf')
async def protect_pdf(
    *,
    request: Request,
    file: UploadFile = File(...),
    password: str = Form(...),
    owner_password: Optional[str] = Form(None, alias="ownerPassword"),
):
    descriptor = ProtectDescriptor(password=password, owner_password=owner_password or None)
    return await _run_transform(request, descriptor)


@router.post("/security/unlock")
@handle_transform('pdf')
async def unlock_pdf(*, request: Request, file: UploadFile = File(...), password: str = Form(...)):
    return await _run_transform(request, UnlockDescriptor(password=password))


@router.post("/security/redact")
@handle_transform('pdf')
async def redact_pdf(
    *,
    request: Request,
    file: UploadFile = File(...),
    areas: str = Form(..., description='JSON list of {"page", "x", "y", "width", "height"}, top-left origin'),
    color: str = Form("#000000"),
):
    return await _run_transform(request, RedactDescriptor(areas=json.loads(areas), color=color))


@router.post("/security/sign")
@handle_transform('pdf')
async def sign_pdf(
    *,
    request: Request,
    file: UploadFile = File(...),
    signature_name: str = Form("Digital Signature", alias="signatureName"),
    reason: str = Form("Document approval"),
    location: str = Form("Digital"),
    contact_info: str = Form("", alias="contactInfo"),
):
    """Stamp a visible signature block on page 1. No certificate is applied."""
    descriptor = SignDescriptor(
        signature_name=signature_name,
        reason=reason,
        location=location,
        contact_info=contact_info,
    )
    return await _run_transform(request, descriptor)


@router.post("/security/compare")
@handle_transform('pdf')
async def compare_pdfs(*, request: Request, files: List[UploadFile] = File(...)):
    return await _run_transform(request, CompareDescriptor())


# --- Convert ---

@router.post("/convert/image-to-pdf")
@handle_transform('image')
async def image_to_pdf(*, request: Request, files: List[UploadFile] = File(...)):
    return await _run_transform(request, ImageToPdfDescriptor())


@router.post("/convert/pdf-to-jpg")
@handle_transform('pdf')
async def pdf_to_jpg(
    *,
    request: Request,
    file: UploadFile = File(...),
    dpi: int = Form(150),
    quality: int = Form(90),
):
    return await _run_transform(request, PdfToJpgDescriptor(dpi=dpi, quality=quality))


@router.post("/convert/image-to-text")
@handle_transform('image')
async def image_to_text(*, request: Request, file: UploadFile = File(...), language: str = Form("eng")):
    return await _run_transform(request, ImageToTextDescriptor(language=language))


@router.post("/convert/pdf-to-word")
@handle_transform('pdf')
async def pdf_to_word(*, request: Request, file: UploadFile = File(...)):
    return await _run_transform(request, PdfToWordDescriptor())


@router.post("/convert/word-to-pdf")
@handle_transform('word')
async def word_to_pdf(*, request: Request, file: UploadFile = File(...)):
    return await _run_transform(request, WordToPdfDescriptor())


@router.post("/convert/excel-to-pdf")
@handle_transform('excel')
async def excel_to_pdf(*, request: Request, file: UploadFile = File(...)):
    return await _run_transform(request, ExcelToPdfDescriptor())


@router.post("/convert/html-to-pdf")
@handle_transform('html')
async def html_to_pdf(*, request: Request, file: UploadFile = File(...)):
    return await _run_transform(request, HtmlToPdfDescriptor())


# --- Application ---

async def toolkit_error_handler(request: Request, exc: PdfToolError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = PdfValidationError(
        "Invalid request parameters",
        code="INVALID_PARAMETER",
        details={'errors': jsonable_encoder(exc.errors())},
    )
    logger.warning(f"Rejected request to {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def create_app(config: Optional[ServiceConfig] = None) -> FastAPI:
    """Build the application around a RuntimeContext for `config`"""
    config = config or ServiceConfig.from_env()
    runtime = RuntimeContext(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await runtime.start()
        try:
            yield
        finally:
            await runtime.stop()

    app = FastAPI(
        title="PDF Toolkit API",
        description="Organize, edit, secure and convert PDF documents",
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.runtime = runtime
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials="*" not in config.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(PdfToolError, toolkit_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(router)
    app.mount(
        config.download_prefix,
        StaticFiles(directory=runtime.artifact_dir, check_dir=False),
        name="uploads",
    )
    return app


def _configure_server_logging(log_level: str = "INFO"):
    """Configure logging with Rich handler and filters for clean output"""
    console = Console(force_terminal=True)
    log_level = log_level.upper()

    class ShutdownFilter(logging.Filter):
        """Filter out shutdown-related log messages"""
        def filter(self, record):
            if record.exc_info and record.exc_info[0] in (KeyboardInterrupt, asyncio.CancelledError):
                return False
            if "CancelledError" in str(record.msg) or "KeyboardInterrupt" in str(record.msg):
                return False
            return True

    rich_handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        show_time=False,
        show_path=True
    )
    rich_handler.addFilter(ShutdownFilter())

    # Silence everything by default
    logging.basicConfig(level=logging.WARNING, format="%(message)s", handlers=[rich_handler])

    # Allow server startup logs
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("fastapi").setLevel(logging.INFO)

    for module_name in ["main", "rich", "engine", "models", "utils"]:
        logging.getLogger(module_name).setLevel(log_level)

    return console


service_config = ServiceConfig.from_env()
server_console = _configure_server_logging(service_config.log_level)
app = create_app(service_config)

if __name__ == "__main__":
    server_console.print(f"[bold green]🚀 Starting server on http://localhost:{service_config.port}[/bold green]")

    try:
        uvicorn.run("main:app", host="0.0.0.0", port=service_config.port, log_config=None)
    except KeyboardInterrupt:
        server_console.print("\n[bold yellow]🛑 Server stopped.[/bold yellow]")
        sys.exit(0)

"""Content-stream drawing helpers for text overlays, boxes and text-only pages."""

import logging
import re
import textwrap
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from pikepdf import Dictionary, Name, Operator, Page, Pdf, Stream, String, unparse_content_stream

from constants.pdf_keys import (
    FONT_PREFIX,
    GSTATE_PREFIX,
    KEY_EXT_GSTATE,
    KEY_FONT,
    VAL_HELVETICA,
    VAL_TYPE1,
    VAL_WIN_ANSI_ENCODING,
)
from constants.pdf_operators import (
    OP_BEGIN_TEXT,
    OP_END_TEXT,
    OP_FILL,
    OP_MOVE_TEXT,
    OP_RECTANGLE,
    OP_RESTORE_STATE,
    OP_SAVE_STATE,
    OP_SET_FONT,
    OP_SET_GRAPHICS_STATE_PARAMS,
    OP_SET_RGB_COLOR_FILL,
    OP_SHOW_TEXT,
)

logger = logging.getLogger(__name__)

RGB = Tuple[float, float, float]

NEUTRAL_GRAY: RGB = (0.6, 0.6, 0.6)
BLACK: RGB = (0.0, 0.0, 0.0)
BLUE: RGB = (0.0, 0.0, 1.0)

# Standard 14 fonts with WinAnsiEncoding only cover cp1252
TEXT_ENCODING = "cp1252"

# Helvetica averages roughly half an em per glyph
AVERAGE_GLYPH_WIDTH = 0.5

LETTER_SIZE = (612.0, 792.0)
TEXT_PAGE_MARGIN = 72.0
TEXT_LINE_SPACING = 1.4

_HEX_COLOR_RE = re.compile(r"^#?([0-9a-f]{2})([0-9a-f]{2})([0-9a-f]{2})$", re.IGNORECASE)


@dataclass(frozen=True)
class TextLayout:
    """Offsets from the page edges used to place an overlay."""
    margin_x: float
    top_offset: float
    bottom_offset: float


WATERMARK_LAYOUT = TextLayout(margin_x=50.0, top_offset=100.0, bottom_offset=100.0)
PAGE_NUMBER_LAYOUT = TextLayout(margin_x=50.0, top_offset=30.0, bottom_offset=20.0)


@dataclass(frozen=True)
class TextStyle:
    font_size: float
    color: RGB = BLACK
    opacity: float = 1.0


# --- Colors and geometry ---
def parse_hex_color(value: Optional[str], fallback: RGB = NEUTRAL_GRAY) -> RGB:
    """Parse ``#RRGGBB`` into normalized RGB, returning `fallback` for anything else."""
    if not value:
        return fallback
    match = _HEX_COLOR_RE.match(value.strip())
    if not match:
        return fallback
    return tuple(int(part, 16) / 255 for part in match.groups())


def estimate_text_width(text: str, font_size: float) -> float:
    return len(text) * font_size * AVERAGE_GLYPH_WIDTH


def page_box(page: Page) -> Tuple[float, float, float, float]:
    """(x0, y0, width, height) of the page's MediaBox."""
    x0, y0, x1, y1 = (float(v) for v in page.mediabox)
    return x0, y0, x1 - x0, y1 - y0


def compute_text_origin(
    position: str,
    page_width: float,
    page_height: float,
    text_width: float,
    layout: TextLayout,
) -> Tuple[float, float]:
    """
    Baseline origin for `position` (e.g. ``"top-right"``) in page space
    relative to the MediaBox corner.
    """
    if position == "center":
        return (page_width - text_width) / 2, page_height / 2

    vertical, _, horizontal = position.partition("-")

    if horizontal == "left":
        x = layout.margin_x
    elif horizontal == "right":
        x = page_width - layout.margin_x - text_width
    else:
        x = (page_width - text_width) / 2

    y = page_height - layout.top_offset if vertical == "top" else layout.bottom_offset
    return x, y


# --- Resources ---
def _helvetica(pdf: Pdf) -> Dictionary:
    return pdf.make_indirect(Dictionary(
        Type=Name.Font,
        Subtype=Name(VAL_TYPE1),
        BaseFont=Name(VAL_HELVETICA),
        Encoding=Name(VAL_WIN_ANSI_ENCODING),
    ))


def _opacity_state(pdf: Pdf, opacity: float) -> Dictionary:
    return pdf.make_indirect(Dictionary(Type=Name.ExtGState, ca=opacity, CA=opacity))


def is_drawable(text: str) -> bool:
    """True if every character of `text` exists in the overlay font's encoding."""
    try:
        text.encode(TEXT_ENCODING)
    except UnicodeEncodeError:
        return False
    return True


def _encode(text: str) -> String:
    if not is_drawable(text):
        logger.warning(f"Text has characters outside {TEXT_ENCODING}, drawing them as '?': {text!r}")
    return String(text.encode(TEXT_ENCODING, errors="replace"))


def _op(code: bytes) -> Operator:
    return Operator(code.decode("ascii"))


def _num(value: float) -> float:
    return round(float(value), 3)


def _isolate_existing_content(pdf: Pdf, page: Page) -> None:
    # Existing streams may leave the CTM or colors modified; wrap them in q/Q
    page.contents_add(Stream(pdf, b"q\n"), prepend=True)
    page.contents_add(Stream(pdf, b"Q\n"), prepend=False)


# --- Drawing ---
def draw_text(pdf: Pdf, page: Page, text: str, x: float, y: float, style: TextStyle) -> None:
    """Append `text` at (x, y) relative to the MediaBox corner."""
    x0, y0, _, _ = page_box(page)
    font_name = page.add_resource(_helvetica(pdf), Name(KEY_FONT), prefix=FONT_PREFIX)

    instructions = [([], _op(OP_SAVE_STATE))]
    if style.opacity < 1.0:
        gs_name = page.add_resource(_opacity_state(pdf, style.opacity), Name(KEY_EXT_GSTATE), prefix=GSTATE_PREFIX)
        instructions.append(([gs_name], _op(OP_SET_GRAPHICS_STATE_PARAMS)))

    r, g, b = style.color
    instructions.extend([
        ([_num(r), _num(g), _num(b)], _op(OP_SET_RGB_COLOR_FILL)),
        ([], _op(OP_BEGIN_TEXT)),
        ([font_name, _num(style.font_size)], _op(OP_SET_FONT)),
        ([_num(x0 + x), _num(y0 + y)], _op(OP_MOVE_TEXT)),
        ([_encode(text)], _op(OP_SHOW_TEXT)),
        ([], _op(OP_END_TEXT)),
        ([], _op(OP_RESTORE_STATE)),
    ])

    _isolate_existing_content(pdf, page)
    page.contents_add(Stream(pdf, unparse_content_stream(instructions)), prepend=False)


def draw_rectangles(
    pdf: Pdf,
    page: Page,
    rects: Iterable[Tuple[float, float, float, float]],
    color: RGB = BLACK,
) -> int:
    """
    Fill opaque rectangles given as (x, y, width, height) with a bottom-left
    origin relative to the MediaBox corner. Returns the number drawn.
    """
    x0, y0, _, _ = page_box(page)
    r, g, b = color
    instructions = [
        ([], _op(OP_SAVE_STATE)),
        ([_num(r), _num(g), _num(b)], _op(OP_SET_RGB_COLOR_FILL)),
    ]
    count = 0
    for x, y, width, height in rects:
        instructions.append(([_num(x0 + x), _num(y0 + y), _num(width), _num(height)], _op(OP_RECTANGLE)))
        count += 1
    if not count:
        return 0
    instructions.extend([
        ([], _op(OP_FILL)),
        ([], _op(OP_RESTORE_STATE)),
    ])

    _isolate_existing_content(pdf, page)
    page.contents_add(Stream(pdf, unparse_content_stream(instructions)), prepend=False)
    return count


# --- Text-only documents ---
def wrap_paragraphs(paragraphs: Sequence[str], font_size: float, line_width: float) -> List[str]:
    """Wrap paragraphs to the number of average glyphs that fit `line_width`; blank line between paragraphs."""
    chars_per_line = max(1, int(line_width / (font_size * AVERAGE_GLYPH_WIDTH)))
    lines: List[str] = []
    for paragraph in paragraphs:
        for raw_line in paragraph.splitlines() or [""]:
            wrapped = textwrap.wrap(raw_line.expandtabs(4), width=chars_per_line) or [""]
            lines.extend(wrapped)
        lines.append("")
    while lines and not lines[-1]:
        lines.pop()
    return lines


def text_to_pdf(paragraphs: Sequence[str], font_size: float = 11.0, page_size: Tuple[float, float] = LETTER_SIZE) -> Pdf:
    """Render paragraphs of plain text into a new paginated PDF (at least one page)."""
    width, height = page_size
    usable_width = width - 2 * TEXT_PAGE_MARGIN
    leading = font_size * TEXT_LINE_SPACING
    lines_per_page = max(1, int((height - 2 * TEXT_PAGE_MARGIN) / leading))

    lines = wrap_paragraphs(paragraphs, font_size, usable_width)
    chunks = [lines[i:i + lines_per_page] for i in range(0, len(lines), lines_per_page)] or [[]]

    pdf = Pdf.new()
    font = _helvetica(pdf)
    for chunk in chunks:
        page = pdf.add_blank_page(page_size=page_size)
        page.obj.Resources = Dictionary(Font=Dictionary(F1=font))
        instructions = []
        y = height - TEXT_PAGE_MARGIN
        for line in chunk:
            if line:
                instructions.extend([
                    ([], _op(OP_BEGIN_TEXT)),
                    ([Name("/F1"), _num(font_size)], _op(OP_SET_FONT)),
                    ([_num(TEXT_PAGE_MARGIN), _num(y)], _op(OP_MOVE_TEXT)),
                    ([_encode(line)], _op(OP_SHOW_TEXT)),
                    ([], _op(OP_END_TEXT)),
                ])
            y -= leading
        page.obj.Contents = pdf.make_stream(unparse_content_stream(instructions))

    return pdf


__all__ = [
    'RGB',
    'NEUTRAL_GRAY',
    'BLACK',
    'BLUE',
    'TEXT_ENCODING',
    'TextLayout',
    'TextStyle',
    'WATERMARK_LAYOUT',
    'PAGE_NUMBER_LAYOUT',
    'parse_hex_color',
    'estimate_text_width',
    'is_drawable',
    'page_box',
    'compute_text_origin',
    'draw_text',
    'draw_rectangles',
    'wrap_paragraphs',
    'text_to_pdf',
]

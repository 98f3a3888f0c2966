"""
Content overlay transforms: watermark, page numbers, redaction boxes.

Each one appends a new content stream to the pages it touches; the original
content is wrapped in q/Q so its graphics state cannot leak into the overlay.
"""

import logging
from typing import List

from engine.base_transform import BaseTransform, OutputDocument, TransformResult
from engine.document_handle import DocumentHandle
from models.transform_types import PageNumbersDescriptor, RedactDescriptor, WatermarkDescriptor
from utils.pdf_drawing import (
    BLACK,
    NEUTRAL_GRAY,
    PAGE_NUMBER_LAYOUT,
    WATERMARK_LAYOUT,
    TextStyle,
    compute_text_origin,
    draw_rectangles,
    draw_text,
    estimate_text_width,
    page_box,
    parse_hex_color,
)

logger = logging.getLogger(__name__)


class WatermarkTransform(BaseTransform):
    operation = "watermark"

    def apply(self, inputs: List[DocumentHandle], descriptor: WatermarkDescriptor) -> TransformResult:
        source = inputs[0]
        style = TextStyle(
            font_size=descriptor.font_size,
            color=parse_hex_color(descriptor.color, fallback=NEUTRAL_GRAY),
            opacity=descriptor.opacity,
        )
        text_width = estimate_text_width(descriptor.text, descriptor.font_size)

        for page in source.pages:
            _, _, width, height = page_box(page)
            x, y = compute_text_origin(descriptor.position.value, width, height, text_width, WATERMARK_LAYOUT)
            draw_text(source.pdf, page, descriptor.text, x, y, style)

        logger.info(f"Watermarked {source.page_count} page(s) at {descriptor.position.value}")
        return TransformResult(
            message="Watermark added successfully",
            outputs=[OutputDocument(name="watermarked", document=source, page_count=source.page_count)],
            metadata={
                'pageCount': source.page_count,
                'watermark': {
                    'text': descriptor.text,
                    'position': descriptor.position.value,
                    'opacity': descriptor.opacity,
                    'fontSize': descriptor.font_size,
                    'color': descriptor.color,
                },
            },
        )


class PageNumbersTransform(BaseTransform):
    operation = "page_numbers"

    def apply(self, inputs: List[DocumentHandle], descriptor: PageNumbersDescriptor) -> TransformResult:
        source = inputs[0]
        total = source.page_count
        style = TextStyle(
            font_size=descriptor.font_size,
            color=parse_hex_color(descriptor.color, fallback=BLACK),
        )

        for index, page in enumerate(source.pages):
            label = descriptor.render_label(index, total)
            _, _, width, height = page_box(page)
            text_width = estimate_text_width(label, descriptor.font_size)
            x, y = compute_text_origin(descriptor.position.value, width, height, text_width, PAGE_NUMBER_LAYOUT)
            draw_text(source.pdf, page, label, x, y, style)

        logger.info(f"Numbered {total} page(s) starting at {descriptor.start_page}")
        return TransformResult(
            message="Page numbers added successfully",
            outputs=[OutputDocument(name="numbered", document=source, page_count=total)],
            metadata={
                'pageCount': total,
                'pageNumbers': {
                    'position': descriptor.position.value,
                    'fontSize': descriptor.font_size,
                    'color': descriptor.color,
                    'startPage': descriptor.start_page,
                    'format': descriptor.format,
                    'totalPages': total,
                },
            },
        )


class RedactTransform(BaseTransform):
    """Opaque boxes over areas given with a top-left origin"""

    operation = "redact"

    def apply(self, inputs: List[DocumentHandle], descriptor: RedactDescriptor) -> TransformResult:
        source = inputs[0]
        color = parse_hex_color(descriptor.color, fallback=BLACK)
        redacted = 0

        for index, page in enumerate(source.pages):
            _, _, _, height = page_box(page)
            rects = [
                (area.x, height - area.y - area.height, area.width, area.height)
                for area in descriptor.areas
                if area.applies_to(index)
            ]
            redacted += draw_rectangles(source.pdf, page, rects, color)

        if not redacted:
            logger.warning(f"No redaction area matched any of the {source.page_count} page(s)")

        logger.info(f"Drew {redacted} redaction box(es)")
        return TransformResult(
            message="PDF redacted successfully",
            outputs=[OutputDocument(name="redacted", document=source, page_count=source.page_count)],
            metadata={'redactedAreas': redacted, 'pageCount': source.page_count},
        )


__all__ = ['WatermarkTransform', 'PageNumbersTransform', 'RedactTransform']

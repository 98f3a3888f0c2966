"""
Page-level transforms: merge, split, remove, extract, rotate, compress.

All of them work on whole pages through pikepdf and never touch content
streams.
"""

import logging
from typing import List

import pikepdf

from constants.pdf_keys import KEY_ROTATE
from engine.base_transform import BaseTransform, OutputDocument, TransformResult
from engine.document_handle import DocumentHandle
from models.transform_types import (
    CompressDescriptor,
    ExtractPagesDescriptor,
    MergeDescriptor,
    RemovePagesDescriptor,
    RotateDescriptor,
    SplitDescriptor,
    SplitMode,
)
from utils.page_ranges import clamp_range
from utils.validation import PdfValidationError

logger = logging.getLogger(__name__)


def copy_pages(source: DocumentHandle, indices: List[int]) -> DocumentHandle:
    """New document holding copies of `indices` from `source`, in the given order."""
    target = DocumentHandle.new()
    for index in indices:
        target.pdf.pages.append(source.pages[index])
    return target


def _mb(size_bytes: int) -> str:
    return f"{size_bytes / (1024 * 1024):.2f} MB"


class MergeTransform(BaseTransform):
    """Concatenate every page of every input, inputs in upload order"""

    operation = "merge"

    def apply(self, inputs: List[DocumentHandle], descriptor: MergeDescriptor) -> TransformResult:
        merged = DocumentHandle.new()
        for handle in inputs:
            merged.pdf.pages.extend(handle.pages)

        logger.info(f"Merged {len(inputs)} documents into {merged.page_count} pages")
        return TransformResult(
            message=f"Successfully merged {len(inputs)} PDFs",
            outputs=[OutputDocument(name="merged", document=merged, page_count=merged.page_count)],
            metadata={'pageCount': merged.page_count},
        )


class SplitTransform(BaseTransform):
    """One output per page, or one per requested range"""

    operation = "split"
    lists_outputs = True

    def apply(self, inputs: List[DocumentHandle], descriptor: SplitDescriptor) -> TransformResult:
        source = inputs[0]
        total = source.page_count
        outputs: List[OutputDocument] = []

        if descriptor.mode == SplitMode.PAGES:
            for index in range(total):
                outputs.append(OutputDocument(
                    name=f"split-page-{index + 1}",
                    document=copy_pages(source, [index]),
                    page_count=1,
                    extra={'pageNumber': index + 1},
                ))
        else:
            for split_range in descriptor.ranges:
                first, last = clamp_range(split_range.start, split_range.end, total)
                if first > last:
                    logger.warning(
                        f"Skipping range {split_range.start}-{split_range.end}: outside document of {total} pages"
                    )
                    continue
                outputs.append(OutputDocument(
                    name=f"split-{first}-{last}",
                    document=copy_pages(source, list(range(first - 1, last))),
                    page_count=last - first + 1,
                    extra={'pageRange': f"{first}-{last}"},
                ))

            if not outputs:
                raise PdfValidationError(
                    f"None of the requested ranges fall within the document's {total} pages",
                    code="EMPTY_SELECTION",
                    details={'totalPages': total},
                )

        logger.info(f"Split {total}-page document into {len(outputs)} files")
        return TransformResult(
            message=f"PDF split into {len(outputs)} files",
            outputs=outputs,
            metadata={'originalPageCount': total},
        )


class RemovePagesTransform(BaseTransform):
    operation = "remove_pages"

    def apply(self, inputs: List[DocumentHandle], descriptor: RemovePagesDescriptor) -> TransformResult:
        source = inputs[0]
        selector = descriptor.selector(source.page_count)
        kept = selector.complement()

        if kept.is_empty:
            raise PdfValidationError(
                "Cannot remove all pages from PDF",
                code="ALL_PAGES_REMOVED",
                details={'totalPages': source.page_count},
            )

        result = copy_pages(source, kept.ascending())
        removed = selector.display(ascending=True)
        logger.info(f"Removed pages [{removed}] of {source.page_count}")
        return TransformResult(
            message=f"Successfully removed {len(selector)} page(s)",
            outputs=[OutputDocument(name="removed-pages", document=result, page_count=result.page_count)],
            metadata={
                'originalPageCount': source.page_count,
                'newPageCount': result.page_count,
                'removedPages': removed,
            },
        )


class ExtractPagesTransform(BaseTransform):
    operation = "extract_pages"

    def apply(self, inputs: List[DocumentHandle], descriptor: ExtractPagesDescriptor) -> TransformResult:
        source = inputs[0]
        selector = descriptor.selector(source.page_count)

        if selector.is_empty:
            raise PdfValidationError(
                f"No valid pages selected (document has {source.page_count} pages)",
                code="EMPTY_SELECTION",
                details={'expression': descriptor.pages, 'totalPages': source.page_count},
            )

        result = copy_pages(source, selector.ascending())
        extracted = selector.display(ascending=True)
        logger.info(f"Extracted pages [{extracted}] of {source.page_count}")
        return TransformResult(
            message=f"Successfully extracted {len(selector)} page(s)",
            outputs=[OutputDocument(name="extracted-pages", document=result, page_count=result.page_count)],
            metadata={
                'originalPageCount': source.page_count,
                'extractedPageCount': result.page_count,
                'extractedPages': extracted,
            },
        )


class RotateTransform(BaseTransform):
    """Adds the angle to each selected page's /Rotate, in place"""

    operation = "rotate"

    def apply(self, inputs: List[DocumentHandle], descriptor: RotateDescriptor) -> TransformResult:
        source = inputs[0]
        selector = descriptor.selector(source.page_count)
        angle = descriptor.angle % 360

        if selector.is_empty:
            raise PdfValidationError(
                f"No valid pages selected (document has {source.page_count} pages)",
                code="EMPTY_SELECTION",
                details={'expression': descriptor.pages, 'totalPages': source.page_count},
            )

        for index in selector:
            page = source.pages[index]
            current = int(page.obj.get(KEY_ROTATE, 0))
            page.obj.Rotate = (current + angle) % 360

        logger.info(f"Rotated {len(selector)} page(s) by {angle} degrees")
        return TransformResult(
            message=f"Successfully rotated {len(selector)} page(s) by {angle} degrees",
            outputs=[OutputDocument(name="rotated", document=source, page_count=source.page_count)],
            metadata={
                'rotation': angle,
                'rotatedPages': len(selector),
                'pageCount': source.page_count,
            },
        )


class CompressTransform(BaseTransform):
    """Re-serialise with compressed streams and object streams"""

    operation = "compress"

    def apply(self, inputs: List[DocumentHandle], descriptor: CompressDescriptor) -> TransformResult:
        source = inputs[0]
        return TransformResult(
            message="PDF compressed successfully",
            outputs=[OutputDocument(name="compressed", document=source, page_count=source.page_count)],
            metadata={'originalBytes': source.file_size_bytes or 0},
            save_options={
                'compress_streams': True,
                'object_stream_mode': pikepdf.ObjectStreamMode.generate,
                'recompress_flate': True,
            },
        )

    def finalize(self, result: TransformResult, saved_sizes: List[int]) -> None:
        original = result.metadata.pop('originalBytes')
        compressed = saved_sizes[0]
        saved = (1 - compressed / original) * 100 if original else 0.0

        result.metadata['compression'] = {
            'originalSize': _mb(original),
            'compressedSize': _mb(compressed),
            'originalBytes': original,
            'compressedBytes': compressed,
            'savedSpace': f"{saved:.1f}%",
        }
        logger.info(f"Compressed {original} -> {compressed} bytes ({saved:.1f}% saved)")


__all__ = [
    'copy_pages',
    'MergeTransform',
    'SplitTransform',
    'RemovePagesTransform',
    'ExtractPagesTransform',
    'RotateTransform',
    'CompressTransform',
]

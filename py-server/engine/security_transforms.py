"""
Security transforms: password protection and unlocking, visible signature
stamps, and document comparison.
"""

import hashlib
import logging
from datetime import datetime, timezone
from typing import List

import pikepdf

from engine.base_transform import BaseTransform, OutputDocument, TransformResult
from engine.document_handle import DocumentHandle
from models.transform_types import CompareDescriptor, ProtectDescriptor, SignDescriptor, UnlockDescriptor
from utils.pdf_drawing import BLUE, TextStyle, draw_text

logger = logging.getLogger(__name__)


def _sha256(path: str) -> str:
    digest = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b''):
            digest.update(chunk)
    return digest.hexdigest()


class ProtectTransform(BaseTransform):
    """AES-256 encryption; owner password defaults to the user password"""

    operation = "protect"

    def apply(self, inputs: List[DocumentHandle], descriptor: ProtectDescriptor) -> TransformResult:
        source = inputs[0]
        encryption = pikepdf.Encryption(
            owner=descriptor.owner_password or descriptor.password,
            user=descriptor.password,
            R=6,
        )
        logger.info(f"Encrypting {source.page_count}-page document")
        return TransformResult(
            message="PDF protected successfully",
            outputs=[OutputDocument(name="protected", document=source, page_count=source.page_count)],
            metadata={'pageCount': source.page_count},
            save_options={'encryption': encryption},
        )


class UnlockTransform(BaseTransform):
    """The input is opened with the descriptor's password; saving drops encryption"""

    operation = "unlock"

    def apply(self, inputs: List[DocumentHandle], descriptor: UnlockDescriptor) -> TransformResult:
        source = inputs[0]
        was_encrypted = source.pdf.is_encrypted
        if not was_encrypted:
            logger.info("Unlock requested for a document that is not encrypted")

        return TransformResult(
            message="PDF unlocked successfully",
            outputs=[OutputDocument(name="unlocked", document=source, page_count=source.page_count)],
            metadata={'pageCount': source.page_count, 'wasEncrypted': was_encrypted},
            save_options={'encryption': False},
        )


class SignTransform(BaseTransform):
    """
    Stamp a visible signature block in the bottom-left corner of page 1.

    This is a visual stamp only; no cryptographic signature is embedded.
    """

    operation = "sign"

    # (baseline y, font size) for the name, reason and date lines
    LINES = ((50.0, 10.0), (35.0, 8.0), (20.0, 8.0))
    MARGIN_X = 50.0

    def apply(self, inputs: List[DocumentHandle], descriptor: SignDescriptor) -> TransformResult:
        source = inputs[0]
        timestamp = datetime.now(timezone.utc).isoformat()
        texts = (
            f"Digitally signed by: {descriptor.signature_name}",
            f"Reason: {descriptor.reason}",
            f"Date: {timestamp}",
        )

        first_page = source.pages[0]
        for text, (y, font_size) in zip(texts, self.LINES):
            draw_text(source.pdf, first_page, text, self.MARGIN_X, y, TextStyle(font_size=font_size, color=BLUE))

        signature = {
            'name': descriptor.signature_name,
            'reason': descriptor.reason,
            'location': descriptor.location,
            'timestamp': timestamp,
        }
        if descriptor.contact_info:
            signature['contactInfo'] = descriptor.contact_info

        logger.info(f"Stamped signature for {descriptor.signature_name!r} on page 1")
        return TransformResult(
            message="PDF signed successfully",
            outputs=[OutputDocument(name="signed", document=source, page_count=source.page_count)],
            metadata={
                'pageCount': source.page_count,
                'signature': signature,
                'note': "Visual signature only; the document carries no cryptographic signature",
            },
        )


class CompareTransform(BaseTransform):
    """Report structural differences between two documents; produces no file"""

    operation = "compare"

    def apply(self, inputs: List[DocumentHandle], descriptor: CompareDescriptor) -> TransformResult:
        first, second = inputs

        sizes_1 = [first.page_info(i) for i in range(first.page_count)]
        sizes_2 = [second.page_info(i) for i in range(second.page_count)]
        differing_pages = [
            a.index + 1
            for a, b in zip(sizes_1, sizes_2)
            if (round(a.width, 2), round(a.height, 2), a.rotation) != (round(b.width, 2), round(b.height, 2), b.rotation)
        ]
        identical = _sha256(first.file_path) == _sha256(second.file_path)
        page_count_differs = first.page_count != second.page_count

        if identical:
            message = "The documents are identical"
        elif page_count_differs or differing_pages:
            message = "The documents differ in structure"
        else:
            message = "The documents have the same structure but different content"

        logger.info(f"Compared documents: identical={identical}, differing pages={differing_pages}")
        return TransformResult(
            message=message,
            metadata={
                'comparison': {
                    'identical': identical,
                    'file1': {'pageCount': first.page_count, 'size': first.file_size_bytes},
                    'file2': {'pageCount': second.page_count, 'size': second.file_size_bytes},
                    'pageCountDiffers': page_count_differs,
                    'pagesWithDifferentLayout': differing_pages,
                },
            },
        )


__all__ = ['ProtectTransform', 'UnlockTransform', 'SignTransform', 'CompareTransform']

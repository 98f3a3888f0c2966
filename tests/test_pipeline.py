"""Tests for pipeline.run(): dispatch, outputs, response bodies and cleanup."""

import os

import pikepdf
import pytest
from pydantic import ValidationError

from engine.artifacts import ArtifactScope
from engine.base_transform import TransformRegistry
from engine.config import ServiceConfig
from engine.document_handle import DocumentHandle
from engine.pipeline import DEFAULT_REGISTRY, run
from engine.runtime import RuntimeContext
from models.transform_types import (
    CompressDescriptor,
    ImageToPdfDescriptor,
    MergeDescriptor,
    ProtectDescriptor,
    RemovePagesDescriptor,
    RotateDescriptor,
    SplitDescriptor,
    UnlockDescriptor,
    parse_descriptor,
)
from utils.validation import PdfProcessingError, PdfValidationError


def _output_path(runtime, url):
    return os.path.join(runtime.artifact_dir, os.path.basename(url))


class TestSuccessfulRuns:
    """Outputs are written and everything else is cleaned up."""

    def test_merge_leaves_only_the_output(self, runtime, make_pdf, page_widths, artifact_files):
        inputs = [make_pdf([101, 102, 103]), make_pdf([201, 202, 203])]
        response = run(inputs, MergeDescriptor(), runtime)

        assert response.success is True
        assert response.downloadUrl.startswith("/uploads/merged-")
        assert response.filename.endswith(".pdf")
        assert response.pageCount == 6
        assert artifact_files() == [response.filename]
        assert page_widths(_output_path(runtime, response.downloadUrl)) == [101, 102, 103, 201, 202, 203]

    def test_split_lists_every_part(self, runtime, make_pdf, page_widths, artifact_files):
        response = run([make_pdf([101, 102, 103])], SplitDescriptor(), runtime)
        body = response.to_json()

        assert 'downloadUrl' not in body
        assert [f['pageNumber'] for f in body['files']] == [1, 2, 3]
        assert artifact_files() == sorted(f['filename'] for f in body['files'])
        for expected, item in zip([101, 102, 103], body['files']):
            assert page_widths(_output_path(runtime, item['downloadUrl'])) == [expected]
            assert item['size'] > 0

    def test_split_single_range_still_lists_files(self, runtime, make_pdf):
        descriptor = SplitDescriptor(mode="ranges", ranges=[{'start': 1, 'end': 2}])
        body = run([make_pdf([101, 102, 103])], descriptor, runtime).to_json()

        assert len(body['files']) == 1
        assert body['files'][0]['pageRange'] == "1-2"

    def test_rotate_twice_through_saved_files(self, runtime, make_pdf):
        first = run([make_pdf([101])], RotateDescriptor(angle=90), runtime)
        first_path = _output_path(runtime, first.downloadUrl)
        with pikepdf.open(first_path) as pdf:
            assert int(pdf.pages[0].obj.Rotate) == 90

        second = run([first_path], RotateDescriptor(angle=90), runtime)
        with pikepdf.open(_output_path(runtime, second.downloadUrl)) as pdf:
            assert int(pdf.pages[0].obj.Rotate) == 180

    def test_compress_reports_sizes(self, runtime, make_pdf):
        source = make_pdf([101, 102])
        original_size = os.path.getsize(source)
        response = run([source], CompressDescriptor(), runtime)

        compression = response.compression
        assert compression['originalBytes'] == original_size
        assert compression['compressedBytes'] == os.path.getsize(_output_path(runtime, response.downloadUrl))
        assert compression['originalSize'].endswith(" MB")
        assert compression['savedSpace'].endswith("%")

    def test_protect_then_unlock(self, runtime, make_pdf):
        protected = run([make_pdf([101, 102])], ProtectDescriptor(password="s3cret"), runtime)
        protected_path = _output_path(runtime, protected.downloadUrl)

        with pytest.raises(pikepdf.PasswordError):
            pikepdf.open(protected_path)
        with pikepdf.open(protected_path, password="s3cret") as pdf:
            assert pdf.is_encrypted
            assert len(pdf.pages) == 2

        unlocked = run([protected_path], UnlockDescriptor(password="s3cret"), runtime)
        assert unlocked.wasEncrypted is True
        with pikepdf.open(_output_path(runtime, unlocked.downloadUrl)) as pdf:
            assert not pdf.is_encrypted

    def test_caller_owned_scope_keeps_outputs(self, runtime, make_pdf, artifact_files):
        inputs = [make_pdf([101]), make_pdf([201])]
        with ArtifactScope(runtime.artifact_dir) as scope:
            response = run(inputs, MergeDescriptor(), runtime, artifacts=scope)
            assert len(artifact_files()) == 3

        assert artifact_files() == [response.filename]


class TestFailedRuns:
    """Nothing is left behind when an invocation fails."""

    def test_all_pages_removed(self, runtime, make_pdf, artifact_files):
        with pytest.raises(PdfValidationError) as exc_info:
            run([make_pdf([101, 102])], RemovePagesDescriptor(pages="1-2"), runtime)

        assert exc_info.value.code == "ALL_PAGES_REMOVED"
        assert artifact_files() == []

    def test_validation_failure_before_load(self, runtime, make_pdf, artifact_files):
        with pytest.raises(PdfValidationError) as exc_info:
            run([make_pdf([101])], MergeDescriptor(), runtime)

        assert exc_info.value.code == "INSUFFICIENT_INPUTS"
        assert artifact_files() == []

    def test_merge_limit_comes_from_config(self, tmp_path, make_pdf):
        limited = RuntimeContext(ServiceConfig(upload_dir=str(tmp_path / "limited"), max_merge_files=2))
        limited.ensure_artifact_dir()
        inputs = [make_pdf([101]), make_pdf([102]), make_pdf([103])]

        with pytest.raises(PdfValidationError) as exc_info:
            run(inputs, MergeDescriptor(), limited)
        assert exc_info.value.code == "TOO_MANY_INPUTS"

    def test_corrupt_pdf_is_a_processing_error(self, runtime, artifact_files):
        path = os.path.join(runtime.artifact_dir, "upload-broken.pdf")
        with open(path, 'wb') as f:
            f.write(b"%PDF-1.7\nthis is not a pdf body")

        with pytest.raises(PdfProcessingError) as exc_info:
            run([path], CompressDescriptor(), runtime)

        assert exc_info.value.code == "INVALID_PDF"
        assert exc_info.value.to_dict()['category'] == "PROCESSING_ERROR"
        assert artifact_files() == []

    def test_wrong_password(self, runtime, make_pdf, artifact_files):
        protected = run([make_pdf([101])], ProtectDescriptor(password="right-one"), runtime)
        protected_path = _output_path(runtime, protected.downloadUrl)

        with pytest.raises(PdfProcessingError) as exc_info:
            run([protected_path], UnlockDescriptor(password="wrong-one"), runtime)

        assert exc_info.value.code == "INVALID_PASSWORD"
        assert artifact_files() == []

    def test_write_failure_after_first_part_leaves_nothing(self, runtime, make_pdf, artifact_files, monkeypatch):
        real_save = DocumentHandle.save
        calls = []

        def failing_save(handle, path, **options):
            calls.append(path)
            if len(calls) == 2:
                raise pikepdf.PdfError("No space left on device")
            return real_save(handle, path, **options)

        monkeypatch.setattr(DocumentHandle, "save", failing_save)

        with pytest.raises(PdfProcessingError) as exc_info:
            run([make_pdf([101, 102, 103])], SplitDescriptor(), runtime)

        assert exc_info.value.code == "PROCESSING_ERROR"
        assert len(calls) == 2
        assert artifact_files() == []

    def test_unknown_operation(self, runtime, make_pdf):
        with pytest.raises(PdfValidationError) as exc_info:
            run([make_pdf([101])], CompressDescriptor(), runtime, registry=TransformRegistry())
        assert exc_info.value.code == "UNKNOWN_OPERATION"


class TestRegistry:
    def test_every_operation_is_registered(self):
        assert sorted(DEFAULT_REGISTRY.transform_names) == sorted([
            "merge", "split", "remove_pages", "extract_pages", "rotate", "watermark",
            "page_numbers", "compress", "protect", "unlock", "sign", "redact", "compare",
            "image_to_pdf", "pdf_to_jpg", "image_to_text", "pdf_to_word",
            "word_to_pdf", "excel_to_pdf", "html_to_pdf",
        ])

    def test_descriptor_from_operation_tag(self):
        descriptor = parse_descriptor({'operation': "rotate", 'angle': 180, 'pages': "1-2"})

        assert isinstance(descriptor, RotateDescriptor)
        assert DEFAULT_REGISTRY.get(descriptor.operation).operation == "rotate"

    def test_descriptor_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            parse_descriptor({'operation': "compress", 'level': 9})

    def test_converter_cannot_apply_to_open_documents(self):
        """Converters work on file paths; calling apply() is a programming error."""
        converter = DEFAULT_REGISTRY.get("image_to_pdf")

        with pytest.raises(TypeError, match="use convert"):
            converter.apply([], ImageToPdfDescriptor())

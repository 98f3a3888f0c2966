"""End-to-end tests for the HTTP API using FastAPI's TestClient."""

import io
import json
import os
import time

import pikepdf
import pytest
from fastapi.testclient import TestClient

import main
from engine.config import ServiceConfig


def _pdf_bytes(widths, height=792):
    pdf = pikepdf.Pdf.new()
    for width in widths:
        pdf.add_blank_page(page_size=(width, height))
    buffer = io.BytesIO()
    pdf.save(buffer)
    pdf.close()
    return buffer.getvalue()


def _pdf_upload(widths, name="doc.pdf", field="file"):
    return (field, (name, _pdf_bytes(widths), "application/pdf"))


@pytest.fixture
def service_config(tmp_path):
    return ServiceConfig(upload_dir=str(tmp_path / "uploads"))


@pytest.fixture
def client(service_config):
    with TestClient(main.create_app(service_config)) as test_client:
        yield test_client


@pytest.fixture
def stored_files(service_config):
    def _files():
        directory = service_config.upload_dir
        return sorted(os.listdir(directory)) if os.path.isdir(directory) else []
    return _files


def _download_widths(client, url):
    response = client.get(url)
    assert response.status_code == 200
    with pikepdf.open(io.BytesIO(response.content)) as pdf:
        return [round(float(p.mediabox[2]) - float(p.mediabox[0])) for p in pdf.pages]


class TestHealth:
    def test_health_reports_dependencies(self, client):
        response = client.get("/api/health")
        body = response.json()

        assert response.status_code == 200
        assert body['status'] == "healthy"
        assert body['reaperRunning'] is True
        assert set(body['dependencies']) == {"pikepdf", "pdfplumber", "PIL", "tesseract"}


class TestOrganizeEndpoints:
    """Test merge, split and page selection over HTTP."""

    def test_merge_and_download(self, client, stored_files):
        response = client.post("/api/organize/merge", files=[
            _pdf_upload([101, 102], "a.pdf", "files"),
            _pdf_upload([201], "b.pdf", "files"),
        ])
        body = response.json()

        assert response.status_code == 200
        assert body['success'] is True
        assert body['pageCount'] == 3
        assert stored_files() == [body['filename']]
        assert _download_widths(client, body['downloadUrl']) == [101, 102, 201]

    def test_merge_single_file_rejected(self, client, stored_files):
        response = client.post("/api/organize/merge", files=[_pdf_upload([101], field="files")])
        body = response.json()

        assert response.status_code == 400
        assert body['success'] is False
        assert body['error'] == "INSUFFICIENT_INPUTS"
        assert body['category'] == "VALIDATION_ERROR"
        assert stored_files() == []

    def test_split_ranges(self, client):
        response = client.post(
            "/api/organize/split",
            files=[_pdf_upload([101, 102, 103, 104])],
            data={'splitType': "ranges", 'ranges': json.dumps([{'start': 1, 'end': 2}, {'start': 4, 'end': 4}])},
        )
        body = response.json()

        assert response.status_code == 200
        assert [f['pageRange'] for f in body['files']] == ["1-2", "4-4"]
        assert _download_widths(client, body['files'][1]['downloadUrl']) == [104]

    def test_split_ranges_bad_json(self, client):
        response = client.post(
            "/api/organize/split",
            files=[_pdf_upload([101])],
            data={'splitType': "ranges", 'ranges': "[{"},
        )
        assert response.status_code == 400
        assert response.json()['error'] == "INVALID_PARAMETER"

    def test_remove_pages_malformed_expression(self, client, stored_files):
        response = client.post(
            "/api/organize/remove-pages",
            files=[_pdf_upload([101, 102])],
            data={'pagesToRemove': "1,abc"},
        )
        body = response.json()

        assert response.status_code == 400
        assert body['error'] == "MALFORMED_RANGE"
        assert body['details'] == {'token': "abc"}
        assert stored_files() == []

    def test_extract_pages(self, client):
        response = client.post(
            "/api/organize/extract-pages",
            files=[_pdf_upload([101, 102, 103])],
            data={'pagesToExtract': "3,1"},
        )
        body = response.json()

        assert response.status_code == 200
        assert body['extractedPages'] == "1, 3"
        assert _download_widths(client, body['downloadUrl']) == [101, 103]


class TestEditEndpoints:
    def test_rotate(self, client):
        response = client.post(
            "/api/edit/rotate",
            files=[_pdf_upload([101, 102])],
            data={'rotation': "270", 'pages': "2"},
        )
        body = response.json()

        assert response.status_code == 200
        assert body['rotation'] == 270
        download = client.get(body['downloadUrl'])
        with pikepdf.open(io.BytesIO(download.content)) as pdf:
            assert [int(page.obj.get('/Rotate', 0)) for page in pdf.pages] == [0, 270]

    def test_watermark_bad_position(self, client, stored_files):
        response = client.post(
            "/api/edit/watermark",
            files=[_pdf_upload([612])],
            data={'position': "upside-down"},
        )
        body = response.json()

        assert response.status_code == 400
        assert body['error'] == "INVALID_PARAMETER"
        assert stored_files() == []

    def test_compress_reports_sizes(self, client):
        response = client.post("/api/edit/compress", files=[_pdf_upload([612, 612])])
        compression = response.json()['compression']

        assert response.status_code == 200
        assert compression['originalBytes'] > 0
        assert compression['compressedBytes'] > 0


class TestUploadValidation:
    """Test checks applied before any processing."""

    def test_wrong_extension(self, client, stored_files):
        response = client.post(
            "/api/edit/compress",
            files=[("file", ("notes.txt", b"%PDF-1.7 but named wrong", "text/plain"))],
        )
        body = response.json()

        assert response.status_code == 400
        assert body['error'] == "UNSUPPORTED_FILE_TYPE"
        assert body['details'] == {'filename': "notes.txt"}
        assert stored_files() == []

    def test_not_a_pdf(self, client, stored_files):
        response = client.post(
            "/api/edit/compress",
            files=[("file", ("fake.pdf", b"GIF89a" + b"\0" * 64, "application/pdf"))],
        )

        assert response.status_code == 400
        assert response.json()['error'] == "INVALID_PDF"
        assert stored_files() == []

    def test_missing_form_field(self, client):
        response = client.post("/api/organize/remove-pages", files=[_pdf_upload([101])])
        body = response.json()

        assert response.status_code == 400
        assert body['error'] == "INVALID_PARAMETER"
        assert 'errors' in body['details']

    def test_upload_too_large(self, tmp_path):
        config = ServiceConfig(upload_dir=str(tmp_path / "small"), max_upload_mb=1)
        payload = b"%PDF-1.7\n" + b"0" * (2 * 1024 * 1024)

        with TestClient(main.create_app(config)) as small_client:
            response = small_client.post(
                "/api/edit/compress",
                files=[("file", ("big.pdf", payload, "application/pdf"))],
            )

        assert response.status_code == 413
        assert response.json()['error'] == "FILE_TOO_LARGE"
        assert os.listdir(tmp_path / "small") == []


class TestSecurityEndpoints:
    def test_protect_short_password(self, client):
        response = client.post("/api/security/protect", files=[_pdf_upload([101])], data={'password': "abc"})
        assert response.status_code == 400
        assert response.json()['error'] == "PASSWORD_TOO_SHORT"

    def test_protect_then_unlock(self, client):
        protected = client.post("/api/security/protect", files=[_pdf_upload([101])], data={'password': "s3cret"})
        assert protected.status_code == 200
        encrypted = client.get(protected.json()['downloadUrl']).content

        wrong = client.post(
            "/api/security/unlock",
            files=[("file", ("locked.pdf", encrypted, "application/pdf"))],
            data={'password': "nope"},
        )
        assert wrong.status_code == 400
        assert wrong.json()['error'] == "INVALID_PASSWORD"

        unlocked = client.post(
            "/api/security/unlock",
            files=[("file", ("locked.pdf", encrypted, "application/pdf"))],
            data={'password': "s3cret"},
        )
        assert unlocked.status_code == 200
        assert _download_widths(client, unlocked.json()['downloadUrl']) == [101]

    def test_redact(self, client):
        response = client.post(
            "/api/security/redact",
            files=[_pdf_upload([612, 612])],
            data={'areas': json.dumps([{'page': 1, 'x': 0, 'y': 0, 'width': 50, 'height': 50}])},
        )
        assert response.status_code == 200
        assert response.json()['redactedAreas'] == 1

    def test_sign(self, client):
        response = client.post(
            "/api/security/sign",
            files=[_pdf_upload([612])],
            data={'signatureName': "Ada Lovelace", 'reason': "Approved", 'contactInfo': "ada@example.com"},
        )
        body = response.json()

        assert response.status_code == 200
        assert body['filename'].startswith("signed-")
        assert body['signature']['name'] == "Ada Lovelace"
        assert body['signature']['location'] == "Digital"
        assert body['signature']['contactInfo'] == "ada@example.com"
        assert 'timestamp' in body['signature']

        download = client.get(body['downloadUrl'])
        with pikepdf.open(io.BytesIO(download.content)) as pdf:
            shown = [
                bytes(operands[0]).decode("cp1252")
                for operands, operator in pikepdf.parse_content_stream(pdf.pages[0])
                if str(operator) == "Tj"
            ]
        assert shown[0] == "Digitally signed by: Ada Lovelace"

    def test_sign_name_outside_font_encoding(self, client, stored_files):
        response = client.post(
            "/api/security/sign",
            files=[_pdf_upload([612])],
            data={'signatureName': "张伟"},
        )

        assert response.status_code == 400
        assert response.json()['error'] == "INVALID_PARAMETER"
        assert stored_files() == []

    def test_compare_has_no_download(self, client, stored_files):
        content = _pdf_bytes([101])
        response = client.post("/api/security/compare", files=[
            ("files", ("a.pdf", content, "application/pdf")),
            ("files", ("b.pdf", content, "application/pdf")),
        ])
        body = response.json()

        assert response.status_code == 200
        assert body['comparison']['identical'] is True
        assert 'downloadUrl' not in body
        assert stored_files() == []


class TestTimeout:
    def test_slow_processing_times_out(self, tmp_path, monkeypatch):
        def slow_run(*args, **kwargs):
            time.sleep(2)

        monkeypatch.setattr(main, "run", slow_run)
        config = ServiceConfig(upload_dir=str(tmp_path / "slow"), processing_timeout_seconds=1)

        with TestClient(main.create_app(config)) as slow_client:
            response = slow_client.post("/api/edit/compress", files=[_pdf_upload([101])])

        body = response.json()
        assert response.status_code == 408
        assert body['error'] == "PROCESSING_TIMEOUT"
        assert body['details'] == {'timeoutSeconds': 1}
        assert os.listdir(tmp_path / "slow") == []

"""
Tests for the parsing backend client.
"""

import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx
import pytest


def make_client(handler):
    from src.parsing import ParsingClient, ParsingConfig

    config = ParsingConfig()
    config.base_url = "http://parser.test"
    return ParsingClient(config=config, transport=httpx.MockTransport(handler))


class TestParsingConfig:

    def test_environment(self, monkeypatch):
        from src.parsing import ParsingConfig

        monkeypatch.setenv("NIRAIVA_BACKEND_URL", "https://parser.example/")
        monkeypatch.setenv("NIRAIVA_BACKEND_TIMEOUT", "30")
        config = ParsingConfig()
        assert config.base_url == "https://parser.example"
        assert config.timeout == 30.0


class TestParsingClient:

    def test_upload_report(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = request.content
            return httpx.Response(200, json={"success": True, "reportId": "r-1"})

        result = asyncio.run(make_client(handler).upload_report("tok", "cbc.pdf", b"%PDF-1.4", "application/pdf"))

        assert result == {"success": True, "reportId": "r-1"}
        assert seen["path"] == "/api/upload-report"
        assert seen["auth"] == "Bearer tok"
        assert b'name="file"; filename="cbc.pdf"' in seen["body"]

    def test_doctor_report(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["json"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True})

        client = make_client(handler)
        asyncio.run(client.process_doctor_report("tok", "user-1", "patient_user-1/1_cbc.pdf"))

        assert seen["path"] == "/api/doctor/process-report"
        assert seen["json"] == {
            "patientUserId": "user-1",
            "filePath": "patient_user-1/1_cbc.pdf",
            "documentType": "lab_report",
        }

    def test_backend_error_message(self):
        from src.errors import ParsingBackendError

        def handler(request):
            return httpx.Response(422, json={"error": "Unsupported file type"})

        with pytest.raises(ParsingBackendError) as exc:
            asyncio.run(make_client(handler).upload_report("tok", "x.exe", b"MZ"))
        assert exc.value.message == "Unsupported file type"
        assert exc.value.status_code == 502

    def test_backend_error_without_body(self):
        from src.errors import ParsingBackendError

        def handler(request):
            return httpx.Response(500, text="boom")

        with pytest.raises(ParsingBackendError) as exc:
            asyncio.run(make_client(handler).upload_report("tok", "a.pdf", b"1"))
        assert exc.value.message == "Parsing backend failed: 500"

    def test_unreachable(self):
        from src.errors import ParsingBackendError

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ParsingBackendError) as exc:
            asyncio.run(make_client(handler).upload_report("tok", "a.pdf", b"1"))
        assert "unreachable" in exc.value.message

    def test_invalid_json(self):
        from src.errors import ParsingBackendError

        def handler(request):
            return httpx.Response(200, text="<html>")

        with pytest.raises(ParsingBackendError):
            asyncio.run(make_client(handler).upload_report("tok", "a.pdf", b"1"))

    def test_global_client(self):
        from src.parsing import get_client, set_client

        custom = make_client(lambda request: httpx.Response(200, json={}))
        set_client(custom)
        try:
            assert get_client() is custom
        finally:
            set_client(None)
        assert get_client() is not custom

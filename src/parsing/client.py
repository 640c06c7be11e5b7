"""
HTTP client for the AI report-parsing backend.

The backend receives uploaded documents, extracts profile, parameters,
conditions and medications, and writes the ``health_reports`` row itself.
The portal only forwards the file (or a storage path, for doctor uploads)
with the caller's bearer token and relays the result.
"""

from __future__ import annotations

import os
from typing import Any

import httpx
import structlog

from src.errors import ParsingBackendError

logger = structlog.get_logger(__name__)


class ParsingConfig:
    """Where the parsing backend lives and how long to wait for it."""

    def __init__(self):
        self.base_url = os.environ.get("NIRAIVA_BACKEND_URL", "http://localhost:5000").rstrip("/")
        self.timeout = float(os.environ.get("NIRAIVA_BACKEND_TIMEOUT", "120"))


class ParsingClient:
    """
    Async client for the parsing backend.

    A fresh ``httpx.AsyncClient`` is opened per call unless a transport is
    injected, which keeps the client safe to share across event loops.
    """

    def __init__(
        self,
        config: ParsingConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or ParsingConfig()
        self._transport = transport

    def _client(self, token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            headers={"Authorization": f"Bearer {token}"},
            transport=self._transport,
        )

    async def _post(self, path: str, token: str, **kwargs: Any) -> dict:
        async with self._client(token) as client:
            try:
                response = await client.post(path, **kwargs)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                message = _error_message(e.response)
                logger.error("parsing_backend_error", path=path, status=e.response.status_code, error=message)
                raise ParsingBackendError(message) from e
            except httpx.HTTPError as e:
                logger.error("parsing_backend_unreachable", path=path, error=str(e))
                raise ParsingBackendError(f"Parsing backend unreachable: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise ParsingBackendError("Parsing backend returned invalid JSON") from e

    async def upload_report(
        self, token: str, filename: str, content: bytes, content_type: str | None = None
    ) -> dict:
        """
        Send a patient's own upload for parsing.

        Returns the backend's JSON result, which includes the stored report.
        """
        files = {"file": (filename, content, content_type or "application/octet-stream")}
        logger.info("report_upload_forwarded", filename=filename, size=len(content))
        return await self._post("/api/upload-report", token, files=files)

    async def process_doctor_report(
        self,
        token: str,
        patient_user_id: str,
        file_path: str,
        document_type: str = "lab_report",
    ) -> dict:
        """Ask the backend to parse a document a doctor stored for a patient."""
        payload = {
            "patientUserId": patient_user_id,
            "filePath": file_path,
            "documentType": document_type,
        }
        logger.info("doctor_report_forwarded", patient_user_id=patient_user_id, file_path=file_path)
        return await self._post("/api/doctor/process-report", token, json=payload)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if isinstance(body.get(key), str):
                return body[key]
    return f"Parsing backend failed: {response.status_code}"


# Global client instance
_client: ParsingClient | None = None


def get_client() -> ParsingClient:
    """Get or create the global parsing client."""
    global _client
    if _client is None:
        _client = ParsingClient()
    return _client


def set_client(client: ParsingClient | None) -> None:
    """Set the global parsing client (for testing)."""
    global _client
    _client = client

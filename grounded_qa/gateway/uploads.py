"""
Document upload into a Gemini file search store.

The file is first uploaded through the Gemini Files API (resumable protocol,
single request for the bytes), then imported into a file search store. When
the caller has no store yet a new one is created, and its id is returned so
later uploads and file-grounded chats can reuse it.
"""

import time
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any, Dict, Optional

import httpx

from grounded_qa.config import get
from grounded_qa.errors import UploadError
from grounded_qa.logging_config import get_logger

logger = get_logger(__name__)

ALLOWED_EXTENSIONS = {
    ".pdf": {"application/pdf"},
    ".doc": {"application/msword"},
    ".docx": {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"},
    ".txt": {"text/plain"},
}

MAGIC_NUMBERS = {
    ".pdf": b"\x25\x50\x44\x46",  # %PDF
    ".doc": b"\xd0\xcf\x11\xe0",  # OLE2 compound document
    ".docx": b"\x50\x4b\x03\x04",  # ZIP
}


def max_upload_bytes() -> int:
    return int(get("upload", "max_file_size_mb", fallback=10)) * 1024 * 1024


def validate_upload(filename: str, content_type: Optional[str], data: bytes) -> str:
    """
    Check size, extension, declared MIME type and leading bytes of an upload.

    Returns:
        The MIME type to declare upstream

    Raises:
        UploadError: When the file is rejected
    """
    if not data:
        raise UploadError("Dosya boş.")
    if len(data) > max_upload_bytes():
        raise UploadError(
            f"Dosya boyutu {get('upload', 'max_file_size_mb', fallback=10)}MB sınırını aşıyor."
        )

    extension = PurePath(filename or "").suffix.lower()
    allowed_mimes = ALLOWED_EXTENSIONS.get(extension)
    if allowed_mimes is None:
        raise UploadError(
            "Desteklenmeyen dosya türü. İzin verilenler: PDF, DOC, DOCX, TXT."
        )

    mime = (content_type or "").split(";")[0].strip().lower()
    if mime and mime != "application/octet-stream" and mime not in allowed_mimes:
        raise UploadError("Dosya türü uzantıyla uyuşmuyor.")

    magic = MAGIC_NUMBERS.get(extension)
    if magic is not None and not data.startswith(magic):
        raise UploadError("Dosya içeriği belirtilen türle uyuşmuyor.")
    if extension == ".txt":
        try:
            data.decode("utf-8")
        except UnicodeDecodeError:
            raise UploadError("Metin dosyası UTF-8 olarak okunamadı.") from None

    return next(iter(allowed_mimes))


@dataclass
class UploadedFile:
    name: str
    display_name: str
    uri: str

    def to_json(self) -> Dict[str, Any]:
        return {"name": self.name, "displayName": self.display_name, "uri": self.uri}


class GeminiFileStore:
    """Thin client for the Gemini Files and File Search Store REST APIs."""

    def __init__(
        self,
        api_key: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.transport = transport
        self.base_url = get("providers", "gemini_base_url").rstrip("/")
        self.upload_url = get("providers", "gemini_upload_url").rstrip("/")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=get("providers", "http_timeout_seconds", fallback=90),
            transport=self.transport,
        )

    async def upload_file(
        self,
        client: httpx.AsyncClient,
        data: bytes,
        display_name: str,
        mime_type: str,
    ) -> UploadedFile:
        start = await client.post(
            f"{self.upload_url}/files",
            headers={
                "x-goog-api-key": self.api_key,
                "X-Goog-Upload-Protocol": "resumable",
                "X-Goog-Upload-Command": "start",
                "X-Goog-Upload-Header-Content-Length": str(len(data)),
                "X-Goog-Upload-Header-Content-Type": mime_type,
                "Content-Type": "application/json",
            },
            json={"file": {"display_name": display_name}},
        )
        start.raise_for_status()
        session_url = start.headers.get("x-goog-upload-url")
        if not session_url:
            raise UploadError(
                "Dosya Gemini'ye yüklenemedi.", code="UPLOAD_FAILED", http_status=502
            )

        finish = await client.post(
            session_url,
            headers={
                "X-Goog-Upload-Offset": "0",
                "X-Goog-Upload-Command": "upload, finalize",
            },
            content=data,
        )
        finish.raise_for_status()
        file_info = finish.json().get("file") or {}
        return UploadedFile(
            name=file_info.get("name", ""),
            display_name=file_info.get("displayName", display_name),
            uri=file_info.get("uri", ""),
        )

    async def create_store(self, client: httpx.AsyncClient, display_name: str) -> str:
        resp = await client.post(
            f"{self.base_url}/fileSearchStores",
            headers={"x-goog-api-key": self.api_key},
            json={"displayName": display_name},
        )
        resp.raise_for_status()
        return resp.json().get("name", "")

    async def import_file(self, client: httpx.AsyncClient, store_id: str, file_name: str) -> None:
        resp = await client.post(
            f"{self.base_url}/{store_id}:importFile",
            headers={"x-goog-api-key": self.api_key},
            json={"fileName": file_name},
        )
        resp.raise_for_status()

    async def add_document(
        self,
        data: bytes,
        filename: str,
        mime_type: str,
        store_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Upload a document and import it into ``store_id`` (created if absent).

        Returns:
            ``{"success": True, "file": {...}, "storeId": ...}``

        Raises:
            UploadError: When any Gemini call fails
        """
        try:
            async with self._client() as client:
                uploaded = await self.upload_file(client, data, filename, mime_type)
                if not store_id:
                    store_id = await self.create_store(client, f"Session-{int(time.time() * 1000)}")
                    logger.info(f"Created file search store {store_id}")
                await self.import_file(client, store_id, uploaded.name)
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Gemini upload HTTP error: {e.response.status_code} - {e.response.text[:200]}"
            )
            raise UploadError(
                "Dosya Gemini'ye yüklenemedi.", code="UPLOAD_FAILED", http_status=502
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Gemini upload failed: {e}")
            raise UploadError(
                "Dosya Gemini'ye yüklenemedi.", code="UPLOAD_FAILED", http_status=502
            ) from e

        logger.info(
            f"Uploaded {filename} as {uploaded.name} into {store_id}",
            extra={"data": {"bytes": len(data), "mimeType": mime_type}},
        )
        return {"success": True, "file": uploaded.to_json(), "storeId": store_id}

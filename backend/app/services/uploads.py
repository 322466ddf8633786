"""Upload collaborator: puts one document on local disk under a unique name.

The stored file is handed to the extraction pipeline, which owns it from then
on and deletes it at the end of the run.
"""
from __future__ import annotations

import asyncio
import logging
import shutil
import uuid
from pathlib import Path

from fastapi import UploadFile

from ..config import Settings, get_settings
from ..exceptions import FileValidationError, PayloadTooLargeError, UploadMissingError
from ..utils.pdf import count_pdf_pages, looks_like_pdf

logger = logging.getLogger(__name__)

_CHUNK = 1024 * 1024


class UploadService:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def _new_document_path(self) -> Path:
        self.settings.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
        return self.settings.UPLOAD_DIR / uuid.uuid4().hex

    async def store_upload(self, file: UploadFile | None) -> Path:
        """Stream an uploaded PDF to disk, enforcing size, signature and page limits."""
        if file is None or not file.filename:
            raise UploadMissingError("No PDF file uploaded")

        dest = self._new_document_path()
        size = 0
        try:
            with dest.open("wb") as out:
                while True:
                    chunk = await file.read(_CHUNK)
                    if not chunk:
                        break
                    if size == 0 and not looks_like_pdf(chunk):
                        raise FileValidationError(f"{file.filename}: not a PDF")
                    size += len(chunk)
                    if size > self.settings.max_upload_bytes:
                        raise PayloadTooLargeError(
                            f"{file.filename}: exceeds {self.settings.MAX_SIZE_MB} MB limit"
                        )
                    out.write(chunk)
            if size == 0:
                raise FileValidationError(f"{file.filename}: empty file")
            await asyncio.to_thread(self._check_pages, dest, file.filename)
        except Exception:
            dest.unlink(missing_ok=True)
            raise
        finally:
            await file.close()

        logger.info("Stored upload %s (%d bytes) as %s", file.filename, size, dest.name)
        return dest

    def store_local_copy(self, source: Path) -> Path:
        """Copy a local PDF into the upload area so the pipeline never deletes the caller's file."""
        if not source.is_file():
            raise UploadMissingError(f"No such file: {source}")
        if source.stat().st_size > self.settings.max_upload_bytes:
            raise PayloadTooLargeError(f"{source.name}: exceeds {self.settings.MAX_SIZE_MB} MB limit")
        with source.open("rb") as fh:
            if not looks_like_pdf(fh.read(len(b"%PDF-") + 16)):
                raise FileValidationError(f"{source.name}: not a PDF")
        dest = self._new_document_path()
        shutil.copyfile(source, dest)
        try:
            self._check_pages(dest, source.name)
        except Exception:
            dest.unlink(missing_ok=True)
            raise
        return dest

    def _check_pages(self, path: Path, filename: str) -> int:
        pages = count_pdf_pages(path)
        if pages > self.settings.MAX_PAGES:
            raise FileValidationError(f"{filename}: {pages} pages exceeds limit of {self.settings.MAX_PAGES}")
        return pages

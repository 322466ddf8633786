from __future__ import annotations

from pathlib import Path

from pypdf import PdfReader

from ..exceptions import FileValidationError

PDF_MAGIC = b"%PDF-"


def looks_like_pdf(head: bytes) -> bool:
    """Cheap signature check on the first bytes of an upload."""
    return head.lstrip()[: len(PDF_MAGIC)] == PDF_MAGIC


def count_pdf_pages(path: Path) -> int:
    """Count pages of a PDF on disk.

    Raises FileValidationError on invalid or unreadable PDFs.
    """
    try:
        reader = PdfReader(str(path))
        return len(reader.pages)
    except Exception as exc:  # noqa: BLE001 broad, returns user error
        raise FileValidationError("Invalid or unreadable PDF") from exc

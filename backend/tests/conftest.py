"""Shared fixtures: isolated settings, fake pdftoppm, fake page extractor."""
from __future__ import annotations

import asyncio
import io
import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
from PIL import Image
from pypdf import PdfWriter

from app.config import Settings
from app.exceptions import ExtractionFailedError
from app.services import rasterizer as rasterizer_module
from app.services.rasterizer import PageImage


@pytest.fixture
def make_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Callable[..., Settings]:
    """Build a Settings object from a clean environment plus overrides."""

    def _make(**env: str) -> Settings:
        base = {
            "UPLOAD_DIR": str(tmp_path / "uploads"),
            "RETENTION_LOOP_ENABLE": "false",
            "LLM_PROVIDER": "openai",
            "OPENAI_API_KEY": "test-key",
            "GEMINI_API_KEY": "test-gemini-key",
            "PAGE_ERROR_POLICY": "abort",
            "VALIDATE_RECORDS": "false",
            "IMAGE_RECOMPRESS": "false",
            "EXTRACT_CONCURRENCY": "4",
            "DEFAULT_DOCUMENT_CLASS": "bank_statement",
        }
        base.update(env)
        for key, value in base.items():
            monkeypatch.setenv(key, value)
        settings = Settings()
        settings.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
        return settings

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


def jpeg_bytes(width: int = 200, height: int = 100, color: str = "white") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="JPEG")
    return buffer.getvalue()


def pdf_bytes(pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def write_document(settings: Settings, name: str = "doc-0001", pages: int = 1) -> Path:
    path = settings.UPLOAD_DIR / name
    path.write_bytes(pdf_bytes(pages))
    return path


class FakePdftoppm:
    """Stands in for subprocess.run(pdftoppm ...): writes `<prefix>-NN.jpg` files."""

    def __init__(
        self,
        pages: int = 3,
        returncode: int = 0,
        stderr: bytes = b"",
        pad: bool = True,
        broken_pages: Optional[set] = None,
    ) -> None:
        self.pages = pages
        self.returncode = returncode
        self.stderr = stderr
        self.pad = pad
        self.broken_pages = broken_pages or set()
        self.calls: List[List[str]] = []

    def __call__(self, cmd, capture_output=False, timeout=None, check=False):
        self.calls.append(list(cmd))
        if self.returncode == 0:
            prefix = cmd[-1]
            width = len(str(self.pages)) if self.pad else 1
            for n in range(1, self.pages + 1):
                data = b"not an image" if n in self.broken_pages else jpeg_bytes()
                Path(f"{prefix}-{n:0{width}d}.jpg").write_bytes(data)
        return subprocess.CompletedProcess(cmd, self.returncode, b"", self.stderr)


@pytest.fixture
def fake_pdftoppm(monkeypatch: pytest.MonkeyPatch) -> Callable[..., FakePdftoppm]:
    def _install(**kwargs) -> FakePdftoppm:
        fake = FakePdftoppm(**kwargs)
        monkeypatch.setattr(rasterizer_module.subprocess, "run", fake)
        return fake

    return _install


class FakeExtractor:
    """Returns canned replies per page index, optionally with per-page delays or failures."""

    def __init__(
        self,
        replies: Dict[int, str] | Callable[[int], str],
        *,
        delays: Optional[Dict[int, float]] = None,
        fail_pages: Optional[set] = None,
    ) -> None:
        self.replies = replies
        self.delays = delays or {}
        self.fail_pages = fail_pages or set()
        self.prompts: List[str] = []
        self.completed: List[int] = []

    async def extract(self, page: PageImage, prompt: str) -> str:
        self.prompts.append(prompt)
        assert page.path.exists()
        await asyncio.sleep(self.delays.get(page.index, 0))
        if page.index in self.fail_pages:
            raise ExtractionFailedError(f"boom on page {page.index + 1}")
        self.completed.append(page.index)
        if callable(self.replies):
            return self.replies(page.index)
        return self.replies[page.index]


class RecordingLLM:
    """Stands in for LLMService: records each call and returns one canned reply."""

    provider = "fake"

    def __init__(self, reply: str = "{}") -> None:
        self.reply = reply
        self.calls: List[tuple] = []

    async def complete_with_image(self, prompt: str, image: bytes, mime_type: str = "image/jpeg") -> str:
        self.calls.append((prompt, image, mime_type))
        return self.reply

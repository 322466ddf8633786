"""Rasterizer: converts a PDF into one JPEG per page using poppler's `pdftoppm`.

pdftoppm writes `<prefix>-<n>.jpg` with the page number zero-padded to the
width of the page count, so listing the output directory and sorting by the
numeric suffix recovers page order.
"""
from __future__ import annotations

import asyncio
import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List

from ..config import Settings, get_settings
from ..exceptions import ConversionFailedError

logger = logging.getLogger(__name__)

PAGE_PREFIX = "page"
PAGE_SUFFIX = ".jpg"
_PAGE_RE = re.compile(rf"^{PAGE_PREFIX}-(\d+){re.escape(PAGE_SUFFIX)}$")


@dataclass(frozen=True)
class PageImage:
    index: int  # 0-based, from the sorted listing
    path: Path

    @property
    def mime_type(self) -> str:
        return "image/jpeg"

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


def list_page_images(output_dir: Path) -> List[PageImage]:
    """Return the page images in `output_dir`, ordered by their page-number suffix."""
    numbered = []
    for entry in output_dir.iterdir():
        m = _PAGE_RE.match(entry.name)
        if m and entry.is_file():
            numbered.append((int(m.group(1)), entry.name, entry))
    numbered.sort()
    return [PageImage(index=i, path=p) for i, (_, _, p) in enumerate(numbered)]


class RasterizerService:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def build_command(self, document_path: Path, output_dir: Path) -> List[str]:
        return [
            self.settings.PDFTOPPM_BIN,
            "-jpeg",
            "-scale-to",
            str(self.settings.RASTER_MAX_DIM),
            str(document_path),
            str(output_dir / PAGE_PREFIX),
        ]

    async def rasterize(self, document_path: Path, output_dir: Path) -> List[PageImage]:
        """Rasterize every page of `document_path` into `output_dir`.

        Raises ConversionFailedError when the tool is missing, times out, exits
        nonzero, or produces no pages.
        """
        cmd = self.build_command(document_path, output_dir)
        try:
            proc = await asyncio.to_thread(
                subprocess.run,
                cmd,
                capture_output=True,
                timeout=self.settings.RASTER_TIMEOUT_S,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ConversionFailedError(f"Rasterizer not found: {cmd[0]}") from exc
        except subprocess.TimeoutExpired as exc:
            raise ConversionFailedError(
                f"Rasterizer timed out after {self.settings.RASTER_TIMEOUT_S:g}s"
            ) from exc

        if proc.returncode != 0:
            stderr = (proc.stderr or b"").decode("utf-8", errors="replace").strip()
            raise ConversionFailedError(f"Rasterizer exited with status {proc.returncode}: {stderr[:500]}")

        pages = list_page_images(output_dir)
        if not pages:
            raise ConversionFailedError("Rasterizer produced no pages")
        logger.info("PDF converted to %d page image(s) in %s", len(pages), output_dir.name)
        return pages

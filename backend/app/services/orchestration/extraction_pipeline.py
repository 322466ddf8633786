from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from ...config import Settings, get_settings
from ...document_classes import DocumentClass, get_document_class
from ...exceptions import ExtractionFailedError, PipelineError
from ...pipeline.recovery import is_fallback_record, recover_record
from ...pipeline.validation import validate_record
from ..extractor import PageExtractor
from ..rasterizer import PageImage, RasterizerService
from ..workspace import RunWorkspace

logger = logging.getLogger(__name__)

EXTRACTION_FAILED_ERROR = "Extraction failed"


class RunState(str, Enum):
    RECEIVED = "received"
    RASTERIZING = "rasterizing"
    EXTRACTING = "extracting"
    ASSEMBLING = "assembling"
    RESPONDING = "responding"
    FAILED = "failed"


class ExtractionPipelineService:
    """Owns one document's run: rasterize, extract every page, recover records, clean up.

    Each run works in its own RunWorkspace, so the uploaded document and all
    page images are gone when run() returns or raises.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        rasterizer: Optional[RasterizerService] = None,
        extractor: Optional[PageExtractor] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.rasterizer = rasterizer or RasterizerService(self.settings)
        self.extractor = extractor or PageExtractor(self.settings)

    async def run(self, document_path: Path, document_class: str | None = None) -> List[Any]:
        """Return one record per page of `document_path`, in page order.

        Raises PipelineError subclasses (ConversionFailedError, ExtractionFailedError)
        on fatal conditions; cleanup has happened by the time they propagate.
        """
        async with RunWorkspace(Path(document_path)) as ws:
            run_id = ws.run_id
            self._enter(run_id, RunState.RECEIVED)
            try:
                doc_class = get_document_class(document_class or self.settings.DEFAULT_DOCUMENT_CLASS)

                self._enter(run_id, RunState.RASTERIZING)
                pages = await self.rasterizer.rasterize(ws.document_path, ws.output_dir)

                self._enter(run_id, RunState.EXTRACTING, pages=len(pages), document_class=doc_class.name)
                records = await self._extract_all(run_id, pages, doc_class)
            except PipelineError as exc:
                self._enter(run_id, RunState.FAILED, error=str(exc))
                raise

            self._enter(run_id, RunState.ASSEMBLING)
            fallbacks = sum(1 for r in records if is_fallback_record(r))
            if fallbacks:
                logger.warning("[%s] %d of %d page(s) fell back to raw text", run_id, fallbacks, len(records))
            self._enter(run_id, RunState.RESPONDING, records=len(records))
            return records

    async def _extract_all(self, run_id: str, pages: List[PageImage], doc_class: DocumentClass) -> List[Any]:
        records: List[Any] = [None] * len(pages)
        sem = asyncio.Semaphore(self.settings.EXTRACT_CONCURRENCY)

        async def _one(page: PageImage) -> None:
            async with sem:
                # Placed by page index, never by completion order
                records[page.index] = await self._extract_page(run_id, page, doc_class)

        tasks = [asyncio.create_task(_one(p)) for p in pages]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return records

    async def _extract_page(self, run_id: str, page: PageImage, doc_class: DocumentClass) -> Any:
        try:
            raw = await self.extractor.extract(page, doc_class.prompt)
        except ExtractionFailedError as exc:
            if self.settings.PAGE_ERROR_POLICY != "isolate":
                logger.error("[%s] page %d: %s", run_id, page.index + 1, exc)
                raise
            logger.warning("[%s] page %d isolated after extraction error: %s", run_id, page.index + 1, exc)
            return {"error": EXTRACTION_FAILED_ERROR, "raw": "", "detail": str(exc)}

        record = recover_record(raw)
        if is_fallback_record(record):
            logger.warning("[%s] page %d: no JSON recovered (%d chars)", run_id, page.index + 1, len(raw))
        elif self.settings.VALIDATE_RECORDS:
            record = validate_record(record, doc_class)
        return record

    @staticmethod
    def _enter(run_id: str, state: RunState, **details: Any) -> None:
        if details:
            extra = " ".join(f"{k}={v}" for k, v in details.items())
            logger.info("[%s] state=%s %s", run_id, state.value, extra)
        else:
            logger.info("[%s] state=%s", run_id, state.value)

"""Extraction router: accept one PDF and return one structured record per page.

Thin HTTP layer; the upload collaborator stores the file and the pipeline
owns it from there (including deleting it). Domain exceptions are turned into
JSON error bodies by the handlers registered in main.py.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, UploadFile

from ..deps import get_document_class_name, get_pipeline, get_upload_service
from ..models import ErrorResponse, ExtractResponse
from ..services.orchestration.extraction_pipeline import ExtractionPipelineService
from ..services.uploads import UploadService

router = APIRouter(tags=["extract"])
logger = logging.getLogger(__name__)


@router.post(
    "/upload",
    response_model=ExtractResponse,
    responses={500: {"model": ErrorResponse}, 400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}},
)
async def upload_document(
    pdf: UploadFile | None = File(default=None, description="PDF document to extract"),
    document_class: str = Depends(get_document_class_name),
    uploads: UploadService = Depends(get_upload_service),
    pipeline: ExtractionPipelineService = Depends(get_pipeline),
) -> ExtractResponse:
    """Rasterize the PDF, extract each page with the vision model and return the records."""
    document_path = await uploads.store_upload(pdf)
    records = await pipeline.run(document_path, document_class)
    return ExtractResponse(extracted=records)

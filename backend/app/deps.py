"""FastAPI dependencies (pipeline wiring, document class selection)."""
from __future__ import annotations

from functools import lru_cache

from fastapi import Query

from .config import get_settings
from .document_classes import get_document_class
from .services.orchestration.extraction_pipeline import ExtractionPipelineService
from .services.uploads import UploadService


@lru_cache(maxsize=1)
def get_pipeline() -> ExtractionPipelineService:
    """Pipeline built once from the process settings; tests override this dependency."""
    return ExtractionPipelineService(get_settings())


@lru_cache(maxsize=1)
def get_upload_service() -> UploadService:
    return UploadService(get_settings())


def get_document_class_name(
    document_class: str | None = Query(default=None, description="Document class; defaults to DEFAULT_DOCUMENT_CLASS"),
) -> str:
    """Resolve and validate the requested document class before the upload is stored.

    Unknown names raise UnknownDocumentClassError (HTTP 400).
    """
    name = document_class or get_settings().DEFAULT_DOCUMENT_CLASS
    return get_document_class(name).name

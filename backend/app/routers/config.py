"""Runtime config endpoint for frontend consumption."""
from __future__ import annotations

from fastapi import APIRouter

from ..config import get_settings
from ..document_classes import available_document_classes
from ..models import Limits

router = APIRouter(tags=["config"])


@router.get("/config")
async def get_config() -> dict:
    """Expose non-sensitive runtime limits, accepted MIME types and document classes."""
    settings = get_settings()
    limits = Limits(
        maxSizeMb=settings.MAX_SIZE_MB,
        maxPages=settings.MAX_PAGES,
        maxImageDim=settings.RASTER_MAX_DIM,
    )
    return {
        "limits": limits.model_dump(),
        "acceptedMime": settings.ACCEPTED_MIME,
        "documentClasses": available_document_classes(),
        "defaultDocumentClass": settings.DEFAULT_DOCUMENT_CLASS,
    }

"""Health and readiness endpoints."""
from __future__ import annotations

import shutil
from datetime import datetime, timezone
from fastapi import APIRouter

from ..config import get_settings

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict:
    """Liveness probe; also reports whether the rasterizer binary is on PATH."""
    settings = get_settings()
    return {
        "status": "ok",
        "time": datetime.now(timezone.utc).isoformat(),
        "rasterizer": shutil.which(settings.PDFTOPPM_BIN) is not None,
    }

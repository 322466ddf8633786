"""Application settings and configuration helpers."""
from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import List
from dotenv import load_dotenv, find_dotenv


class Settings:
    """Runtime configuration loaded from environment variables.

    Defaults are suitable for local development. Production should set
    explicit values via environment variables.
    """

    APP_NAME: str = "Page Extraction API"
    API_PREFIX: str

    # CORS
    CORS_ORIGINS: List[str]

    LOG_LEVEL: str

    # Uploads
    UPLOAD_DIR: Path
    MAX_SIZE_MB: int
    MAX_PAGES: int
    ACCEPTED_MIME: List[str]

    # Rasterization
    PDFTOPPM_BIN: str
    RASTER_MAX_DIM: int
    RASTER_TIMEOUT_S: float

    # LLM
    LLM_PROVIDER: str  # "openai" (any chat-completions compatible API) or "gemini"
    OPENAI_API_KEY: str
    OPENAI_BASE_URL: str
    OPENAI_MODEL: str
    GEMINI_API_KEY: str
    GEMINI_MODEL: str
    LLM_MAX_OUTPUT_TOKENS: int
    LLM_TIMEOUT_S: float

    # Image recompression before upload to the model
    IMAGE_RECOMPRESS: bool
    IMAGE_MAX_WIDTH: int
    IMAGE_JPEG_QUALITY: int

    # Pipeline
    EXTRACT_CONCURRENCY: int
    PAGE_ERROR_POLICY: str  # "abort" or "isolate"
    DEFAULT_DOCUMENT_CLASS: str
    VALIDATE_RECORDS: bool

    # Retention
    RETENTION_LOOP_ENABLE: bool
    RETENTION_MINUTES: int
    RETENTION_LOOP_INTERVAL_MIN: int

    def __init__(self) -> None:
        # Load .env once (supports parent directories)
        load_dotenv(find_dotenv(), override=False)
        self.API_PREFIX = os.getenv("API_PREFIX", "/api")
        self.CORS_ORIGINS = self._get_list("CORS_ORIGINS", default="*")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

        self.UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", "uploads"))
        self.MAX_SIZE_MB = int(os.getenv("MAX_SIZE_MB", "20"))
        self.MAX_PAGES = int(os.getenv("MAX_PAGES", "50"))
        self.ACCEPTED_MIME = ["application/pdf"]

        self.PDFTOPPM_BIN = os.getenv("PDFTOPPM_BIN", "pdftoppm")
        self.RASTER_MAX_DIM = int(os.getenv("RASTER_MAX_DIM", "1024"))
        self.RASTER_TIMEOUT_S = float(os.getenv("RASTER_TIMEOUT_S", "120"))

        self.LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai").strip().lower()
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
        self.OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
        self.OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")
        self.GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
        self.GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
        # Clamp to a reasonable range to avoid provider errors
        self.LLM_MAX_OUTPUT_TOKENS = max(256, min(8192, int(os.getenv("LLM_MAX_OUTPUT_TOKENS", "1500"))))
        self.LLM_TIMEOUT_S = float(os.getenv("LLM_TIMEOUT_S", "60"))

        self.IMAGE_RECOMPRESS = os.getenv("IMAGE_RECOMPRESS", "false").lower() == "true"
        self.IMAGE_MAX_WIDTH = int(os.getenv("IMAGE_MAX_WIDTH", "1024"))
        self.IMAGE_JPEG_QUALITY = max(10, min(95, int(os.getenv("IMAGE_JPEG_QUALITY", "70"))))

        self.EXTRACT_CONCURRENCY = max(1, int(os.getenv("EXTRACT_CONCURRENCY", "4")))
        self.PAGE_ERROR_POLICY = os.getenv("PAGE_ERROR_POLICY", "abort").strip().lower()
        self.DEFAULT_DOCUMENT_CLASS = os.getenv("DEFAULT_DOCUMENT_CLASS", "bank_statement")
        self.VALIDATE_RECORDS = os.getenv("VALIDATE_RECORDS", "false").lower() == "true"

        # Retention: sweeps leftovers of runs interrupted by a crash. Runs in flight in this
        # process are never swept; with several worker processes sharing UPLOAD_DIR, keep
        # RETENTION_MINUTES above the longest expected run.
        self.RETENTION_LOOP_ENABLE = os.getenv("RETENTION_LOOP_ENABLE", "true").lower() == "true"
        self.RETENTION_MINUTES = int(os.getenv("RETENTION_MINUTES", "60"))
        self.RETENTION_LOOP_INTERVAL_MIN = int(os.getenv("RETENTION_LOOP_INTERVAL_MIN", "15"))

    @property
    def max_upload_bytes(self) -> int:
        return self.MAX_SIZE_MB * 1024 * 1024

    @staticmethod
    def _get_list(name: str, default: str = "") -> List[str]:
        raw = os.getenv(name, default)
        return [item.strip() for item in raw.split(",") if item.strip()] or ["*"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()

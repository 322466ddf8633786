from __future__ import annotations

"""Domain-specific exceptions for service and orchestration layers.

The application registers exception handlers (see main.py) that translate
these into JSON error responses.
"""


class FileValidationError(Exception):
    """Invalid file input (not a PDF, unreadable, pages exceeded, etc.) (maps to HTTP 400)."""


class PayloadTooLargeError(Exception):
    """Payload exceeds configured size limits (maps to HTTP 413)."""


class UnknownDocumentClassError(Exception):
    """Requested document class has no registered prompt/schema (maps to HTTP 400)."""


class PipelineError(Exception):
    """Fatal condition that aborts a run (maps to HTTP 500)."""


class UploadMissingError(PipelineError):
    """No document was supplied with the request."""


class ConversionFailedError(PipelineError):
    """Rasterization tool failed or produced no pages."""


class ExtractionFailedError(PipelineError):
    """Model call failed for a page (network, HTTP status, malformed envelope)."""

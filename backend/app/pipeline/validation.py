from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from ..document_classes import DocumentClass
from .recovery import is_fallback_record

logger = logging.getLogger(__name__)


def validate_record(record: Any, document_class: DocumentClass) -> Any:
    """Coerce a recovered record into the document class schema.

    Returns the normalized record when it validates. Records that do not match
    the schema, and fallback records, are returned untouched so the caller
    still sees what the model produced.
    """
    if not isinstance(record, dict) or is_fallback_record(record) or "error" in record:
        return record
    try:
        model = document_class.schema.model_validate(record)
    except ValidationError as exc:
        try:
            err_details = exc.errors(include_url=False)
        except Exception:
            err_details = []
        logger.warning(
            "Record does not match %s schema; keeping it as recovered | details=%s",
            document_class.name,
            err_details,
        )
        return record
    return model.model_dump(mode="json")

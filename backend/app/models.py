"""Pydantic models for API responses and per-document-class page schemas."""
from __future__ import annotations

from typing import Any, List, Optional
import re
from pydantic import BaseModel, Field, field_validator


class Limits(BaseModel):
    """Runtime limits exposed to the frontend."""

    maxSizeMb: int = Field(..., description="Maximum upload size in MB")
    maxPages: int = Field(..., description="Maximum pages per PDF")
    maxImageDim: int = Field(..., description="Long edge of rasterized pages in pixels")


class ExtractResponse(BaseModel):
    """Successful extraction: one record per page, in page order."""

    extracted: List[Any]


class ErrorResponse(BaseModel):
    error: str


# --- Bank statement ---


class StatementMeta(BaseModel):
    month: Optional[str] = None
    year: Optional[str] = None


class Transaction(BaseModel):
    """A single statement line; amounts are kept as printed (e.g. "1.769,87CR")."""

    date: str
    description: str = ""
    debit: str = ""
    credit: str = ""
    balance: str = ""


class BankStatementPage(BaseModel):
    meta: StatementMeta = Field(default_factory=StatementMeta)
    transactions: List[Transaction] = Field(default_factory=list)


# --- Invoice ---


def parse_number(val: Any) -> float:
    """Parse numbers from mixed-locale strings.

    Accepts strings like "€ 1.234,56", "1,234.56", "1234.56", "2x", "2 pcs".
    Strategy:
    - Strip currency symbols and letters, keep digits, separators (., ,), minus, and parentheses.
    - Detect decimal separator by the rightmost of ',' or '.'. Treat the other as thousand sep and remove.
    - Support negatives in parentheses, e.g., (123.45) -> -123.45.
    """
    if val is None:
        raise ValueError("empty number")
    if isinstance(val, (int, float)):
        return float(val)
    s = str(val).strip()
    if not s:
        raise ValueError("empty number")
    neg = False
    if s.startswith("(") and s.endswith(")"):
        neg = True
        s = s[1:-1]
    s = re.sub(r"[^0-9,\.\-]", "", s)
    last_comma = s.rfind(",")
    last_dot = s.rfind(".")
    if last_comma == -1 and last_dot == -1:
        num = float(s or 0)
    elif last_comma > last_dot:
        num = float(s.replace(".", "").replace(",", "."))
    else:
        num = float(s.replace(",", ""))
    return -num if neg else num


class InvoiceLineItem(BaseModel):
    description: str
    quantity: Optional[float] = None
    unitPrice: Optional[float] = None
    lineTotal: Optional[float] = None

    @field_validator("quantity", "unitPrice", "lineTotal", mode="before")
    @classmethod
    def _numbers(cls, v: Any) -> Optional[float]:
        if v is None or v == "":
            return None
        return parse_number(v)


class InvoicePage(BaseModel):
    """Invoice fields visible on one page; any of them may be absent on continuation pages."""

    invoiceNumber: Optional[str] = None
    invoiceDate: Optional[str] = None
    vendorName: Optional[str] = None
    currency: Optional[str] = None
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    total: Optional[float] = None
    dueDate: Optional[str] = None
    lineItems: List[InvoiceLineItem] = Field(default_factory=list)
    notes: Optional[str] = None

    @field_validator("subtotal", "tax", "total", mode="before")
    @classmethod
    def _numbers(cls, v: Any) -> Optional[float]:
        if v is None or v == "":
            return None
        return parse_number(v)

    @field_validator("currency", mode="before")
    @classmethod
    def _currency(cls, v: Any) -> Optional[str]:
        return str(v).strip().upper() if v else None


# --- Resume ---


class ResumeExperience(BaseModel):
    title: Optional[str] = None
    company: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    description: Optional[str] = None


class ResumeEducation(BaseModel):
    degree: Optional[str] = None
    institution: Optional[str] = None
    year: Optional[str] = None


class ResumePage(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    experience: List[ResumeExperience] = Field(default_factory=list)
    education: List[ResumeEducation] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)

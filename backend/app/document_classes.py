"""Document classes: the prompt template and page schema used per kind of document.

A deployment picks the class per request (or falls back to
DEFAULT_DOCUMENT_CLASS). New classes are added to DOCUMENT_CLASSES without
changes elsewhere.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Type

from pydantic import BaseModel

from .exceptions import UnknownDocumentClassError
from .models import BankStatementPage, InvoicePage, ResumePage


@dataclass(frozen=True)
class DocumentClass:
    name: str
    prompt: str
    schema: Type[BaseModel]


BANK_STATEMENT_PROMPT = (
    """You are a financial assistant helping parse a bank statement.
Extract all bank transactions from this image.

Each transaction:
- may span 2-3 lines (e.g., card number, extra notes),
- must include ALL description lines as one "description" field,
- may include either a debit or credit (not both),
- has a final balance (like "1.769,87CR").

Also extract the statement's month and year from the top of the page.

Return only a valid JSON object like this:
{
  "meta": {
    "month": "February",
    "year": "2024"
  },
  "transactions": [
    {
      "date": "13/02",
      "description": "Card payment USD ************7386 gift card 10 dollars",
      "debit": "18,20",
      "credit": "",
      "balance": "1.109,11CR"
    }
  ]
}"""
)

INVOICE_PROMPT = (
    """You are a highly accurate invoice data extraction engine.
The image is one page of an invoice, in English or Dutch (Nederlands).

Return only a valid JSON object with these fields (use null when a field is
not visible on this page):
{
  "invoiceNumber": "string",
  "invoiceDate": "YYYY-MM-DD",
  "vendorName": "string",          // the company that SENT the invoice
  "currency": "string",            // 3-letter ISO code, e.g. "EUR"
  "subtotal": number,
  "tax": number,                   // VAT/BTW
  "total": number,
  "dueDate": "YYYY-MM-DD | null",
  "lineItems": [
    {"description": "string", "quantity": number, "unitPrice": number, "lineTotal": number}
  ],
  "notes": "string | null"
}

Numbers must be plain numbers (e.g. 1234.56) without currency symbols or
thousands separators. Ignore "Subtotal" or "Discount" rows in lineItems."""
)

RESUME_PROMPT = (
    """You are an assistant that reads one page of a resume (CV).
Extract the candidate's details visible on this page.

Return only a valid JSON object like this (empty lists when nothing is visible):
{
  "name": "Jane Doe",
  "email": "jane@example.com",
  "phone": "+1 555 0100",
  "experience": [
    {"title": "Engineer", "company": "Acme", "start": "2019", "end": "2023", "description": "..."}
  ],
  "education": [
    {"degree": "BSc Computer Science", "institution": "Some University", "year": "2018"}
  ],
  "skills": ["Python", "SQL"]
}"""
)


DOCUMENT_CLASSES: Dict[str, DocumentClass] = {
    "bank_statement": DocumentClass("bank_statement", BANK_STATEMENT_PROMPT, BankStatementPage),
    "invoice": DocumentClass("invoice", INVOICE_PROMPT, InvoicePage),
    "resume": DocumentClass("resume", RESUME_PROMPT, ResumePage),
}


def get_document_class(name: str) -> DocumentClass:
    try:
        return DOCUMENT_CLASSES[name]
    except KeyError:
        raise UnknownDocumentClassError(
            f"Unknown document class '{name}'; expected one of: {', '.join(available_document_classes())}"
        ) from None


def available_document_classes() -> List[str]:
    return sorted(DOCUMENT_CLASSES)

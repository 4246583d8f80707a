"""Plain-text extraction from PDF tax notifications."""
from __future__ import annotations

import logging
import os
from pathlib import Path

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)


def extract_text_from_pdf(pdf_path: str | os.PathLike[str]) -> str:
    """Return the concatenated text of every page, separated by blank lines."""

    path = Path(pdf_path)
    if not path.exists():
        raise FileNotFoundError(f"PDF not found: {path}")

    logger.info("Extracting text from PDF: %s", path)
    pages = []
    with fitz.open(path) as document:
        for page in document:
            pages.append(page.get_text("text").strip())
    text = "\n\n".join(page for page in pages if page)
    logger.info("Extracted %s characters from %s page(s)", len(text), len(pages))
    return text


def read_document_text(path: str | os.PathLike[str]) -> str:
    """Read a notification from disk: PDFs through PyMuPDF, anything else as UTF-8 text."""

    path = Path(path)
    if path.suffix.lower() == ".pdf":
        return extract_text_from_pdf(path)
    return path.read_text(encoding="utf-8")


__all__ = ["extract_text_from_pdf", "read_document_text"]

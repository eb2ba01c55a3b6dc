"""
Text Extractors
===============

Plain-text extraction per declared file kind.

- txt / md: UTF-8 decode (a leading BOM is dropped)
- pdf: pypdf, one text block per page
- docx: python-docx paragraphs

Parsing runs in a worker thread. Any parser failure is raised as
ExtractionException.
"""

import asyncio
import io
from typing import List

import docx
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from src.config import FileKind, settings
from src.core import ExtractionException
from src.ingestion.application.services import ITextExtractor
from src.ingestion.domain import ExtractedText, estimate_pages
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def extract_plain_text(data: bytes) -> ExtractedText:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ExtractionException(f"File is not valid UTF-8 text: {e}")
    return ExtractedText(text=text, page_count=1)


def extract_pdf_text(data: bytes) -> ExtractedText:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages: List[str] = [(page.extract_text() or "").strip() for page in reader.pages]
    except (PyPdfError, ValueError, KeyError, TypeError) as e:
        raise ExtractionException(f"Failed to parse PDF: {e}")
    return ExtractedText(
        text="\n\n".join(p for p in pages if p),
        page_count=max(1, len(pages))
    )


def extract_docx_text(data: bytes, chars_per_page: int) -> ExtractedText:
    try:
        document = docx.Document(io.BytesIO(data))
    except Exception as e:
        # python-docx surfaces zip, xml and key errors for corrupt files
        raise ExtractionException(f"Failed to parse DOCX: {e}")
    paragraphs = [p.text.strip() for p in document.paragraphs]
    text = "\n\n".join(p for p in paragraphs if p)
    return ExtractedText(text=text, page_count=estimate_pages(text, chars_per_page))


class TextExtractor(ITextExtractor):
    """Dispatches extraction on the declared file kind."""

    def __init__(self, chars_per_page: int = 0):
        self._chars_per_page = chars_per_page or settings.chars_per_page

    async def extract(self, data: bytes, file_kind: FileKind) -> ExtractedText:
        if file_kind in (FileKind.TXT, FileKind.MD):
            extracted = extract_plain_text(data)
        elif file_kind == FileKind.PDF:
            extracted = await asyncio.to_thread(extract_pdf_text, data)
        elif file_kind == FileKind.DOCX:
            extracted = await asyncio.to_thread(extract_docx_text, data, self._chars_per_page)
        else:
            raise ExtractionException(f"Unsupported file type: {file_kind}")

        logger.debug(
            "Text extracted",
            extra={
                "file_kind": file_kind.value,
                "chars": len(extracted.text),
                "pages": extracted.page_count
            }
        )
        return extracted

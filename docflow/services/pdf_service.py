"""
PDF page extraction for email attachments.

Pages are copied object-for-object into a new document, never re-rendered,
so text and vector content survive unchanged.
"""
import base64
import binascii
import io
import logging

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError

from docflow.flow_engine.exceptions import ValidationError

logger = logging.getLogger(__name__)


def decode_pdf(pdf_base64: str) -> PdfReader:
    try:
        pdf_bytes = base64.b64decode(pdf_base64)
        return PdfReader(io.BytesIO(pdf_bytes))
    except (binascii.Error, ValueError, PdfReadError) as e:
        raise ValidationError(f"Could not read PDF: {e}")


def extract_page(pdf_base64: str, page_number: int) -> str:
    """
    Copy a single page of a PDF into a new one-page document.

    Args:
        pdf_base64: Source PDF, base64 encoded
        page_number: 1-based page to keep

    Returns:
        The one-page PDF, base64 encoded

    Raises:
        ValidationError: If the PDF cannot be read or page_number is out of range
    """
    reader = decode_pdf(pdf_base64)
    total_pages = len(reader.pages)
    logger.info(f"Extracting page {page_number} of {total_pages}")

    if page_number < 1 or page_number > total_pages:
        raise ValidationError(
            f"Invalid page number {page_number}. PDF has {total_pages} page(s). "
            f"Page number must be between 1 and {total_pages}."
        )

    writer = PdfWriter()
    writer.add_page(reader.pages[page_number - 1])

    output = io.BytesIO()
    writer.write(output)
    pdf_bytes = output.getvalue()
    logger.debug(f"Single page PDF created, size: {len(pdf_bytes)} bytes")

    return base64.b64encode(pdf_bytes).decode('ascii')

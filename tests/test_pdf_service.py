"""
Tests for PDF page extraction
"""

import base64
import io

import pytest
from pypdf import PdfReader

from docflow.flow_engine.exceptions import ValidationError
from docflow.services.pdf_service import extract_page
from tests.conftest import make_pdf


def read(pdf_base64):
    return PdfReader(io.BytesIO(base64.b64decode(pdf_base64)))


class TestExtractPage:
    """Single-page extraction"""

    def test_extracts_requested_page(self):
        source = make_pdf(3)

        single = read(extract_page(source, 2))

        assert len(single.pages) == 1
        # make_pdf gives page N a height of 100 + N
        assert float(single.pages[0].mediabox.height) == 102

    def test_first_and_last_page(self):
        source = make_pdf(2)
        assert float(read(extract_page(source, 1)).pages[0].mediabox.height) == 101
        assert float(read(extract_page(source, 2)).pages[0].mediabox.height) == 102

    @pytest.mark.parametrize('page_number', [0, 4, -1])
    def test_out_of_range(self, page_number):
        with pytest.raises(ValidationError) as exc:
            extract_page(make_pdf(3), page_number)
        assert 'must be between 1 and 3' in str(exc.value)

    def test_unreadable_pdf(self):
        with pytest.raises(ValidationError):
            extract_page(base64.b64encode(b'not a pdf').decode(), 1)

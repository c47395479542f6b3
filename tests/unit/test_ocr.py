"""
Unit Tests for PDF text extraction

PDFs are generated with PyMuPDF; the vision API client is mocked.
"""

import fitz
import pytest
import sys
import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "socratic_science_tutor", "src"))

from socratic_science_tutor.errors import CredentialError
from socratic_science_tutor.ocr import (
    MAX_PDF_SIZE_BYTES,
    PAGE_SEPARATOR,
    PdfTextExtractor,
    format_file_size,
    render_pdf_pages,
    validate_pdf,
)


def make_pdf(pages):
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page()
        page.insert_text((72, 72), f"Page {i + 1}: plants make food from sunlight")
    data = doc.tobytes()
    doc.close()
    return data


def vision_reply(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


class TestValidation:

    def test_rejects_non_pdf_name(self):
        with pytest.raises(ValueError, match="PDF"):
            validate_pdf(b"%PDF", "notes.docx")

    def test_rejects_empty(self):
        with pytest.raises(ValueError):
            validate_pdf(b"", "notes.pdf")

    def test_rejects_oversized(self):
        with pytest.raises(ValueError, match="20.0 MB"):
            validate_pdf(b"x" * (MAX_PDF_SIZE_BYTES + 1), "big.PDF")

    @pytest.mark.parametrize("size,expected", [(512, "512 B"), (2048, "2.0 KB"), (3 * 1024 * 1024, "3.0 MB")])
    def test_format_file_size(self, size, expected):
        assert format_file_size(size) == expected


class TestRendering:

    def test_renders_png_per_page(self):
        total, images = render_pdf_pages(make_pdf(3))

        assert total == 3
        assert len(images) == 3
        assert all(img.startswith(b"\x89PNG") for img in images)

    def test_page_cap(self):
        total, images = render_pdf_pages(make_pdf(4), max_pages=2, scale=0.5)

        assert total == 4
        assert len(images) == 2

    def test_unreadable_pdf(self):
        with pytest.raises(ValueError):
            render_pdf_pages(b"this is not a pdf")


class TestPdfTextExtractor:
    """Test suite for PdfTextExtractor."""

    @pytest.mark.asyncio
    async def test_extract_joins_pages_and_reports_progress(self):
        progress = []
        with patch("socratic_science_tutor.ocr.AsyncOpenAI") as client_cls:
            create = AsyncMock(side_effect=[vision_reply("# Page one"), vision_reply("# Page two")])
            client_cls.return_value.chat.completions.create = create
            extractor = PdfTextExtractor(api_key="sk-test", model="vision-test")

            text = await extractor.extract(make_pdf(2), "plants.pdf", on_progress=lambda n, t: progress.append((n, t)))

        assert text == f"# Page one{PAGE_SEPARATOR}# Page two"
        assert progress == [(1, 2), (2, 2)]
        kwargs = create.call_args_list[0].kwargs
        assert kwargs["model"] == "vision-test"
        assert kwargs["temperature"] == 0
        image_part = kwargs["messages"][0]["content"][1]
        assert image_part["image_url"]["url"].startswith("data:image/png;base64,")
        assert image_part["image_url"]["detail"] == "high"

    @pytest.mark.asyncio
    async def test_requires_openai_key(self):
        extractor = PdfTextExtractor(api_key="bad-key")

        with pytest.raises(CredentialError):
            await extractor.extract(make_pdf(1), "plants.pdf")

    @pytest.mark.asyncio
    async def test_invalid_upload_rejected_before_api_call(self):
        with patch("socratic_science_tutor.ocr.AsyncOpenAI") as client_cls:
            with pytest.raises(ValueError):
                await PdfTextExtractor(api_key="sk-test").extract(b"abc", "plants.txt")

        client_cls.assert_not_called()

"""
PDF Text Extraction via a Vision Model

Each PDF page is rendered to a PNG with PyMuPDF and sent to an OpenAI vision
model, which returns the page text as markdown. Used only by curriculum
administration.
"""

import os
import base64
import asyncio
import logging
from typing import Callable, List, Optional, Tuple

import fitz  # PyMuPDF
import openai
from openai import AsyncOpenAI
from dotenv import load_dotenv

from socratic_science_tutor.ai_gateway import translate_openai_error
from socratic_science_tutor.errors import CredentialError, MalformedResponseError

load_dotenv()

logger = logging.getLogger(__name__)

MAX_PDF_SIZE_BYTES = 20 * 1024 * 1024
MAX_PDF_PAGES = 20
RENDER_SCALE = 2.0
PAGE_SEPARATOR = "\n\n---\n\n"
OCR_MAX_TOKENS = 4096
DEFAULT_OCR_MODEL = "gpt-4o"

ProgressCallback = Callable[[int, int], None]


def format_file_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KB"
    return f"{num_bytes / (1024 * 1024):.1f} MB"


def validate_pdf(pdf_bytes: bytes, filename: str):
    """Raise ValueError unless this looks like an acceptable PDF upload."""
    if not filename.lower().endswith(".pdf"):
        raise ValueError("Please select a PDF file.")
    if not pdf_bytes:
        raise ValueError("The PDF file is empty.")
    if len(pdf_bytes) > MAX_PDF_SIZE_BYTES:
        raise ValueError(f"File too large. Maximum size is {format_file_size(MAX_PDF_SIZE_BYTES)}.")


def render_pdf_pages(
    pdf_bytes: bytes,
    max_pages: int = MAX_PDF_PAGES,
    scale: float = RENDER_SCALE
) -> Tuple[int, List[bytes]]:
    """
    Render the first `max_pages` pages to PNG bytes.

    Returns:
        (page count of the whole document, list of PNG images)
    """
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except RuntimeError as e:
        raise ValueError(f"Could not read PDF: {e}") from e

    with doc:
        total = doc.page_count
        matrix = fitz.Matrix(scale, scale)
        images = [doc[i].get_pixmap(matrix=matrix).tobytes("png") for i in range(min(total, max_pages))]
    return total, images


def build_page_prompt(page_num: int, total_pages: int) -> str:
    return (
        f"Extract ALL text from this PDF page image (page {page_num} of {total_pages}). "
        "Preserve the original structure, headings, lists, and formatting as much as possible using markdown. "
        "Include all text content; do not summarize or omit anything."
    )


class PdfTextExtractor:
    """Vision OCR over rendered PDF pages, one request per page."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = model or os.getenv("OCR_MODEL", DEFAULT_OCR_MODEL)
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        if not self.api_key or not self.api_key.startswith("sk-"):
            raise CredentialError("Please configure an OpenAI API key for PDF extraction.")
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key, max_retries=0)
        return self._client

    async def extract_page(self, png_bytes: bytes, page_num: int, total_pages: int) -> str:
        image_url = "data:image/png;base64," + base64.b64encode(png_bytes).decode("utf-8")
        logger.info(f"🔍 [OCR] Sending page {page_num}/{total_pages} (~{len(image_url) // 1024}KB)")

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_page_prompt(page_num, total_pages)},
                        {"type": "image_url", "image_url": {"url": image_url, "detail": "high"}},
                    ],
                }],
                max_tokens=OCR_MAX_TOKENS,
                temperature=0,
            )
        except openai.OpenAIError as e:
            raise translate_openai_error(e) from e

        try:
            return response.choices[0].message.content or ""
        except (AttributeError, IndexError) as e:
            raise MalformedResponseError("Vision response has no choices") from e

    async def extract(
        self,
        pdf_bytes: bytes,
        filename: str,
        on_progress: Optional[ProgressCallback] = None
    ) -> str:
        """
        Extract text from every page (up to MAX_PDF_PAGES).

        Raises:
            ValueError: not a PDF, too large, or unreadable
            CredentialError, TransportError: from the vision API
        """
        validate_pdf(pdf_bytes, filename)
        logger.info(f"📄 [OCR] Starting extraction for {filename}, size: {format_file_size(len(pdf_bytes))}")

        total, images = await asyncio.to_thread(render_pdf_pages, pdf_bytes)
        if total > MAX_PDF_PAGES:
            logger.warning(f"⚠️ [OCR] PDF has {total} pages, processing first {MAX_PDF_PAGES} only")

        page_texts = []
        for page_num, png in enumerate(images, start=1):
            if on_progress:
                on_progress(page_num, len(images))
            text = await self.extract_page(png, page_num, len(images))
            page_texts.append(text)
            logger.info(f"✅ [OCR] Page {page_num} extracted: {len(text)} characters")

        combined = PAGE_SEPARATOR.join(page_texts)
        logger.info(f"✅ [OCR] Total extracted text: {len(combined)} characters from {len(images)} pages")
        return combined

"""Tests for the pypdfium2-backed PdfSource."""

from __future__ import annotations

import io
from pathlib import Path

import pypdfium2 as pdfium
import pytest

from core.ingestion.extractor import extract_pages
from core.ingestion.source import PdfiumSource, PdfSource


def _make_pdf(n_pages: int = 1) -> bytes:
    """Create a minimal valid PDF with *n_pages* blank pages."""
    doc = pdfium.PdfDocument.new()
    for _ in range(n_pages):
        page = doc.new_page(612, 792)  # US Letter
        page.close()
    buf = io.BytesIO()
    doc.save(buf)
    doc.close()
    return buf.getvalue()


class TestPdfiumSource:
    def test_page_count(self):
        with PdfiumSource.from_bytes(_make_pdf(3)) as source:
            assert source.page_count == 3
            assert isinstance(source, PdfSource)

    def test_from_path_uses_file_name(self, tmp_path: Path):
        path = tmp_path / "march.pdf"
        path.write_bytes(_make_pdf(2))
        with PdfiumSource.from_path(path) as source:
            assert source.name == "march.pdf"
            assert source.page_count == 2

    def test_invalid_pdf_raises(self):
        with pytest.raises(pdfium.PdfiumError):
            PdfiumSource.from_bytes(b"not a pdf")

    @pytest.mark.asyncio
    async def test_blank_page_content(self):
        with PdfiumSource.from_bytes(_make_pdf(1)) as source:
            content = await source.get_page_content(1)
        assert content.page_number == 1
        assert content.width == pytest.approx(612)
        assert content.height == pytest.approx(792)
        assert content.items == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page_number", [0, 3])
    async def test_page_out_of_range(self, page_number):
        with PdfiumSource.from_bytes(_make_pdf(2)) as source:
            with pytest.raises(ValueError):
                await source.get_page_content(page_number)

    @pytest.mark.asyncio
    async def test_read_after_close(self):
        source = PdfiumSource.from_bytes(_make_pdf(1))
        source.close()
        with pytest.raises(RuntimeError):
            await source.get_page_content(1)

    @pytest.mark.asyncio
    async def test_concurrent_extraction(self):
        with PdfiumSource.from_bytes(_make_pdf(9)) as source:
            frags = await extract_pages(source, source.page_count, concurrency=4)
        assert frags == []

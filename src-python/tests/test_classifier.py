"""Tests for page-1 scanned vs text-based classification."""

import pytest

from core.ingestion.classifier import classify_document, classify_fragments
from models.schemas import BoundingBox, PageContent, PdfType, RawTextItem, TextFragment


def _frag(text: str) -> TextFragment:
    return TextFragment(
        text=text,
        bounding_box=BoundingBox(x=0, y=0, width=10, height=10),
        page_number=1,
    )


class _PagesSource:
    """Fake PdfSource serving fixed per-page words."""

    def __init__(self, pages: list[list[str]]):
        self._pages = pages
        self.requested: list[int] = []

    @property
    def page_count(self) -> int:
        return len(self._pages)

    async def get_page_content(self, page_number: int) -> PageContent:
        self.requested.append(page_number)
        words = self._pages[page_number - 1]
        return PageContent(
            page_number=page_number,
            width=612,
            height=792,
            items=[RawTextItem(text=w, x=0, baseline_y=700, font_size=10) for w in words],
        )


class TestClassifyFragments:
    def test_101_chars_is_text_based(self):
        assert classify_fragments([_frag("x" * 101)]) == PdfType.TEXT_BASED

    def test_100_chars_is_scanned(self):
        assert classify_fragments([_frag("x" * 100)]) == PdfType.SCANNED

    def test_surrounding_whitespace_is_trimmed(self):
        assert classify_fragments([_frag("  "), _frag("x" * 100), _frag("\n")]) == PdfType.SCANNED

    def test_fragments_are_joined_without_separator(self):
        # 51 + 50 = 101 characters once joined
        assert classify_fragments([_frag("a" * 51), _frag("b" * 50)]) == PdfType.TEXT_BASED

    def test_empty_is_scanned(self):
        assert classify_fragments([]) == PdfType.SCANNED

    def test_custom_threshold(self):
        assert classify_fragments([_frag("x" * 11)], threshold=10) == PdfType.TEXT_BASED


class TestClassifyDocument:
    @pytest.mark.asyncio
    async def test_only_page_one_is_read(self):
        source = _PagesSource([["y" * 150], ["z" * 150], ["w" * 150]])
        assert await classify_document(source) == PdfType.TEXT_BASED
        assert source.requested == [1]

    @pytest.mark.asyncio
    async def test_sparse_first_page_is_scanned(self):
        source = _PagesSource([["Page", "1"], ["z" * 500]])
        assert await classify_document(source) == PdfType.SCANNED

    @pytest.mark.asyncio
    async def test_zero_pages_is_scanned(self):
        source = _PagesSource([])
        assert await classify_document(source) == PdfType.SCANNED
        assert source.requested == []

"""Tests for the ingestion pipeline orchestration."""

from __future__ import annotations

import io
from typing import Sequence

import pypdfium2 as pdfium
import pytest

from core.ingestion.pipeline import (
    LOW_TEXT_QUALITY,
    SCANNED_PDF,
    RuleMatcher,
    ScannedDocumentError,
    process_pdf_buffer,
    process_pdf_source,
)
from models.schemas import (
    MatcherOptions,
    MatcherResult,
    PageContent,
    PdfType,
    ProcessingError,
    ProcessingStage,
    RawTextItem,
    TextFragment,
)


STATEMENT_WORDS = (
    "Statement of account 01/03/2024 to 31/03/2024 Date Description Debit Credit "
    "Balance 05/03/2024 Payment to electricity supplier 120.45 1,129.55 "
    "12/03/2024 Salary deposit 2,400.00 3,529.55"
).split()


class _WordsSource:
    """Fake PdfSource with the same words on every page."""

    def __init__(self, n_pages: int, words: Sequence[str] = STATEMENT_WORDS):
        self._n = n_pages
        self._words = list(words)
        self.requested: list[int] = []

    @property
    def page_count(self) -> int:
        return self._n

    async def get_page_content(self, page_number: int) -> PageContent:
        self.requested.append(page_number)
        return PageContent(
            page_number=page_number,
            width=612,
            height=792,
            items=[
                RawTextItem(text=w, x=20.0 * i, baseline_y=700, width=18, font_size=9)
                for i, w in enumerate(self._words)
            ],
        )


class _RecordingMatcher:
    def __init__(self, result: MatcherResult | None = None, error: Exception | None = None):
        self.calls: list[tuple[str, list[TextFragment], MatcherOptions]] = []
        self._result = result or MatcherResult(
            success=True,
            transactions=[{"date": "05/03/2024", "description": "Payment", "debit": "120.45"}],
            warnings=["matcher warning"],
            stages=[ProcessingStage(stage="extract", status="complete", progress=100)],
            total_duration=12.5,
        )
        self._error = error

    async def process_document(self, document_name, fragments, options):
        self.calls.append((document_name, list(fragments), options))
        if self._error:
            raise self._error
        return self._result


class TestProcessPdfSource:
    @pytest.mark.asyncio
    async def test_text_document_reaches_matcher(self):
        source = _WordsSource(3)
        matcher = _RecordingMatcher()
        assert isinstance(matcher, RuleMatcher)

        result = await process_pdf_source(
            source, matcher,
            document_name="march.pdf", locale="en-GB", confidence_threshold=0.8,
        )

        assert result.success is True
        assert result.pdf_type == PdfType.TEXT_BASED
        assert result.total_pages == 3
        assert result.processing_time_ms >= 0
        assert result.transactions[0]["debit"] == "120.45"
        assert result.stages[0].stage == "extract"
        assert result.total_duration == 12.5
        assert result.quality is not None and result.quality.score >= 80
        assert result.warnings == ["matcher warning"]

        [(name, fragments, options)] = matcher.calls
        assert name == "march.pdf"
        assert options.locale_hint == "en-GB"
        assert options.confidence_threshold == 0.8
        assert len(fragments) == 3 * len(STATEMENT_WORDS)
        assert [f.page_number for f in fragments] == sorted(f.page_number for f in fragments)

    @pytest.mark.asyncio
    async def test_defaults_forwarded_to_matcher(self):
        matcher = _RecordingMatcher()
        await process_pdf_source(_WordsSource(1), matcher)
        name, _, options = matcher.calls[0]
        assert name == "upload.pdf"
        assert options.locale_hint == "auto"
        assert options.confidence_threshold == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_scanned_document_raises(self):
        source = _WordsSource(4, words=["Page", "1", "of", "4"])
        matcher = _RecordingMatcher()

        with pytest.raises(ScannedDocumentError) as excinfo:
            await process_pdf_source(source, matcher, document_name="scan.pdf")

        err = excinfo.value
        assert err.code == SCANNED_PDF
        assert err.recoverable is False
        assert err.total_pages == 4
        assert err.elapsed_ms >= 0
        assert matcher.calls == []
        assert source.requested == [1]

        processing_error = err.to_processing_error()
        assert isinstance(processing_error, ProcessingError)
        assert processing_error.code == SCANNED_PDF
        assert processing_error.recoverable is False

    @pytest.mark.asyncio
    async def test_max_pages_caps_extraction(self):
        source = _WordsSource(10)
        matcher = _RecordingMatcher()
        result = await process_pdf_source(source, matcher, max_pages=2)

        _, fragments, _ = matcher.calls[0]
        assert {f.page_number for f in fragments} == {1, 2}
        assert result.total_pages == 10

    @pytest.mark.asyncio
    async def test_max_pages_above_total_is_ignored(self):
        matcher = _RecordingMatcher()
        await process_pdf_source(_WordsSource(2), matcher, max_pages=50)
        _, fragments, _ = matcher.calls[0]
        assert {f.page_number for f in fragments} == {1, 2}


GIBBERISH_WORDS = ["¤§¶¬¦¨©®±²³µ·¹º»¼½¾¿×÷ÐÞß"] * 6


class TestQualityGate:
    @pytest.mark.asyncio
    async def test_low_quality_is_a_warning_by_default(self):
        matcher = _RecordingMatcher()
        result = await process_pdf_source(_WordsSource(1, GIBBERISH_WORDS), matcher)

        assert result.quality.should_fallback_to_ocr is True
        assert len(matcher.calls) == 1
        assert result.success is True
        assert any("OCR is recommended" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_honored_gate_blocks_matcher(self):
        matcher = _RecordingMatcher()
        result = await process_pdf_source(
            _WordsSource(1, GIBBERISH_WORDS), matcher, honor_quality_gate=True,
        )

        assert matcher.calls == []
        assert result.success is False
        assert result.pdf_type == PdfType.TEXT_BASED
        assert [e.code for e in result.errors] == [LOW_TEXT_QUALITY]
        assert result.errors[0].recoverable is False
        assert result.transactions == []

    @pytest.mark.asyncio
    async def test_gate_does_not_block_good_text(self):
        matcher = _RecordingMatcher()
        result = await process_pdf_source(_WordsSource(1), matcher, honor_quality_gate=True)
        assert len(matcher.calls) == 1
        assert result.success is True


class TestMatcherFailures:
    @pytest.mark.asyncio
    async def test_matcher_exception_propagates(self):
        matcher = _RecordingMatcher(error=RuntimeError("matcher down"))
        with pytest.raises(RuntimeError, match="matcher down"):
            await process_pdf_source(_WordsSource(1), matcher)

    @pytest.mark.asyncio
    async def test_unsuccessful_matcher_result_is_forwarded(self):
        matcher = _RecordingMatcher(result=MatcherResult(
            success=False,
            errors=[ProcessingError(code="NO_TRANSACTIONS", message="nothing found", recoverable=True)],
        ))
        result = await process_pdf_source(_WordsSource(1), matcher)
        assert result.success is False
        assert result.errors[0].code == "NO_TRANSACTIONS"
        assert result.errors[0].recoverable is True


class TestProcessPdfBuffer:
    @pytest.mark.asyncio
    async def test_blank_pdf_is_scanned(self):
        doc = pdfium.PdfDocument.new()
        page = doc.new_page(612, 792)
        page.close()
        buf = io.BytesIO()
        doc.save(buf)
        doc.close()

        with pytest.raises(ScannedDocumentError) as excinfo:
            await process_pdf_buffer(buf.getvalue(), _RecordingMatcher(), document_name="blank.pdf")
        assert excinfo.value.total_pages == 1
        assert excinfo.value.document_name == "blank.pdf"

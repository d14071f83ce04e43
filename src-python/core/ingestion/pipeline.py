"""Pipeline orchestration: classify → extract → score → hand off to the rule matcher.

The rule matcher is an external collaborator.  This module only sees it
through the narrow ``RuleMatcher`` protocol and forwards its result with
extraction metadata attached.  Scanned documents never reach it: they are
reported as ``ScannedDocumentError`` so callers can route them to an
OCR-capable path.
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Protocol, Sequence, runtime_checkable

from core.config import config
from core.ingestion.classifier import classify_document
from core.ingestion.extractor import extract_pages
from core.ingestion.quality import score_text_quality
from core.ingestion.source import PdfiumSource, PdfSource
from models.schemas import (
    MatcherOptions,
    MatcherResult,
    PdfType,
    PipelineResult,
    ProcessingError,
    TextFragment,
)

logger = logging.getLogger(__name__)

SCANNED_PDF = "SCANNED_PDF"
LOW_TEXT_QUALITY = "LOW_TEXT_QUALITY"


@runtime_checkable
class RuleMatcher(Protocol):
    """Turns positioned text into transactions."""

    async def process_document(
        self,
        document_name: str,
        fragments: Sequence[TextFragment],
        options: MatcherOptions,
    ) -> MatcherResult: ...


class ScannedDocumentError(Exception):
    """Page 1 has no usable text layer; the document needs OCR."""

    code = SCANNED_PDF
    recoverable = False

    def __init__(self, document_name: str, total_pages: int, elapsed_ms: float):
        self.document_name = document_name
        self.total_pages = total_pages
        self.elapsed_ms = elapsed_ms
        super().__init__(
            f"'{document_name}' is a scanned PDF and must be processed by an "
            f"OCR-capable path; only text-based PDFs are supported here."
        )

    def to_processing_error(self) -> ProcessingError:
        return ProcessingError(code=self.code, message=str(self), recoverable=self.recoverable)


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


async def process_pdf_source(
    source: PdfSource,
    matcher: RuleMatcher,
    *,
    document_name: str = "upload.pdf",
    locale: Optional[str] = None,
    confidence_threshold: Optional[float] = None,
    max_pages: Optional[int] = None,
    honor_quality_gate: Optional[bool] = None,
) -> PipelineResult:
    """Run one document through the ingestion pipeline.

    Args:
        source: Loaded PDF.
        matcher: Rule matcher receiving the extracted fragments.
        document_name: Name forwarded to the matcher and used in logs.
        locale: Locale hint for the matcher (default ``config.default_locale``).
        confidence_threshold: Matcher threshold (default from config).
        max_pages: Process at most this many pages; falsy means all.
        honor_quality_gate: Skip the matcher when the quality scorer
            recommends OCR (default ``config.honor_quality_gate``).

    Raises:
        ScannedDocumentError: page 1 carries too little text.
    """
    started = time.perf_counter()
    log_extra = {"document_name": document_name}
    total_pages = source.page_count

    pdf_type = await classify_document(source)
    if pdf_type is PdfType.SCANNED:
        logger.info(f"'{document_name}' classified as scanned ({total_pages} pages)", extra=log_extra)
        raise ScannedDocumentError(document_name, total_pages, _elapsed_ms(started))

    pages_to_process = max_pages if max_pages and max_pages < total_pages else total_pages
    fragments = await extract_pages(source, pages_to_process)
    logger.info(
        f"Extracted {len(fragments)} fragments from {pages_to_process}/{total_pages} pages "
        f"of '{document_name}'",
        extra=log_extra,
    )

    quality = score_text_quality(fragments)
    gate = config.honor_quality_gate if honor_quality_gate is None else honor_quality_gate

    if quality.should_fallback_to_ocr:
        warning = (
            f"Text layer quality is low (score {quality.score}); OCR is recommended"
        )
        logger.warning(warning, extra=log_extra)
        if gate:
            elapsed = _elapsed_ms(started)
            return PipelineResult(
                success=False,
                errors=[ProcessingError(
                    code=LOW_TEXT_QUALITY,
                    message=f"{warning}: {'; '.join(quality.issues)}",
                    recoverable=False,
                )],
                warnings=[warning],
                total_duration=elapsed,
                pdf_type=pdf_type,
                total_pages=total_pages,
                processing_time_ms=elapsed,
                quality=quality,
            )
    else:
        warning = None

    options = MatcherOptions(
        locale_hint=locale or config.default_locale,
        confidence_threshold=(
            config.default_confidence_threshold
            if confidence_threshold is None else confidence_threshold
        ),
    )

    try:
        result = await matcher.process_document(document_name, fragments, options)
    except Exception as exc:
        logger.exception(
            f"Rule matcher failed on '{document_name}'",
            extra={**log_extra, "error_type": type(exc).__name__},
        )
        raise

    warnings = list(result.warnings)
    if warning:
        warnings.append(warning)

    return PipelineResult(
        **result.model_dump(exclude={"warnings"}),
        warnings=warnings,
        pdf_type=pdf_type,
        total_pages=total_pages,
        processing_time_ms=_elapsed_ms(started),
        quality=quality,
    )


async def process_pdf_buffer(
    data: bytes,
    matcher: RuleMatcher,
    **options,
) -> PipelineResult:
    """Open *data* with PDFium and run it through :func:`process_pdf_source`."""
    name = options.get("document_name", "upload.pdf")
    with PdfiumSource.from_bytes(data, name=name) as source:
        return await process_pdf_source(source, matcher, **options)

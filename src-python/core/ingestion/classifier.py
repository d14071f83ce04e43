"""Text-based vs scanned classification, from page 1 only."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from core.config import config
from core.ingestion.extractor import extract_page
from core.ingestion.source import PdfSource
from models.schemas import PdfType, TextFragment

logger = logging.getLogger(__name__)


def classify_fragments(
    fragments: Sequence[TextFragment],
    threshold: Optional[int] = None,
) -> PdfType:
    """``TEXT_BASED`` when the trimmed page text is longer than *threshold*."""
    limit = config.scanned_text_threshold if threshold is None else threshold
    text = "".join(f.text for f in fragments).strip()
    return PdfType.TEXT_BASED if len(text) > limit else PdfType.SCANNED


async def classify_document(
    source: PdfSource,
    threshold: Optional[int] = None,
) -> PdfType:
    if source.page_count == 0:
        return PdfType.SCANNED
    first_page = await extract_page(source, 1)
    pdf_type = classify_fragments(first_page, threshold)
    logger.debug(f"Page 1 has {len(first_page)} fragments -> {pdf_type.value}")
    return pdf_type

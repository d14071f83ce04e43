"""Page text extraction: positioned PDF text → ``TextFragment`` lists."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from core.config import config
from core.ingestion.source import PdfSource
from models.schemas import (
    BoundingBox,
    FragmentSource,
    PageContent,
    TextFragment,
)

logger = logging.getLogger(__name__)


def fragments_from_page(content: PageContent) -> list[TextFragment]:
    """Convert one page's raw items to fragments with a top-left origin.

    Whitespace-only items are dropped.  ``height`` approximates the font size
    from the text transform's vertical scale.
    """
    fragments: list[TextFragment] = []
    for item in content.items:
        if not item.text.strip():
            continue
        fragments.append(TextFragment(
            text=item.text,
            bounding_box=BoundingBox(
                x=item.x,
                y=content.height - item.baseline_y,
                width=item.width,
                height=abs(item.font_size),
            ),
            page_number=content.page_number,
            confidence=1.0,
            source=FragmentSource.TEXT_LAYER,
        ))
    return fragments


async def extract_page(source: PdfSource, page_number: int) -> list[TextFragment]:
    """Extract the fragments of a single page."""
    content = await source.get_page_content(page_number)
    return fragments_from_page(content)


async def extract_pages(
    source: PdfSource,
    page_count: int,
    concurrency: Optional[int] = None,
) -> list[TextFragment]:
    """Extract pages 1..page_count in bounded concurrent batches.

    At most ``concurrency`` page reads are in flight at once.  The result is
    always in page order, whichever page finishes first within a batch.
    """
    width = config.page_concurrency if concurrency is None else concurrency
    if width < 1:
        raise ValueError(f"concurrency must be >= 1, got {width}")

    fragments: list[TextFragment] = []
    for start in range(1, page_count + 1, width):
        batch = range(start, min(start + width, page_count + 1))
        # gather() returns results in argument order
        pages = await asyncio.gather(*(extract_page(source, n) for n in batch))
        for page_fragments in pages:
            fragments.extend(page_fragments)

    logger.debug(f"Extracted {len(fragments)} fragments from {page_count} pages")
    return fragments

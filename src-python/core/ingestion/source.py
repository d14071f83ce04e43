"""PDF sources: anything that exposes a page count and positioned page text.

``PdfiumSource`` is the production adapter.  Words are built from PDFium's
character stream the same way for every page: a run of non-whitespace
characters becomes one ``RawTextItem`` carrying the baseline origin of its
first character, its horizontal extent and its font size.
"""

from __future__ import annotations

import asyncio
import ctypes
import logging
import threading
from pathlib import Path
from typing import Optional, Protocol, Union, runtime_checkable

import pypdfium2 as pdfium

from models.schemas import PageContent, RawTextItem

logger = logging.getLogger(__name__)

# PDFium's C library is *not* thread-safe: every call into it, from any
# document handle, goes through this lock.
_PDFIUM_LOCK = threading.Lock()


@runtime_checkable
class PdfSource(Protocol):
    """Opaque handle over a loaded PDF document."""

    @property
    def page_count(self) -> int: ...

    async def get_page_content(self, page_number: int) -> PageContent: ...


def _read_page_items(pdf_page: pdfium.PdfPage) -> list[RawTextItem]:
    """Group a page's characters into word items in PDF coordinates."""
    textpage = pdf_page.get_textpage()
    try:
        n_chars = textpage.count_chars()
        if n_chars == 0:
            return []

        raw_tp = textpage.raw
        origin_x = ctypes.c_double(0.0)
        origin_y = ctypes.c_double(0.0)

        items: list[RawTextItem] = []
        word = ""
        x0 = x1 = baseline = font_size = 0.0

        def _flush() -> None:
            items.append(RawTextItem(
                text=word,
                x=x0,
                baseline_y=baseline,
                width=max(0.0, x1 - x0),
                font_size=font_size,
            ))

        for i in range(n_chars):
            char = textpage.get_text_range(index=i, count=1)
            if char.strip() == "":
                if word:
                    _flush()
                    word = ""
                continue

            left, bottom, right, _top = textpage.get_charbox(i)
            if not word:
                x0, x1 = left, right
                if pdfium.raw.FPDFText_GetCharOrigin(
                    raw_tp, i, ctypes.byref(origin_x), ctypes.byref(origin_y)
                ):
                    baseline = origin_y.value
                else:
                    baseline = bottom
                font_size = float(pdfium.raw.FPDFText_GetFontSize(raw_tp, i))
            else:
                x0 = min(x0, left)
                x1 = max(x1, right)
            word += char

        if word:
            _flush()
        return items
    finally:
        textpage.close()


class PdfiumSource:
    """``PdfSource`` backed by a pypdfium2 document.

    Page reads run in a worker thread so the event loop never blocks on
    PDFium, and are serialised behind a process-wide lock.
    """

    def __init__(self, document: pdfium.PdfDocument, name: str = "document.pdf"):
        self._doc: Optional[pdfium.PdfDocument] = document
        self.name = name
        self._page_count = len(document)

    @classmethod
    def from_bytes(cls, data: bytes, name: str = "upload.pdf") -> "PdfiumSource":
        with _PDFIUM_LOCK:
            doc = pdfium.PdfDocument(data)
        return cls(doc, name=name)

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "PdfiumSource":
        path = Path(path)
        with _PDFIUM_LOCK:
            doc = pdfium.PdfDocument(str(path))
        return cls(doc, name=path.name)

    @property
    def page_count(self) -> int:
        return self._page_count

    def _read_page(self, page_number: int) -> PageContent:
        with _PDFIUM_LOCK:
            if self._doc is None:
                raise RuntimeError("PDF document is closed")
            pdf_page = self._doc[page_number - 1]
            try:
                return PageContent(
                    page_number=page_number,
                    width=pdf_page.get_width(),
                    height=pdf_page.get_height(),
                    items=_read_page_items(pdf_page),
                )
            finally:
                pdf_page.close()

    async def get_page_content(self, page_number: int) -> PageContent:
        if not 1 <= page_number <= self._page_count:
            raise ValueError(
                f"Page {page_number} out of range (document has {self._page_count} pages)"
            )
        return await asyncio.to_thread(self._read_page, page_number)

    def close(self) -> None:
        with _PDFIUM_LOCK:
            if self._doc is not None:
                self._doc.close()
                self._doc = None

    def __enter__(self) -> "PdfiumSource":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

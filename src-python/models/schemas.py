"""Pydantic data models for the statement ingestion pipeline."""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class FragmentSource(str, enum.Enum):
    """Where a text fragment came from."""
    TEXT_LAYER = "text-layer"
    OCR = "ocr"


class PdfType(str, enum.Enum):
    """Page-one classification of a PDF."""
    TEXT_BASED = "TEXT_BASED"
    SCANNED = "SCANNED"


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

class BoundingBox(BaseModel):
    """Box in page coordinates (points from top-left)."""
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float
    height: float


# ---------------------------------------------------------------------------
# Text extraction
# ---------------------------------------------------------------------------

class TextFragment(BaseModel):
    """One piece of positioned text extracted from a PDF page."""
    model_config = ConfigDict(frozen=True)

    text: str
    bounding_box: BoundingBox
    page_number: int = Field(ge=1)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    source: FragmentSource = FragmentSource.TEXT_LAYER


class RawTextItem(BaseModel):
    """A text run as reported by the PDF, in PDF (bottom-left origin) coordinates."""
    text: str
    x: float
    baseline_y: float                 # y of the text origin, measured from the page bottom
    width: float = 0.0
    font_size: float = 0.0            # vertical scale of the text transform


class PageContent(BaseModel):
    """Positioned text content of a single page."""
    page_number: int
    width: float                      # Page width in points
    height: float                     # Page height in points
    items: list[RawTextItem] = []


# ---------------------------------------------------------------------------
# Text quality
# ---------------------------------------------------------------------------

class QualityMetrics(BaseModel):
    total_elements: int = 0
    total_characters: int = 0
    special_char_ratio: float = 0.0
    valid_word_ratio: float = 0.0
    has_date_patterns: bool = False
    has_numeric_patterns: bool = False
    average_word_length: float = 0.0
    unicode_mix_ratio: float = 0.0    # > 0 only when many unicode blocks share a short text


class QualityReport(BaseModel):
    score: int = Field(ge=0, le=100)
    should_fallback_to_ocr: bool
    issues: list[str] = []
    metrics: QualityMetrics = Field(default_factory=QualityMetrics)


# ---------------------------------------------------------------------------
# Rule matcher contract
# ---------------------------------------------------------------------------

class ProcessingError(BaseModel):
    code: str
    message: str
    page: Optional[int] = None
    row: Optional[int] = None
    recoverable: bool = False


class ProcessingStage(BaseModel):
    stage: str                         # "upload", "extract", "anchor", "stitch", "validate", "output"
    status: str = "pending"            # "pending", "processing", "complete", "error"
    progress: float = 0.0
    message: Optional[str] = None
    duration: Optional[float] = None


class MatcherOptions(BaseModel):
    locale_hint: str = "auto"
    confidence_threshold: float = Field(default=0.6, ge=0.0, le=1.0)


class MatcherResult(BaseModel):
    """What the external rule matcher hands back for one document."""
    success: bool
    transactions: list[dict[str, Any]] = []
    errors: list[ProcessingError] = []
    warnings: list[str] = []
    stages: list[ProcessingStage] = []
    total_duration: float = 0.0


class PipelineResult(MatcherResult):
    """Matcher result plus extraction metadata."""
    pdf_type: PdfType
    total_pages: int
    processing_time_ms: float
    quality: Optional[QualityReport] = None


# ---------------------------------------------------------------------------
# Transactions & masking
# ---------------------------------------------------------------------------

class Transaction(BaseModel):
    """An exported transaction row. Values are kept as display strings."""
    model_config = ConfigDict(extra="allow")

    date: str = ""
    description: str = ""
    debit: str = ""
    credit: str = ""
    balance: str = ""
    account: Optional[str] = None


class MaskingOptions(BaseModel):
    mask_names: bool = True
    mask_emails: bool = True
    mask_phones: bool = True
    mask_account_numbers: bool = True
    mask_addresses: bool = True
    mask_ids: bool = True


class MaskedResult(BaseModel):
    original_value: str
    masked_value: str
    pii_detected: bool = False
    pii_types: list[str] = []

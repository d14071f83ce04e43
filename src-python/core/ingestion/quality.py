"""Text-layer quality scoring.

Some PDFs carry a broken text layer that decodes to garbage.  The scorer
rates the extracted text 0-100 on a handful of cheap heuristics and
recommends the OCR path when the score drops below the fallback threshold:

- 80-100: good, use the text layer
- 40-79:  marginal, may work
- 0-39:   poor, route to OCR
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Sequence

from core.config import config
from models.schemas import QualityMetrics, QualityReport, TextFragment

logger = logging.getLogger(__name__)

# Letters, digits, whitespace and the punctuation a statement normally uses
_NORMAL_CHARS_RE = re.compile(r"""[a-zA-Z0-9\s.,\-/():'"₹$£€¥%@#&*+=]""")

_ALPHA_WORD_RE = re.compile(r"[a-z]{2,15}")
_CODE_WORD_RE = re.compile(r"[a-z0-9]{4,20}", re.IGNORECASE)

DATE_PATTERNS = [
    re.compile(r"\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}"),
    re.compile(r"\d{4}[/\-.]\d{1,2}[/\-.]\d{1,2}"),
    re.compile(r"[A-Za-z]{3,9}\s+\d{1,2}"),
    re.compile(r"\d{1,2}\s+[A-Za-z]{3,9}"),
]

NUMERIC_PATTERNS = [
    re.compile(r"[\d,]+\.\d{2}"),          # decimal amount
    re.compile(r"[₹$£€¥]\s*[\d,]+"),       # currency amount
]

COMMON_FINANCIAL_WORDS = frozenset({
    "balance", "credit", "debit", "transfer", "payment", "deposit", "withdrawal",
    "date", "description", "amount", "bank", "account", "statement", "transaction",
    "opening", "closing", "total", "available", "pending", "reference", "ref",
    "from", "to", "the", "and", "for", "of", "in", "on", "at", "by", "with",
})

MIN_CHARACTERS = 50


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

def special_char_ratio(text: str) -> float:
    """Fraction of characters outside letters, digits, spaces and common punctuation."""
    if not text:
        return 0.0
    unusual = _NORMAL_CHARS_RE.sub("", text)
    return len(unusual) / len(text)


def _is_valid_word(word: str) -> bool:
    return (
        word in COMMON_FINANCIAL_WORDS
        or _ALPHA_WORD_RE.fullmatch(word) is not None
        or _CODE_WORD_RE.fullmatch(word) is not None
    )


def valid_word_ratio(text: str) -> float:
    words = [w for w in text.lower().split() if len(w) >= 2]
    if not words:
        return 0.0
    return sum(1 for w in words if _is_valid_word(w)) / len(words)


def _unicode_block(code: int) -> str:
    if code < 128:
        return "basic-latin"
    if code < 256:
        return "latin-extended"
    if 0x0900 <= code <= 0x097F:
        return "devanagari"
    if 0x4E00 <= code <= 0x9FFF:
        return "cjk"
    if 0x0600 <= code <= 0x06FF:
        return "arabic"
    if 0x0080 <= code <= 0x024F:
        return "latin-supplement"
    return "other"


def unicode_mix_ratio(text: str) -> float:
    """Block-mixing score; non-zero only for >3 blocks in under 200 chars."""
    if len(text) < 10:
        return 0.0
    blocks = {_unicode_block(ord(ch)) for ch in text}
    if len(blocks) > 3 and len(text) < 200:
        return (len(blocks) - 2) / len(blocks)
    return 0.0


def average_word_length(text: str) -> float:
    words = text.split()
    if not words:
        return 0.0
    return sum(len(w) for w in words) / len(words)


def has_date_patterns(text: str) -> bool:
    return any(p.search(text) for p in DATE_PATTERNS)


def has_numeric_patterns(text: str) -> bool:
    return any(p.search(text) for p in NUMERIC_PATTERNS)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def score_text_quality(
    fragments: Sequence[TextFragment],
    fallback_threshold: Optional[int] = None,
) -> QualityReport:
    """Score the combined text of *fragments* and itemise what went wrong."""
    threshold = config.ocr_fallback_threshold if fallback_threshold is None else fallback_threshold

    if not fragments:
        return QualityReport(
            score=0,
            should_fallback_to_ocr=True,
            issues=["No text elements extracted"],
            metrics=QualityMetrics(),
        )

    text = " ".join(f.text for f in fragments)
    total_chars = len(text)

    if total_chars < MIN_CHARACTERS:
        return QualityReport(
            score=20,
            should_fallback_to_ocr=True,
            issues=["Very little text extracted"],
            metrics=QualityMetrics(
                total_elements=len(fragments),
                total_characters=total_chars,
            ),
        )

    metrics = QualityMetrics(
        total_elements=len(fragments),
        total_characters=total_chars,
        special_char_ratio=special_char_ratio(text),
        valid_word_ratio=valid_word_ratio(text),
        has_date_patterns=has_date_patterns(text),
        has_numeric_patterns=has_numeric_patterns(text),
        average_word_length=average_word_length(text),
        unicode_mix_ratio=unicode_mix_ratio(text),
    )

    issues: list[str] = []
    score = 100

    special = metrics.special_char_ratio
    if special > 0.4:
        score -= 40
        issues.append(f"High special character ratio: {special * 100:.1f}%")
    elif special > 0.2:
        score -= 20
        issues.append(f"Elevated special character ratio: {special * 100:.1f}%")
    elif special > 0.1:
        score -= 10

    valid = metrics.valid_word_ratio
    if valid < 0.2:
        score -= 20
        issues.append(f"Low valid word ratio: {valid * 100:.1f}%")
    elif valid < 0.4:
        score -= 10
    elif valid > 0.6:
        score += 10

    if not metrics.has_date_patterns:
        score -= 15
        issues.append("No date patterns found")

    if not metrics.has_numeric_patterns:
        score -= 10
        issues.append("No numeric/financial patterns found")

    mix = metrics.unicode_mix_ratio
    if mix > 0.3:
        score -= 20
        issues.append(f"High unicode block mixing: {mix * 100:.1f}%")
    elif mix > 0.15:
        score -= 10

    avg_len = metrics.average_word_length
    if avg_len < 2 or avg_len > 20:
        score -= 15
        issues.append(f"Unusual average word length: {avg_len:.1f}")

    score = max(0, min(100, score))

    logger.debug(f"Text quality score {score} ({len(fragments)} fragments, {total_chars} chars)")
    if issues:
        logger.info(f"Text quality issues: {', '.join(issues)}")

    return QualityReport(
        score=score,
        should_fallback_to_ocr=score < threshold,
        issues=issues,
        metrics=metrics,
    )


def should_trigger_ocr_fallback(fragments: Sequence[TextFragment]) -> bool:
    return score_text_quality(fragments).should_fallback_to_ocr


def quality_description(score: int) -> str:
    if score >= 80:
        return "Good"
    if score >= 60:
        return "Fair"
    if score >= 40:
        return "Poor"
    return "Very Poor"

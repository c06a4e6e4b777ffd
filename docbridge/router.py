"""Format detection and processing-mode routing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .errors import UnsupportedFormat
from .structures import DocumentFormat, ProcessingMode, SizeCategory, SourceDocument

logger = logging.getLogger(__name__)

MB = 1024 * 1024
WHOLE_DOCUMENT_LIMIT = 2 * MB
CAUTION_LIMIT = 5 * MB

FORMAT_ALIASES: Dict[str, DocumentFormat] = {
    "docx": DocumentFormat.WORD,
    "word": DocumentFormat.WORD,
    "pptx": DocumentFormat.PRESENTATION,
    "presentation": DocumentFormat.PRESENTATION,
    "pdf": DocumentFormat.PDF,
    "txt": DocumentFormat.TEXT,
    "text": DocumentFormat.TEXT,
}

STRATEGIES: Dict[DocumentFormat, Tuple[str, ...]] = {
    DocumentFormat.WORD: ("markers", "paragraphs"),
    DocumentFormat.PRESENTATION: ("markers",),
    DocumentFormat.PDF: ("pdf-text",),
    DocumentFormat.TEXT: ("text",),
}


@dataclass(frozen=True)
class RoutingDecision:
    """How a document will be extracted, batched and rebuilt."""

    format: DocumentFormat
    strategy: str
    mode: ProcessingMode
    size_category: SizeCategory
    cautious: bool
    estimated_seconds: int


def resolve_format(tag: str) -> DocumentFormat:
    """Map a declared MIME type or short alias to a supported format."""

    normalized = (tag or "").strip().lower()
    if ";" in normalized:
        normalized = normalized.split(";", 1)[0].strip()
    for candidate in DocumentFormat:
        if candidate.value == normalized:
            return candidate
    resolved = FORMAT_ALIASES.get(normalized.lstrip("."))
    if resolved is None:
        raise UnsupportedFormat(
            f"Unsupported format '{tag}'. Use a Word, PowerPoint, PDF or plain-text document."
        )
    return resolved


def classify_size(size: int) -> SizeCategory:
    if size < WHOLE_DOCUMENT_LIMIT:
        return "small"
    if size < CAUTION_LIMIT:
        return "medium"
    return "large"


def estimate_processing_time(size: int) -> int:
    """Rough processing time in seconds, non-decreasing in ``size``."""

    size_mb = max(size, 0) / MB
    if size_mb < 1:
        return 3
    if size_mb < 2:
        return 5
    if size_mb < 5:
        return 10
    return 30 + int((size_mb - 5) * 6)


def route(document: SourceDocument, strategy: Optional[str] = None) -> RoutingDecision:
    """Choose a strategy and processing mode before any parsing happens."""

    document_format = resolve_format(document.format_tag)
    available = STRATEGIES[document_format]
    chosen = (strategy or available[0]).strip().lower()
    if chosen not in available:
        raise UnsupportedFormat(
            f"Strategy '{strategy}' is not available for {document_format.name.lower()} "
            f"documents (choose from: {', '.join(available)})."
        )

    category = classify_size(document.size)
    mode = ProcessingMode.CHUNKED if category == "large" else ProcessingMode.WHOLE_DOCUMENT
    cautious = category == "medium"
    if cautious:
        logger.warning(
            "Document of %.1f MB is processed as a whole; translation may be slow.",
            document.size / MB,
        )

    decision = RoutingDecision(
        format=document_format,
        strategy=chosen,
        mode=mode,
        size_category=category,
        cautious=cautious,
        estimated_seconds=estimate_processing_time(document.size),
    )
    logger.info(
        "Routing %s (%d bytes) via %s strategy, %s mode.",
        document_format.name.lower(),
        document.size,
        decision.strategy,
        decision.mode.name.lower(),
    )
    return decision

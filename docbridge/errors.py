"""Error definitions for the Docbridge translation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional, Tuple


class ErrorCategory(Enum):
    """Categorises non-fatal per-chunk conditions reported upstream."""

    TRANSLATION = auto()
    DEGRADED = auto()


class DocbridgeError(Exception):
    """Base exception for all custom errors."""


class UnsupportedFormat(DocbridgeError):
    """Raised when a declared format tag or strategy is not supported."""


class NoAvailableDelimiter(DocbridgeError):
    """Raised when every reserved delimiter already occurs in the document."""


class InvalidContainer(DocbridgeError):
    """Raised for malformed archives or a missing mandatory part."""


class PartNotFound(DocbridgeError):
    """Raised when a named part is absent from a container."""

    def __init__(self, part_name: str) -> None:
        super().__init__(f"Part '{part_name}' was not found in the container.")
        self.part_name = part_name


class TranslationCallFailed(DocbridgeError):
    """Raised when the translation service fails for one chunk."""


class TranslationDegraded(DocbridgeError):
    """Describes a chunk whose response could not be fully re-aligned."""

    def __init__(
        self,
        message: str,
        *,
        chunk_index: int,
        expected: int,
        received: int,
        fallback_indices: Tuple[int, ...] = (),
    ) -> None:
        super().__init__(message)
        self.chunk_index = chunk_index
        self.expected = expected
        self.received = received
        self.fallback_indices = fallback_indices


class MarkerLeak(DocbridgeError):
    """Raised when a skeleton marker cannot be resolved to a segment."""


class TranslationProviderConfigurationError(DocbridgeError):
    """Raised when the translation provider is misconfigured."""


class OverwriteRefusedError(DocbridgeError):
    """Raised when attempting to overwrite an output without consent."""


@dataclass
class ChunkIssue:
    """Stores context for a recoverable chunk-level condition."""

    category: ErrorCategory
    chunk_index: int
    message: str
    fallback_indices: Tuple[int, ...] = ()
    details: Optional[str] = None

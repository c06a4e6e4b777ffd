"""Docbridge document translation package."""

from .clients import (
    CallableTranslationClient,
    EchoTranslationClient,
    OpenAITranslationClient,
    TranslationClient,
    build_client,
)
from .errors import (
    DocbridgeError,
    InvalidContainer,
    NoAvailableDelimiter,
    PartNotFound,
    TranslationCallFailed,
    TranslationDegraded,
    UnsupportedFormat,
)
from .handlers import RunRedistribution
from .structures import DocumentFormat, OutputDocument, SourceDocument
from .translator import DocumentTranslator, TranslationReport, TranslationResult, TranslatorOptions

__all__ = [
    "CallableTranslationClient",
    "DocbridgeError",
    "DocumentFormat",
    "DocumentTranslator",
    "EchoTranslationClient",
    "InvalidContainer",
    "NoAvailableDelimiter",
    "OpenAITranslationClient",
    "OutputDocument",
    "PartNotFound",
    "RunRedistribution",
    "SourceDocument",
    "TranslationCallFailed",
    "TranslationClient",
    "TranslationDegraded",
    "TranslationReport",
    "TranslationResult",
    "TranslatorOptions",
    "UnsupportedFormat",
    "build_client",
]

__version__ = "0.1.0"

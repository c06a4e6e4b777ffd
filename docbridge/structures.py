"""Core data structures for the Docbridge translation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, Iterator, List, Literal, Optional, Sequence, Tuple

from lxml import etree


class DocumentFormat(Enum):
    """Supported document formats keyed by their MIME type."""

    WORD = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    PRESENTATION = (
        "application/vnd.openxmlformats-officedocument.presentationml.presentation"
    )
    PDF = "application/pdf"
    TEXT = "text/plain"

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self]


_EXTENSIONS: Dict[DocumentFormat, str] = {
    DocumentFormat.WORD: ".docx",
    DocumentFormat.PRESENTATION: ".pptx",
    DocumentFormat.PDF: ".pdf",
    DocumentFormat.TEXT: ".txt",
}


class ProcessingMode(Enum):
    """How the router wants a document batched for translation."""

    WHOLE_DOCUMENT = auto()
    CHUNKED = auto()


class PipelineStage(Enum):
    """Per-request pipeline states."""

    IDLE = auto()
    EXTRACTING = auto()
    CHUNKING = auto()
    TRANSLATING = auto()
    RECONSTRUCTING = auto()
    REBUILDING = auto()
    DONE = auto()
    FAILED = auto()


SizeCategory = Literal["small", "medium", "large"]
SegmentSource = Literal["translated", "passthrough", "fallback"]


@dataclass(frozen=True)
class SourceDocument:
    """An uploaded document, immutable for the lifetime of a request."""

    data: bytes
    format_tag: str
    size: int = -1

    def __post_init__(self) -> None:
        if self.size < 0:
            object.__setattr__(self, "size", len(self.data))


@dataclass(frozen=True)
class RunAttributes:
    """Character-level formatting of the run holding a segment."""

    bold: Optional[bool] = None
    italic: Optional[bool] = None
    underline: Optional[bool] = None
    color: Optional[str] = None
    font: Optional[str] = None
    size: Optional[float] = None


@dataclass(frozen=True)
class ParagraphAttributes:
    """Paragraph-level formatting of the paragraph holding a segment."""

    heading_level: Optional[int] = None
    alignment: Optional[str] = None
    spacing_before: Optional[int] = None
    spacing_after: Optional[int] = None
    line_spacing: Optional[int] = None
    indent_left: Optional[int] = None
    indent_right: Optional[int] = None
    indent_first_line: Optional[int] = None
    indent_hanging: Optional[int] = None


@dataclass(frozen=True)
class SegmentLocation:
    """Where a segment lives: which part, which node."""

    part: str
    node: str


@dataclass
class Segment:
    """One unit of translatable text extracted from a single node."""

    index: int
    text: str
    location: SegmentLocation
    paragraph_key: Optional[str] = None
    run: Optional[RunAttributes] = None
    paragraph: Optional[ParagraphAttributes] = None


@dataclass
class Chunk:
    """An ordered batch of segments sized for one translation call."""

    index: int
    segments: List[Segment]

    @property
    def character_count(self) -> int:
        return sum(len(segment.text) for segment in self.segments)

    def batch_text(self, delimiter: str, segments: Sequence[Segment] | None = None) -> str:
        """Render the chunk, or a subset of it, as a flattened stream."""

        chosen = self.segments if segments is None else segments
        return "".join(delimiter + segment.text for segment in chosen)


@dataclass
class TranslatedSegment:
    """A segment identity paired with the text to inject."""

    index: int
    text: str
    source: SegmentSource = "translated"


@dataclass
class OutputDocument:
    """A rebuilt document ready to hand back to the caller."""

    data: bytes
    format: DocumentFormat
    extension: str

    @property
    def format_tag(self) -> str:
        return self.format.value


class Skeleton:
    """Structural copy of a document with segments replaced by markers."""

    delimiter: str

    def marker(self, index: int) -> str:
        return f"{self.delimiter}{index}"

    def markers(self) -> List[str]:
        raise NotImplementedError


@dataclass
class XmlSkeleton(Skeleton):
    """Parsed text-bearing parts of a package, keyed by part name."""

    delimiter: str
    parts: Dict[str, etree._ElementTree]
    text_tags: Tuple[str, ...]

    def iter_text_nodes(self) -> Iterator[Tuple[str, etree._Element]]:
        """Yield text nodes in extraction order."""

        for part_name, tree in self.parts.items():
            for node in tree.iter(*self.text_tags):
                yield part_name, node

    def markers(self) -> List[str]:
        return [
            node.text
            for _, node in self.iter_text_nodes()
            if node.text and node.text.startswith(self.delimiter)
        ]

    def serialize(self, part_name: str) -> bytes:
        tree = self.parts[part_name]
        return etree.tostring(
            tree,
            xml_declaration=True,
            encoding=tree.docinfo.encoding or "UTF-8",
            standalone=tree.docinfo.standalone,
        )


@dataclass
class TextSkeleton(Skeleton):
    """Plain text template made of literal pieces and marker pieces."""

    delimiter: str
    pieces: List[str] = field(default_factory=list)

    def markers(self) -> List[str]:
        return [piece for piece in self.pieces if piece.startswith(self.delimiter)]


@dataclass
class Extraction:
    """Result of stripping a document down to its translatable text."""

    parsed_text: str
    skeleton: Skeleton
    delimiter: str
    segments: List[Segment]

    def segment_map(self) -> Dict[int, Segment]:
        return {segment.index: segment for segment in self.segments}

"""Extraction and reconstruction strategies, one handler per request."""

from __future__ import annotations

import io
import logging
import re
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional, Type

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from .chunker import split_paragraphs, split_sentences
from .container import Container
from .errors import InvalidContainer
from .extractor import (
    PROFILES,
    StructuralExtractor,
    select_delimiter,
    word_paragraph_attributes,
    word_run_attributes,
)
from .pdfwriter import render_pdf
from .rebuilder import rebuild_container
from .reconstructor import inject, render_text
from .structures import (
    DocumentFormat,
    Extraction,
    OutputDocument,
    Segment,
    SegmentLocation,
    Skeleton,
    SourceDocument,
    TextSkeleton,
    XmlSkeleton,
)

logger = logging.getLogger(__name__)

UTF8_BOM = "\ufeff"


class RunRedistribution(Enum):
    """How a translated paragraph is spread over its original runs."""

    FIRST_RUN = "first-run"
    PROPORTIONAL = "proportional"


class BaseDocumentHandler(ABC):
    """Common base class for document handlers."""

    def __init__(
        self,
        source: SourceDocument,
        document_format: DocumentFormat,
        *,
        record_attributes: bool = False,
        segment_budget: Optional[int] = None,
        redistribution: RunRedistribution = RunRedistribution.FIRST_RUN,
        text_output: bool = False,
    ) -> None:
        self.source = source
        self.format = document_format
        self.record_attributes = record_attributes
        self.segment_budget = segment_budget
        self.redistribution = redistribution
        self.text_output = text_output
        self.extraction: Optional[Extraction] = None

    @abstractmethod
    def extract(self) -> Extraction:
        """Strip the document down to segments and a skeleton."""

    @abstractmethod
    def rebuild(self, translations: Mapping[int, str]) -> OutputDocument:
        """Produce the output document.

        Segment indices missing from ``translations`` keep their original text.
        """

    def register(self, extraction: Extraction) -> Extraction:
        self.extraction = extraction
        return extraction

    def _require_extraction(self, skeleton_type: Type[Skeleton]) -> Extraction:
        if self.extraction is None:
            raise RuntimeError("extract() must run before rebuild().")
        if not isinstance(self.extraction.skeleton, skeleton_type):
            raise TypeError(
                f"{type(self).__name__} cannot rebuild from "
                f"{type(self.extraction.skeleton).__name__}."
            )
        return self.extraction

    def _output(
        self, data: bytes, output_format: Optional[DocumentFormat] = None
    ) -> OutputDocument:
        output_format = output_format or self.format
        return OutputDocument(data=data, format=output_format, extension=output_format.extension)


class MarkerSplicingHandler(BaseDocumentHandler):
    """Splices translations into the package XML through numbered markers.

    Only the text-bearing parts that actually held segments are rewritten;
    every other archive entry is copied through untouched.
    """

    def __init__(self, source: SourceDocument, document_format: DocumentFormat, **kwargs) -> None:
        super().__init__(source, document_format, **kwargs)
        self.profile = PROFILES[document_format]
        self.container = Container.from_bytes(source.data)

    def extract(self) -> Extraction:
        extractor = StructuralExtractor(self.profile, record_attributes=self.record_attributes)
        return self.register(extractor.extract(self.container))

    def rebuild(self, translations: Mapping[int, str]) -> OutputDocument:
        extraction = self._require_extraction(XmlSkeleton)
        parts = inject(extraction.skeleton, translations, extraction.segment_map())
        data = rebuild_container(
            self.container,
            parts,
            mandatory=self.profile.mandatory_parts(self.container),
        )
        return self._output(data)


class PlainTextHandler(BaseDocumentHandler):
    """Paragraph-level segments over a plain text template.

    A paragraph longer than the segment budget is broken into sentences; a
    single sentence over budget stays whole.
    """

    def __init__(self, source: SourceDocument, document_format: DocumentFormat, **kwargs) -> None:
        super().__init__(source, document_format, **kwargs)
        self._bom = False
        self.text = self._load_text()

    def _load_text(self) -> str:
        try:
            text = self.source.data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidContainer(f"Text document is not valid UTF-8: {exc}") from exc
        if text.startswith(UTF8_BOM):
            self._bom = True
            text = text[len(UTF8_BOM) :]
        return text

    def _units(self, block: str) -> List[str]:
        if self.segment_budget is None or len(block) <= self.segment_budget:
            return [block]
        return split_sentences(block)

    def extract(self) -> Extraction:
        delimiter = select_delimiter([self.text])
        skeleton = TextSkeleton(delimiter=delimiter)
        segments: List[Segment] = []
        stream: List[str] = []

        paragraph_number = 0
        for block in split_paragraphs(self.text):
            if not block.strip():
                skeleton.pieces.append(block)
                continue
            paragraph_number += 1
            for unit in self._units(block):
                if not unit.strip():
                    skeleton.pieces.append(unit)
                    continue
                segment = Segment(
                    index=len(segments) + 1,
                    text=unit,
                    location=SegmentLocation(part="text", node=str(len(skeleton.pieces))),
                    paragraph_key=f"paragraph{paragraph_number}",
                )
                segments.append(segment)
                stream.append(delimiter + unit)
                skeleton.pieces.append(skeleton.marker(segment.index))

        return self.register(
            Extraction(
                parsed_text="".join(stream),
                skeleton=skeleton,
                delimiter=delimiter,
                segments=segments,
            )
        )

    def render(self, translations: Mapping[int, str]) -> str:
        extraction = self._require_extraction(TextSkeleton)
        return render_text(extraction.skeleton, translations, extraction.segment_map())

    def rebuild(self, translations: Mapping[int, str]) -> OutputDocument:
        text = self.render(translations)
        if self._bom:
            text = UTF8_BOM + text
        return self._output(text.encode("utf-8"))


class PdfTextHandler(PlainTextHandler):
    """Translates the text layer of a PDF.

    The translation is laid out again as flowing text in a new PDF, or
    returned as plain text when ``text_output`` is set. The original page
    layout is not reproduced.
    """

    def _load_text(self) -> str:
        try:
            reader = PdfReader(io.BytesIO(self.source.data))
            pages = [(page.extract_text() or "").strip() for page in reader.pages]
        except (PdfReadError, ValueError, KeyError) as exc:
            raise InvalidContainer(f"PDF could not be read: {exc}") from exc

        text = "\n\n".join(page for page in pages if page)
        if not text.strip():
            raise InvalidContainer(
                "PDF contains no extractable text; it may be scanned or encrypted."
            )
        logger.debug("Extracted %d characters from %d PDF pages.", len(text), len(pages))
        return text

    def rebuild(self, translations: Mapping[int, str]) -> OutputDocument:
        text = self.render(translations)
        if self.text_output:
            return self._output(text.encode("utf-8"), DocumentFormat.TEXT)
        return self._output(render_pdf(text))


@dataclass
class ParagraphSkeleton(Skeleton):
    """python-docx document whose paragraphs carry a marker in their first run."""

    delimiter: str
    document: object
    runs: Dict[int, list] = field(default_factory=dict)
    originals: Dict[int, List[str]] = field(default_factory=dict)

    def markers(self) -> List[str]:
        return [run_list[0].text for run_list in self.runs.values()]


def _split_proportionally(text: str, weights: List[int]) -> List[str]:
    """Distribute words over slots in proportion to ``weights``."""

    slots = [""] * len(weights)
    total = sum(weights) or 1
    leading = text[: len(text) - len(text.lstrip())]
    tokens = re.findall(r"\S+\s*", text)

    boundaries: List[float] = []
    running = 0
    for weight in weights:
        running += weight
        boundaries.append(running / total * len(text))

    offset = len(leading)
    slot = 0
    for token in tokens:
        center = offset + len(token) / 2
        while slot < len(slots) - 1 and center > boundaries[slot]:
            slot += 1
        slots[slot] += token
        offset += len(token)
    slots[0] = leading + slots[0]
    return slots


class ParagraphHandler(BaseDocumentHandler):
    """Paragraph-object strategy built on python-docx.

    Each paragraph becomes one segment, so the translator sees whole
    sentences. Formatting is kept at run level according to the configured
    :class:`RunRedistribution`. The package is re-saved by python-docx.
    """

    def __init__(self, source: SourceDocument, document_format: DocumentFormat, **kwargs) -> None:
        super().__init__(source, document_format, **kwargs)
        try:
            self.document = Document(io.BytesIO(source.data))
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as exc:
            raise InvalidContainer(f"Word document could not be opened: {exc}") from exc

    def _iter_paragraphs(self) -> Iterator[tuple]:
        seen = set()

        def visit(paragraphs, location):
            for p_idx, paragraph in enumerate(paragraphs):
                element = paragraph._p  # type: ignore[attr-defined]
                if element in seen:
                    continue
                seen.add(element)
                yield f"{location}.p{p_idx}", paragraph

        def visit_tables(tables, location):
            cells_seen = set()
            for t_idx, table in enumerate(tables):
                for r_idx, row in enumerate(table.rows):
                    for c_idx, cell in enumerate(row.cells):
                        cell_key = cell._tc  # type: ignore[attr-defined]
                        if cell_key in cells_seen:
                            continue
                        cells_seen.add(cell_key)
                        yield from visit(
                            cell.paragraphs,
                            f"{location}.table{t_idx}.row{r_idx}.cell{c_idx}",
                        )

        yield from visit(self.document.paragraphs, "body")
        yield from visit_tables(self.document.tables, "body")
        for s_idx, section in enumerate(self.document.sections):
            for name, container in (("header", section.header), ("footer", section.footer)):
                if container.is_linked_to_previous:
                    continue
                location = f"section{s_idx}.{name}"
                yield from visit(container.paragraphs, location)
                yield from visit_tables(container.tables, location)

    def extract(self) -> Extraction:
        candidates = [
            (location, paragraph, [run for run in paragraph.runs if run.text])
            for location, paragraph in self._iter_paragraphs()
        ]
        delimiter = select_delimiter(
            ["".join(run.text for run in runs) for _, _, runs in candidates]
        )
        skeleton = ParagraphSkeleton(delimiter=delimiter, document=self.document)
        segments: List[Segment] = []
        stream: List[str] = []

        for location, paragraph, runs in candidates:
            text = "".join(run.text for run in runs)
            if not text.strip():
                continue
            segment = Segment(
                index=len(segments) + 1,
                text=text,
                location=SegmentLocation(part=location.split(".", 1)[0], node=location),
                paragraph_key=location,
            )
            if self.record_attributes:
                segment.run = word_run_attributes(runs[0]._r)  # type: ignore[attr-defined]
                segment.paragraph = word_paragraph_attributes(paragraph._p)  # type: ignore[attr-defined]
            segments.append(segment)
            stream.append(delimiter + text)

            skeleton.runs[segment.index] = runs
            skeleton.originals[segment.index] = [run.text for run in runs]
            runs[0].text = skeleton.marker(segment.index)
            for run in runs[1:]:
                run.text = ""

        return self.register(
            Extraction(
                parsed_text="".join(stream),
                skeleton=skeleton,
                delimiter=delimiter,
                segments=segments,
            )
        )

    def _apply(self, runs: list, originals: List[str], translated: str) -> None:
        if self.redistribution is RunRedistribution.PROPORTIONAL:
            pieces = _split_proportionally(translated, [len(text) for text in originals])
        else:
            pieces = [translated] + [""] * (len(runs) - 1)
        for run, piece in zip(runs, pieces):
            run.text = piece

    def rebuild(self, translations: Mapping[int, str]) -> OutputDocument:
        skeleton = self._require_extraction(ParagraphSkeleton).skeleton
        for index, runs in skeleton.runs.items():
            originals = skeleton.originals[index]
            if index in translations:
                self._apply(runs, originals, translations[index])
            else:
                for run, text in zip(runs, originals):
                    run.text = text

        buffer = io.BytesIO()
        self.document.save(buffer)
        return self._output(buffer.getvalue())


HANDLERS: Dict[str, Type[BaseDocumentHandler]] = {
    "markers": MarkerSplicingHandler,
    "paragraphs": ParagraphHandler,
    "text": PlainTextHandler,
    "pdf-text": PdfTextHandler,
}


def create_handler(
    strategy: str,
    source: SourceDocument,
    document_format: DocumentFormat,
    **options,
) -> BaseDocumentHandler:
    """Instantiate the handler registered for ``strategy``."""

    return HANDLERS[strategy](source, document_format, **options)

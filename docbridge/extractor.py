"""Skeleton stripping for OpenXML packages.

Every text-bearing part of a package is parsed with lxml and its text
nodes are visited in document order. Each node carrying visible text is
assigned the next sequential index: its content joins the flattened
translation stream as ``delimiter + text`` and is replaced in the skeleton
by ``delimiter + index``. Whitespace-only nodes are left exactly as they
are. The delimiter is the first reserved character that does not occur
anywhere in the text-bearing parts, so splitting the translated stream on
it can never cut through real content.
"""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from lxml import etree

from .container import Container
from .errors import InvalidContainer, NoAvailableDelimiter
from .structures import (
    DocumentFormat,
    Extraction,
    ParagraphAttributes,
    RunAttributes,
    Segment,
    SegmentLocation,
    XmlSkeleton,
)

logger = logging.getLogger(__name__)

SPECIAL_CHARACTERS: Tuple[str, ...] = (
    "§",
    "¶",
    "¤",
    "☼",
    "♦",
    "♫",
    "♪",
    "✓",
    "✗",
    "⚑",
    "⚡",
    "⚙",
)

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
A_NS = "http://schemas.openxmlformats.org/drawingml/2006/main"

HEADING_PATTERN = re.compile(r"heading\s*(\d)", re.IGNORECASE)


def _w(tag: str) -> str:
    return f"{{{W_NS}}}{tag}"


def _a(tag: str) -> str:
    return f"{{{A_NS}}}{tag}"


def select_delimiter(
    texts: Iterable[str],
    candidates: Sequence[str] = SPECIAL_CHARACTERS,
) -> str:
    """Return the first candidate absent from every text."""

    corpus = list(texts)
    for candidate in candidates:
        if not any(candidate in text for text in corpus):
            return candidate
    raise NoAvailableDelimiter(
        "No unique delimiter is available: the document uses every reserved marker."
    )


# --- Attribute readers -----------------------------------------------------


def _as_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _word_toggle(props: Optional[etree._Element], tag: str) -> Optional[bool]:
    if props is None:
        return None
    element = props.find(_w(tag))
    if element is None:
        return None
    value = element.get(_w("val"))
    return value not in {"0", "false", "off"}


def word_run_attributes(run: etree._Element) -> RunAttributes:
    props = run.find(_w("rPr"))
    if props is None:
        return RunAttributes()
    underline = props.find(_w("u"))
    color = props.find(_w("color"))
    fonts = props.find(_w("rFonts"))
    size = props.find(_w("sz"))
    color_value = color.get(_w("val")) if color is not None else None
    size_value = _as_int(size.get(_w("val"))) if size is not None else None
    return RunAttributes(
        bold=_word_toggle(props, "b"),
        italic=_word_toggle(props, "i"),
        underline=(
            underline.get(_w("val")) != "none" if underline is not None else None
        ),
        color=f"#{color_value}" if color_value and color_value != "auto" else None,
        font=fonts.get(_w("ascii")) if fonts is not None else None,
        size=size_value / 2 if size_value is not None else None,
    )


_WORD_ALIGNMENT = {
    "left": "left",
    "start": "left",
    "center": "center",
    "right": "right",
    "end": "right",
    "both": "justify",
    "distribute": "justify",
}


def word_paragraph_attributes(paragraph: etree._Element) -> ParagraphAttributes:
    props = paragraph.find(_w("pPr"))
    if props is None:
        return ParagraphAttributes()

    heading_level = None
    style = props.find(_w("pStyle"))
    if style is not None:
        match = HEADING_PATTERN.search(style.get(_w("val"), ""))
        if match:
            heading_level = int(match.group(1))

    justification = props.find(_w("jc"))
    spacing = props.find(_w("spacing"))
    indent = props.find(_w("ind"))

    def spacing_attr(name: str) -> Optional[int]:
        return _as_int(spacing.get(_w(name))) if spacing is not None else None

    def indent_attr(*names: str) -> Optional[int]:
        if indent is None:
            return None
        for name in names:
            value = _as_int(indent.get(_w(name)))
            if value is not None:
                return value
        return None

    return ParagraphAttributes(
        heading_level=heading_level,
        alignment=(
            _WORD_ALIGNMENT.get(justification.get(_w("val"), ""))
            if justification is not None
            else None
        ),
        spacing_before=spacing_attr("before"),
        spacing_after=spacing_attr("after"),
        line_spacing=spacing_attr("line"),
        indent_left=indent_attr("left", "start"),
        indent_right=indent_attr("right", "end"),
        indent_first_line=indent_attr("firstLine"),
        indent_hanging=indent_attr("hanging"),
    )


def _drawing_run_attributes(run: etree._Element) -> RunAttributes:
    props = run.find(_a("rPr"))
    if props is None:
        return RunAttributes()
    color = props.find(f"{_a('solidFill')}/{_a('srgbClr')}")
    latin = props.find(_a("latin"))
    size = _as_int(props.get("sz"))
    underline = props.get("u")

    def toggle(name: str) -> Optional[bool]:
        value = props.get(name)
        if value is None:
            return None
        return value in {"1", "true"}

    return RunAttributes(
        bold=toggle("b"),
        italic=toggle("i"),
        underline=underline != "none" if underline is not None else None,
        color=f"#{color.get('val')}" if color is not None else None,
        font=latin.get("typeface") if latin is not None else None,
        size=size / 100 if size is not None else None,
    )


_DRAWING_ALIGNMENT = {"l": "left", "ctr": "center", "r": "right", "just": "justify"}


def _drawing_paragraph_attributes(paragraph: etree._Element) -> ParagraphAttributes:
    props = paragraph.find(_a("pPr"))
    if props is None:
        return ParagraphAttributes()

    def points(path: str) -> Optional[int]:
        element = props.find(path)
        return _as_int(element.get("val")) if element is not None else None

    first_line = _as_int(props.get("indent"))
    return ParagraphAttributes(
        alignment=_DRAWING_ALIGNMENT.get(props.get("algn", "")),
        spacing_before=points(f"{_a('spcBef')}/{_a('spcPts')}"),
        spacing_after=points(f"{_a('spcAft')}/{_a('spcPts')}"),
        line_spacing=points(f"{_a('lnSpc')}/{_a('spcPct')}"),
        indent_left=_as_int(props.get("marL")),
        indent_right=_as_int(props.get("marR")),
        indent_first_line=first_line if first_line and first_line > 0 else None,
        indent_hanging=-first_line if first_line and first_line < 0 else None,
    )


# --- Part profiles ---------------------------------------------------------


@dataclass(frozen=True)
class PartProfile:
    """Which parts of a package carry text, and how its text is marked up."""

    mandatory: Tuple[str, ...]
    optional: Tuple[str, ...]
    text_tags: Tuple[str, ...]
    run_tag: str
    paragraph_tag: str
    run_attributes: Callable[[etree._Element], RunAttributes]
    paragraph_attributes: Callable[[etree._Element], ParagraphAttributes]

    def mandatory_parts(self, container: Container) -> List[str]:
        """Resolve the mandatory patterns, failing when one matches nothing."""

        names: List[str] = []
        for pattern in self.mandatory:
            hits = container.match([pattern])
            if not hits:
                raise InvalidContainer(f"Mandatory part '{pattern}' is missing.")
            names.extend(hit for hit in hits if hit not in names)
        return names

    def text_parts(self, container: Container) -> List[str]:
        names = self.mandatory_parts(container)
        for pattern in self.optional:
            hits = container.match([pattern])
            if not hits:
                logger.debug("Optional part %s not present; skipping.", pattern)
            names.extend(hit for hit in hits if hit not in names)
        return names


WORD_PROFILE = PartProfile(
    mandatory=("word/document.xml",),
    optional=(
        "word/header*.xml",
        "word/footer*.xml",
        "word/footnotes.xml",
        "word/endnotes.xml",
    ),
    text_tags=(_w("t"),),
    run_tag=_w("r"),
    paragraph_tag=_w("p"),
    run_attributes=word_run_attributes,
    paragraph_attributes=word_paragraph_attributes,
)

PRESENTATION_PROFILE = PartProfile(
    mandatory=("ppt/slides/slide*.xml",),
    optional=("ppt/notesSlides/notesSlide*.xml",),
    text_tags=(_a("t"),),
    run_tag=_a("r"),
    paragraph_tag=_a("p"),
    run_attributes=_drawing_run_attributes,
    paragraph_attributes=_drawing_paragraph_attributes,
)

PROFILES: Dict[DocumentFormat, PartProfile] = {
    DocumentFormat.WORD: WORD_PROFILE,
    DocumentFormat.PRESENTATION: PRESENTATION_PROFILE,
}


def _parse_part(name: str, data: bytes) -> etree._ElementTree:
    parser = etree.XMLParser(resolve_entities=False, huge_tree=True)
    try:
        return etree.parse(io.BytesIO(data), parser)
    except etree.XMLSyntaxError as exc:
        raise InvalidContainer(f"Part '{name}' is not well-formed XML: {exc}") from exc


class StructuralExtractor:
    """Strips text-bearing parts down to a marker skeleton."""

    def __init__(self, profile: PartProfile, *, record_attributes: bool = False) -> None:
        self.profile = profile
        self.record_attributes = record_attributes

    def extract(self, container: Container) -> Extraction:
        part_names = self.profile.text_parts(container)
        raw_texts: List[str] = []
        trees: Dict[str, etree._ElementTree] = {}
        for name in part_names:
            raw_texts.append(container.read_text(name))
            trees[name] = _parse_part(name, container.read_bytes(name))

        # Entity references hide characters from the raw text; check node text too.
        for tree in trees.values():
            raw_texts.extend(node.text for node in tree.iter(*self.profile.text_tags) if node.text)
        delimiter = select_delimiter(raw_texts)

        segments: List[Segment] = []
        stream: List[str] = []
        for part_name, tree in trees.items():
            for node in tree.iter(*self.profile.text_tags):
                text = node.text
                if not text or not text.strip():
                    continue
                segment = self._build_segment(
                    index=len(segments) + 1,
                    text=text,
                    node=node,
                    part_name=part_name,
                    tree=tree,
                )
                segments.append(segment)
                stream.append(delimiter + text)
                node.text = f"{delimiter}{segment.index}"

        logger.debug(
            "Extracted %d segments from %d parts using delimiter %r.",
            len(segments),
            len(trees),
            delimiter,
        )
        return Extraction(
            parsed_text="".join(stream),
            skeleton=XmlSkeleton(
                delimiter=delimiter,
                parts=trees,
                text_tags=self.profile.text_tags,
            ),
            delimiter=delimiter,
            segments=segments,
        )

    def _build_segment(
        self,
        *,
        index: int,
        text: str,
        node: etree._Element,
        part_name: str,
        tree: etree._ElementTree,
    ) -> Segment:
        paragraph = next(node.iterancestors(self.profile.paragraph_tag), None)
        segment = Segment(
            index=index,
            text=text,
            location=SegmentLocation(part=part_name, node=tree.getpath(node)),
            paragraph_key=(
                f"{part_name}:{tree.getpath(paragraph)}" if paragraph is not None else None
            ),
        )
        if self.record_attributes:
            run = next(node.iterancestors(self.profile.run_tag), None)
            if run is not None:
                segment.run = self.profile.run_attributes(run)
            if paragraph is not None:
                segment.paragraph = self.profile.paragraph_attributes(paragraph)
        return segment

"""Re-inject translated text into a skeleton.

A translated chunk comes back as one string. Splitting it on the document's
delimiter recovers the segments in order. The result is reconciled against
the segments that were sent, and the outcome is one of three:

* every segment is accounted for, so all translations are used;
* fewer segments came back, so the missing tail falls back to its
  original text;
* the delimiter was damaged (missing, surplus segments, stray text before
  the first delimiter), so the whole chunk falls back to its original
  text.

The last two are reported as :class:`TranslationDegraded`. Nothing is ever
guessed, and no marker is ever left in the output.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from .errors import MarkerLeak, TranslationDegraded
from .extractor import W_NS
from .structures import Segment, TextSkeleton, TranslatedSegment, XmlSkeleton

XML_SPACE = "{http://www.w3.org/XML/1998/namespace}space"
# Characters outside the XML 1.0 Char production.
XML_ILLEGAL = re.compile("[^\x09\x0A\x0D\x20-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]")
PRESERVE_SPACE_TAGS = frozenset({f"{{{W_NS}}}t"})


@dataclass
class Reconciliation:
    """Translations recovered for one chunk, plus any degradation."""

    translations: List[TranslatedSegment]
    degraded: Optional[TranslationDegraded] = None


def restore_edge_whitespace(original: str, translated: str) -> str:
    """Give the translation the leading/trailing whitespace of the original."""

    core = translated.strip()
    leading = original[: len(original) - len(original.lstrip())]
    trailing = original[len(original.rstrip()) :]
    return f"{leading}{core}{trailing}"


def strip_xml_illegal(text: str) -> str:
    """Drop control characters that no XML document may contain."""

    return XML_ILLEGAL.sub("", text)


def split_translation(response: str, delimiter: str) -> Optional[List[str]]:
    """Split a translated stream into segment texts.

    Returns ``None`` when the delimiter is missing or non-blank text
    precedes the first delimiter.
    """

    head, separator, rest = response.partition(delimiter)
    if not separator or head.strip():
        return None
    return rest.split(delimiter)


def fallback(segments: Sequence[Segment]) -> List[TranslatedSegment]:
    return [
        TranslatedSegment(index=segment.index, text=segment.text, source="fallback")
        for segment in segments
    ]


def reconcile(
    chunk_index: int,
    segments: Sequence[Segment],
    response: str,
    delimiter: str,
) -> Reconciliation:
    """Align a chunk response with the segments that were sent."""

    expected = len(segments)
    parts = split_translation(response, delimiter)

    if parts is None or len(parts) > expected:
        received = 0 if parts is None else len(parts)
        reason = (
            "delimiter missing or corrupted"
            if parts is None
            else f"{received} segments returned for {expected} sent"
        )
        return Reconciliation(
            translations=fallback(segments),
            degraded=TranslationDegraded(
                f"Chunk {chunk_index}: {reason}; kept original text for the whole chunk.",
                chunk_index=chunk_index,
                expected=expected,
                received=received,
                fallback_indices=tuple(segment.index for segment in segments),
            ),
        )

    translations: List[TranslatedSegment] = []
    for segment, part in zip(segments, parts):
        part = strip_xml_illegal(part)
        if not part.strip():
            translations.append(
                TranslatedSegment(index=segment.index, text=segment.text, source="fallback")
            )
            continue
        translations.append(
            TranslatedSegment(
                index=segment.index,
                text=restore_edge_whitespace(segment.text, part),
            )
        )

    degraded = None
    if len(parts) < expected:
        missing = segments[len(parts) :]
        translations.extend(fallback(missing))
        degraded = TranslationDegraded(
            f"Chunk {chunk_index}: {len(parts)} segments returned for {expected} sent; "
            f"kept original text for {len(missing)} segments.",
            chunk_index=chunk_index,
            expected=expected,
            received=len(parts),
            fallback_indices=tuple(segment.index for segment in missing),
        )

    return Reconciliation(translations=translations, degraded=degraded)


def _marker_pattern(delimiter: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(delimiter)}(\d+)$")


def _resolve(
    index: int,
    translations: Mapping[int, str],
    segments: Mapping[int, Segment],
) -> str:
    if index in translations:
        return translations[index]
    segment = segments.get(index)
    if segment is None:
        raise MarkerLeak(f"Marker {index} has no matching segment.")
    return segment.text


def inject(
    skeleton: XmlSkeleton,
    translations: Mapping[int, str],
    segments: Mapping[int, Segment],
) -> Dict[str, bytes]:
    """Replace every marker in the skeleton and serialise the touched parts.

    Indices missing from ``translations`` get their original text back.
    """

    pattern = _marker_pattern(skeleton.delimiter)
    touched: List[str] = []
    for part_name, node in skeleton.iter_text_nodes():
        text = node.text
        if not text:
            continue
        match = pattern.match(text)
        if match is None:
            if skeleton.delimiter in text:
                raise MarkerLeak(f"Malformed marker {text!r} in part '{part_name}'.")
            continue
        value = _resolve(int(match.group(1)), translations, segments)
        node.text = value
        if node.tag in PRESERVE_SPACE_TAGS and value != value.strip():
            node.set(XML_SPACE, "preserve")
        if part_name not in touched:
            touched.append(part_name)

    return {part_name: skeleton.serialize(part_name) for part_name in touched}


def render_text(
    skeleton: TextSkeleton,
    translations: Mapping[int, str],
    segments: Mapping[int, Segment],
) -> str:
    """Join a text skeleton back together with translations in place."""

    pattern = _marker_pattern(skeleton.delimiter)
    pieces: List[str] = []
    for piece in skeleton.pieces:
        match = pattern.match(piece)
        if match is None:
            pieces.append(piece)
            continue
        pieces.append(_resolve(int(match.group(1)), translations, segments))
    return "".join(pieces)

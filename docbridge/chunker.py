"""Text splitting and chunk batching utilities."""

from __future__ import annotations

import re
from typing import List, Optional, Sequence

from .structures import Chunk, Segment

SENTENCE_PATTERN = re.compile(
    r".+?(?:[\.!?…‽。！？；؛](?:\s+|$)|$)", re.DOTALL
)
SENTENCE_END = re.compile(r"[\.!?…‽。！？]['\"”’)\]]*\s*$")
PARAGRAPH_BREAK = re.compile(r"(\r?\n[ \t]*(?:\r?\n[ \t]*)+)")


def _consume_pattern(pattern: re.Pattern[str], text: str) -> List[str]:
    """Split text by greedily consuming matches from the start of a string."""

    if not text:
        return []

    pieces: List[str] = []
    index = 0
    length = len(text)
    while index < length:
        match = pattern.match(text, index)
        if not match:
            pieces.append(text[index:])
            break
        end = match.end()
        if end == index:
            # Avoid zero-length loops by consuming at least one character.
            end += 1
        pieces.append(text[index:end])
        index = end
    return pieces


def split_paragraphs(text: str) -> List[str]:
    """Split text on blank lines, keeping the separators as their own pieces.

    Joining the result gives back ``text`` unchanged.
    """

    return [piece for piece in PARAGRAPH_BREAK.split(text) if piece]


def split_sentences(text: str) -> List[str]:
    """Split a paragraph into sentences, each keeping its trailing whitespace."""

    return _consume_pattern(SENTENCE_PATTERN, text)


def ends_sentence(text: str) -> bool:
    return bool(SENTENCE_END.search(text))


def _paragraph_boundary(left: Segment, right: Segment) -> bool:
    if left.paragraph_key is None or right.paragraph_key is None:
        return True
    return left.paragraph_key != right.paragraph_key


class Chunker:
    """Groups segments into chunks bounded by node count and characters.

    When a chunk has to be closed, the cut goes to the latest paragraph
    boundary, then the latest sentence boundary, and otherwise right before
    the incoming segment. Segments are never split: a segment that alone
    exceeds the character budget becomes an oversized chunk.
    """

    def __init__(
        self,
        *,
        max_segments: Optional[int] = None,
        max_characters: Optional[int] = None,
    ) -> None:
        if max_segments is not None and max_segments < 1:
            raise ValueError("max_segments must be at least 1.")
        if max_characters is not None and max_characters < 1:
            raise ValueError("max_characters must be at least 1.")
        self.max_segments = max_segments
        self.max_characters = max_characters

    @staticmethod
    def _cost(segment: Segment) -> int:
        # One extra character for the delimiter in front of each segment.
        return len(segment.text) + 1

    def _overflows(self, current: Sequence[Segment], incoming: Segment) -> bool:
        if self.max_segments is not None and len(current) + 1 > self.max_segments:
            return True
        if self.max_characters is not None:
            total = sum(self._cost(segment) for segment in current)
            if total + self._cost(incoming) > self.max_characters:
                return True
        return False

    def _cut_position(self, current: Sequence[Segment], incoming: Segment) -> int:
        sequence = list(current) + [incoming]
        for position in range(len(current), 0, -1):
            if _paragraph_boundary(sequence[position - 1], sequence[position]):
                return position
        for position in range(len(current), 0, -1):
            if ends_sentence(sequence[position - 1].text):
                return position
        return len(current)

    def chunk(self, segments: Sequence[Segment]) -> List[Chunk]:
        chunks: List[Chunk] = []
        current: List[Segment] = []

        for segment in segments:
            while current and self._overflows(current, segment):
                cut = self._cut_position(current, segment)
                chunks.append(Chunk(index=len(chunks) + 1, segments=current[:cut]))
                current = current[cut:]
            current.append(segment)

        if current:
            chunks.append(Chunk(index=len(chunks) + 1, segments=current))

        return chunks


def chunk_segments(
    segments: Sequence[Segment],
    *,
    max_segments: Optional[int] = None,
    max_characters: Optional[int] = None,
) -> List[Chunk]:
    """Convenience wrapper around :class:`Chunker`."""

    return Chunker(max_segments=max_segments, max_characters=max_characters).chunk(segments)

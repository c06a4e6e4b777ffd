"""Read access to the ZIP packages underlying Office documents."""

from __future__ import annotations

import fnmatch
import io
import re
import zipfile
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence

from .errors import InvalidContainer, PartNotFound

MANIFEST_PART = "[Content_Types].xml"

_NATURAL_SPLIT = re.compile(r"(\d+)")


def natural_key(name: str) -> List[object]:
    """Sort key placing ``header2.xml`` before ``header10.xml``."""

    return [
        int(token) if token.isdigit() else token.lower()
        for token in _NATURAL_SPLIT.split(name)
    ]


@dataclass(frozen=True)
class ContainerEntry:
    """A named entry and its decompressed bytes."""

    info: zipfile.ZipInfo
    data: bytes

    @property
    def name(self) -> str:
        return self.info.filename


class Container:
    """An ordered set of named parts read from a package archive."""

    def __init__(self, entries: Sequence[ContainerEntry]) -> None:
        self._entries: List[ContainerEntry] = list(entries)
        self._index: Dict[str, ContainerEntry] = {
            entry.name: entry for entry in self._entries
        }

    @classmethod
    def from_bytes(cls, data: bytes) -> "Container":
        """Load every entry of an archive, keeping order and metadata."""

        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                entries = [
                    ContainerEntry(info=info, data=archive.read(info))
                    for info in archive.infolist()
                ]
        except (
            zipfile.BadZipFile,
            zipfile.LargeZipFile,
            EOFError,
            NotImplementedError,
            RuntimeError,
        ) as exc:
            raise InvalidContainer(f"Document archive could not be read: {exc}") from exc

        container = cls(entries)
        if not container.has(MANIFEST_PART):
            raise InvalidContainer(
                f"Document archive is missing its manifest {MANIFEST_PART}."
            )
        return container

    def __iter__(self):
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def names(self) -> List[str]:
        return [entry.name for entry in self._entries]

    def has(self, name: str) -> bool:
        return name in self._index

    def entry(self, name: str) -> ContainerEntry:
        try:
            return self._index[name]
        except KeyError:
            raise PartNotFound(name) from None

    def read_bytes(self, name: str) -> bytes:
        return self.entry(name).data

    def read_text(self, name: str) -> str:
        """Return an XML part decoded as text."""

        raw = self.read_bytes(name)
        try:
            return raw.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise InvalidContainer(f"Part '{name}' is not valid UTF-8: {exc}") from exc

    def match(self, patterns: Iterable[str]) -> List[str]:
        """Return the entries matching each glob pattern, in pattern order."""

        found: List[str] = []
        for pattern in patterns:
            hits = [
                name
                for name in self._index
                if fnmatch.fnmatchcase(name, pattern) and name not in found
            ]
            found.extend(sorted(hits, key=natural_key))
        return found

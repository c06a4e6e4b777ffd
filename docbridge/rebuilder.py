"""Repack a container with replaced parts, leaving everything else intact."""

from __future__ import annotations

import io
import logging
import zipfile
from typing import Iterable, Mapping, Union

from .container import Container
from .errors import InvalidContainer, PartNotFound

logger = logging.getLogger(__name__)

PartContent = Union[bytes, str]


def _encode(content: PartContent) -> bytes:
    if isinstance(content, str):
        return content.encode("utf-8")
    return content


def _clone_info(info: zipfile.ZipInfo) -> zipfile.ZipInfo:
    """Copy entry metadata so writing never mutates the source container."""

    clone = zipfile.ZipInfo(info.filename, date_time=info.date_time)
    clone.compress_type = info.compress_type
    clone.external_attr = info.external_attr
    clone.create_system = info.create_system
    clone.comment = info.comment
    return clone


def rebuild_container(
    container: Container,
    replacements: Mapping[str, PartContent],
    *,
    mandatory: Iterable[str] = (),
) -> bytes:
    """Write a new archive where only ``replacements`` differ from the source.

    Entries keep their original order, names, timestamps and compression.
    A replacement aimed at a part that does not exist is skipped. A missing
    mandatory part is fatal.
    """

    for name in mandatory:
        if not container.has(name):
            raise InvalidContainer(f"Mandatory part '{name}' is missing.")

    pending = dict(replacements)
    for name in list(pending):
        try:
            container.entry(name)
        except PartNotFound as exc:
            logger.debug("Skipping replacement: %s", exc)
            del pending[name]

    buffer = io.BytesIO()
    try:
        with zipfile.ZipFile(buffer, "w") as archive:
            for entry in container:
                data = entry.data
                if entry.name in pending:
                    data = _encode(pending[entry.name])
                archive.writestr(_clone_info(entry.info), data)
    except (zipfile.BadZipFile, ValueError) as exc:
        raise InvalidContainer(f"Document archive could not be written: {exc}") from exc

    logger.debug(
        "Rebuilt container with %d replaced of %d entries.", len(pending), len(container)
    )
    return buffer.getvalue()

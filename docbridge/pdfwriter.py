"""Lay out translated text as a simple flowing PDF."""

from __future__ import annotations

import io
from typing import List

from reportlab.lib.pagesizes import letter
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

FONT_NAME = "Helvetica"
FONT_SIZE = 12
LINE_HEIGHT = FONT_SIZE * 1.2
MARGIN = 50


def wrap_line(line: str, max_width: float) -> List[str]:
    """Break one line of text on spaces so each piece fits ``max_width``.

    A single word wider than the line is kept whole.
    """

    pieces: List[str] = []
    current = ""
    for word in line.split(" "):
        candidate = f"{current} {word}" if current else word
        if current and stringWidth(candidate, FONT_NAME, FONT_SIZE) > max_width:
            pieces.append(current)
            current = word
        else:
            current = candidate
    if current:
        pieces.append(current)
    return pieces


def render_pdf(text: str) -> bytes:
    """Render ``text`` top to bottom, starting a new page when one fills up.

    Blank lines keep their vertical space.
    """

    buffer = io.BytesIO()
    width, height = letter
    pdf = canvas.Canvas(buffer, pagesize=letter)
    pdf.setFont(FONT_NAME, FONT_SIZE)
    max_width = width - 2 * MARGIN
    y = height - MARGIN

    for line in text.splitlines():
        for piece in wrap_line(line, max_width) or [""]:
            if y < MARGIN:
                pdf.showPage()
                pdf.setFont(FONT_NAME, FONT_SIZE)
                y = height - MARGIN
            if piece:
                pdf.drawString(MARGIN, y, piece)
            y -= LINE_HEIGHT

    pdf.save()
    return buffer.getvalue()

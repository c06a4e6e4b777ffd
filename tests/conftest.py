"""Shared fixtures: small in-memory Word, PowerPoint and PDF documents.

Word packages are assembled part by part so tests control every node. The
presentation fixture is produced with python-pptx and the PDF with a tiny
hand-written file whose cross-reference table is computed on the fly.
"""

import io
import zipfile
from typing import Dict, List, Optional, Sequence, Tuple

import pytest
from pptx import Presentation
from pptx.util import Inches

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PPTX_MIME = "application/vnd.openxmlformats-officedocument.presentationml.presentation"

SCENARIO_A = [
    ("Hello World", False),
    ("This is a test", True),
    ("Testing document translation", False),
]
SCENARIO_A_SPANISH = "§Hola Mundo§Esta es una prueba§Probando traducción de documentos"

# 1x1 transparent PNG
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06"
    b"\x00\x00\x00\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\x00\x01\x00\x00\x05\x00"
    b"\x01\r\n-\xb4\x00\x00\x00\x00IEND\xaeB`\x82"
)

CONTENT_TYPES = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Default Extension="png" ContentType="image/png"/>'
    '<Override PartName="/word/document.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
    '<Override PartName="/word/footer1.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.footer+xml"/>'
    "</Types>"
)

ROOT_RELS = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" '
    'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument" '
    'Target="word/document.xml"/>'
    "</Relationships>"
)

DOCUMENT_RELS = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" '
    'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/image" '
    'Target="media/image1.png"/>'
    "</Relationships>"
)

STYLES = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    f'<w:styles xmlns:w="{W_NS}"><w:docDefaults/></w:styles>'
)


def word_run(text: str, bold: bool = False) -> str:
    props = "<w:rPr><w:b/></w:rPr>" if bold else ""
    space = ' xml:space="preserve"' if text != text.strip() else ""
    return f"<w:r>{props}<w:t{space}>{text}</w:t></w:r>"


def word_paragraph(*runs: str, style: Optional[str] = None) -> str:
    props = f'<w:pPr><w:pStyle w:val="{style}"/></w:pPr>' if style else ""
    return f"<w:p>{props}{''.join(runs)}</w:p>"


def document_xml(body: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
        f'<w:document xmlns:w="{W_NS}" xmlns:r="{R_NS}">'
        f"<w:body>{body}<w:sectPr/></w:body></w:document>"
    )


def footer_xml(text: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
        f'<w:ftr xmlns:w="{W_NS}">{word_paragraph(word_run(text))}</w:ftr>'
    )


def build_package(parts: Sequence[Tuple[str, bytes | str]], *, stored: Sequence[str] = ()) -> bytes:
    """Zip ``parts`` in order; names in ``stored`` are written uncompressed."""

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in parts:
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = zipfile.ZipInfo(name, date_time=(2024, 1, 2, 3, 4, 6))
            info.compress_type = zipfile.ZIP_STORED if name in stored else zipfile.ZIP_DEFLATED
            archive.writestr(info, data)
    return buffer.getvalue()


def make_docx(
    paragraphs: Sequence[Tuple[str, bool]] = SCENARIO_A,
    *,
    body: Optional[str] = None,
    footer: Optional[str] = "Page footer",
    include_manifest: bool = True,
) -> bytes:
    """Build a Word package with one run per paragraph, an image and a footer."""

    if body is None:
        body = "".join(word_paragraph(word_run(text, bold)) for text, bold in paragraphs)
    parts: List[Tuple[str, bytes | str]] = []
    if include_manifest:
        parts.append(("[Content_Types].xml", CONTENT_TYPES))
    parts.extend(
        [
            ("_rels/.rels", ROOT_RELS),
            ("word/document.xml", document_xml(body)),
            ("word/_rels/document.xml.rels", DOCUMENT_RELS),
            ("word/styles.xml", STYLES),
            ("word/media/image1.png", PNG_BYTES),
        ]
    )
    if footer is not None:
        parts.append(("word/footer1.xml", footer_xml(footer)))
    return build_package(parts, stored=("word/media/image1.png",))


def make_pptx(slides: Sequence[Sequence[str]]) -> bytes:
    """Build a presentation with one text box per string on blank slides."""

    presentation = Presentation()
    layout = presentation.slide_layouts[6]
    for texts in slides:
        slide = presentation.slides.add_slide(layout)
        for position, text in enumerate(texts):
            box = slide.shapes.add_textbox(
                Inches(1), Inches(1 + position), Inches(6), Inches(1)
            )
            box.text_frame.text = text
    buffer = io.BytesIO()
    presentation.save(buffer)
    return buffer.getvalue()


def make_pdf(pages: Sequence[str]) -> bytes:
    """Build a PDF with one line of Helvetica text per page."""

    page_count = len(pages)
    font_id = 3 + 2 * page_count
    objects: Dict[int, bytes] = {
        1: b"<< /Type /Catalog /Pages 2 0 R >>",
        2: (
            "<< /Type /Pages /Kids ["
            + " ".join(f"{3 + 2 * i} 0 R" for i in range(page_count))
            + f"] /Count {page_count} >>"
        ).encode("ascii"),
        font_id: b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    }
    for i, text in enumerate(pages):
        page_id = 3 + 2 * i
        content_id = page_id + 1
        stream = f"BT /F1 18 Tf 72 720 Td ({text}) Tj ET".encode("latin-1")
        objects[page_id] = (
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            f"/Contents {content_id} 0 R /Resources << /Font << /F1 {font_id} 0 R >> >> >>"
        ).encode("ascii")
        objects[content_id] = (
            f"<< /Length {len(stream)} >>\nstream\n".encode("ascii") + stream + b"\nendstream"
        )

    output = bytearray(b"%PDF-1.4\n")
    offsets: Dict[int, int] = {}
    for object_id in sorted(objects):
        offsets[object_id] = len(output)
        output += f"{object_id} 0 obj\n".encode("ascii") + objects[object_id] + b"\nendobj\n"

    xref_offset = len(output)
    size = max(objects) + 1
    output += f"xref\n0 {size}\n".encode("ascii")
    output += b"0000000000 65535 f \n"
    for object_id in range(1, size):
        output += f"{offsets[object_id]:010d} 00000 n \n".encode("ascii")
    output += (
        f"trailer\n<< /Size {size} /Root 1 0 R >>\nstartxref\n{xref_offset}\n%%EOF\n"
    ).encode("ascii")
    return bytes(output)


@pytest.fixture
def scenario_docx() -> bytes:
    """Three paragraphs, the second one bold, plus an image and a footer."""
    return make_docx()


@pytest.fixture
def sample_pptx() -> bytes:
    return make_pptx([["Quarterly results", "Revenue grew"], ["Thank you"]])


@pytest.fixture
def sample_pdf() -> bytes:
    return make_pdf(["Hello PDF", "Second page"])

"""
Document parsing service for DOCX lesson plans.

Extracts a plain-text rendition of the document in body order (headings,
paragraphs, table rows and inline equation text) for use as model context.
Returns a ParsedDocument with full_text, sections and metadata
(word_count, paragraph_count, table_count, has_equations, has_images, ...).
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Union

from docx import Document as DocxDocument
from docx.document import Document as DocxDocumentType
from docx.oxml.ns import qn
from docx.table import Table
from docx.text.paragraph import Paragraph

from app.services.errors import ExtractionError

logger = logging.getLogger(__name__)


HEADING_STYLES: Dict[str, int] = {
    "heading 1": 1,
    "heading 2": 2,
    "heading 3": 3,
    "heading 4": 3,
    "heading 5": 3,
    "title": 1,
    "subtitle": 2,
}

# Text-bearing nodes: ordinary runs and Office Math runs
_TEXT_TAGS = (qn("w:t"), qn("m:t"))
_RUN_TAG = qn("w:r")
_TAB_TAG = qn("w:tab")
_BR_TAG = qn("w:br")
_CR_TAG = qn("w:cr")
_OMATH_TAG = qn("m:oMath")
_OLE_TAG = "{urn:schemas-microsoft-com:office:office}OLEObject"
_BLIP_TAG = qn("a:blip")


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class ParsedSection:
    """A logical section of text extracted from a document."""

    title: str          # Heading text; empty string for body-only sections
    content: str        # Body text belonging to this section
    level: int          # Heading depth: 0 = no heading, 1 = H1, 2 = H2, 3 = H3+


@dataclass
class ParsedDocument:
    """
    Output of the DocumentParser.

    Attributes:
        full_text:    Complete text of the document in body order.
        sections:     Ordered list of ParsedSection objects.
        metadata:     Dict with keys: title, author, subject, word_count,
                      paragraph_count, table_count, has_equations,
                      has_images, file_type.
    """

    full_text: str
    sections: List[ParsedSection] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class DocumentParser:
    """Parses DOCX documents into structured ParsedDocument objects."""

    async def parse_document(self, data: bytes, filename: str = "") -> ParsedDocument:
        """
        Parse a DOCX payload and return a structured ParsedDocument.

        Args:
            data:     Raw bytes of the uploaded file.
            filename: Original name, only used for log messages.

        Returns:
            ParsedDocument with text, sections and metadata.

        Raises:
            ExtractionError: The payload is not a readable DOCX.
        """
        try:
            doc = DocxDocument(io.BytesIO(data))
        except Exception as exc:
            logger.warning("Cannot open DOCX %r: %s", filename, exc)
            raise ExtractionError(
                "Không đọc được file Word. File có thể bị hỏng hoặc đặt mật khẩu."
            ) from exc

        sections: List[ParsedSection] = []
        all_text_parts: List[str] = []
        paragraph_count = 0
        table_count = 0

        current_section = ParsedSection(title="", content="", level=0)

        for block in iter_block_items(doc):
            if isinstance(block, Table):
                table_count += 1
                table_text = _table_text(block)
                if table_text:
                    current_section.content += "\n" + table_text
                    all_text_parts.append(table_text)
                continue

            text = paragraph_text(block).strip()
            if not text:
                continue
            paragraph_count += 1

            level = heading_level(block)

            if level > 0:
                # Flush previous section
                if current_section.title or current_section.content.strip():
                    sections.append(current_section)
                current_section = ParsedSection(title=text, content="", level=level)
                all_text_parts.append(f"\n{'#' * level} {text}\n")
            else:
                current_section.content += " " + text
                all_text_parts.append(text)

        # Flush final section
        if current_section.title or current_section.content.strip():
            sections.append(current_section)

        body = doc.element.body
        core = doc.core_properties
        full_text = "\n".join(all_text_parts).strip()

        metadata: Dict[str, Any] = {
            "title": core.title or "",
            "author": core.author or "",
            "subject": core.subject or "",
            "word_count": len(full_text.split()),
            "paragraph_count": paragraph_count,
            "table_count": table_count,
            "has_equations": _contains(body, _OMATH_TAG) or _contains(body, _OLE_TAG),
            "has_images": _contains(body, _BLIP_TAG),
            "file_type": "docx",
        }

        logger.info(
            "Parsed %r: %d paragraph(s), %d table(s), %d word(s)",
            filename,
            paragraph_count,
            table_count,
            metadata["word_count"],
        )

        return ParsedDocument(full_text=full_text, sections=sections, metadata=metadata)


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

def iter_block_items(doc: DocxDocumentType) -> Iterator[Union[Paragraph, Table]]:
    """
    Yield the body paragraphs and tables of *doc* in document order.

    python-docx's ``paragraphs`` and ``tables`` accessors lose the
    interleaving, so walk the XML children of the body.
    """
    for child in doc.element.body.iterchildren():
        if child.tag == qn("w:p"):
            yield Paragraph(child, doc)
        elif child.tag == qn("w:tbl"):
            yield Table(child, doc)


def paragraph_text(paragraph: Paragraph) -> str:
    """
    Paragraph text including inline Office Math (``m:t``) runs.

    Run-level tabs become ``\\t`` and line breaks ``\\n``, as in
    ``Paragraph.text``.  Page and column breaks add nothing.
    """
    parts: List[str] = []
    for node in paragraph._p.iter(*_TEXT_TAGS, _TAB_TAG, _BR_TAG, _CR_TAG):
        if node.tag in _TEXT_TAGS:
            parts.append(node.text or "")
        elif node.tag == _TAB_TAG:
            # w:tab also names tab stops inside w:pPr/w:tabs
            if node.getparent().tag == _RUN_TAG:
                parts.append("\t")
        elif node.tag == _CR_TAG:
            parts.append("\n")
        elif node.get(qn("w:type"), "textWrapping") == "textWrapping":
            parts.append("\n")
    return "".join(parts)


def _table_text(table: Table) -> str:
    """Render a table as pipe-delimited rows, once per merged cell."""
    rows: List[str] = []
    for row in table.rows:
        seen: List[Any] = []
        cells: List[str] = []
        for cell in row.cells:
            if cell._tc in seen:
                continue
            seen.append(cell._tc)
            text = " ".join(
                paragraph_text(p).strip() for p in cell.paragraphs if paragraph_text(p).strip()
            )
            if text:
                cells.append(text)
        if cells:
            rows.append(" | ".join(cells))
    return "\n".join(rows)


def heading_level(para: Paragraph) -> int:
    """Heading depth from the paragraph style; 0 for body text."""
    style_name = para.style.name.lower() if para.style is not None and para.style.name else ""
    level = HEADING_STYLES.get(style_name, 0)

    # Treat a short, entirely-bold paragraph as an implicit H3
    if level == 0 and is_implicit_heading(para):
        level = 3
    return level


def is_implicit_heading(para: Paragraph) -> bool:
    """Return True if a DOCX paragraph looks like an unlabelled heading.

    Criteria: short text (≤ 15 words) where every non-whitespace run is bold.
    """
    text = para.text.strip()
    if not text or len(text.split()) > 15:
        return False
    runs_with_text = [r for r in para.runs if r.text.strip()]
    return bool(runs_with_text) and all(r.bold for r in runs_with_text)


def _contains(element: Any, tag: str) -> bool:
    return next(element.iter(tag), None) is not None

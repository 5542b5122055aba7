"""
Injects generated digital-competency content into an uploaded lesson plan.

The original document is loaded from bytes, new paragraphs are added as
siblings next to their anchors, and the result is serialised back to bytes.
Existing elements are never edited or removed, so runs, formatting, images
and embedded equation objects (MathType OLE, Office Math) survive untouched.

Public API
----------
DocxInjector.inject(data, content, on_progress, options)              -> bytes
DocxInjector.inject_with_report(data, content, on_progress, options)  -> InjectionResult
"""
from __future__ import annotations

import dataclasses
import io
import logging
import re
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Set

from docx import Document as DocxDocument
from docx.document import Document as DocxDocumentType
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import RGBColor
from docx.table import Table
from docx.text.paragraph import Paragraph

from app.config import settings
from app.models.schemas import ActivityIntegration, GeneratedContent, IntegrationOptions
from app.services.document_parser import heading_level, paragraph_text
from app.services.errors import ExtractionError
from app.utils.helpers import fold_text, normalize_text, split_bold_segments

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

# Heading keywords, compared against case-folded paragraph text
OBJECTIVES_KEYWORDS = ("mục tiêu", "yêu cầu cần đạt", "objectives")
MATERIALS_KEYWORDS = (
    "thiết bị dạy học",
    "học liệu",
    "đồ dùng dạy học",
    "chuẩn bị",
    "materials",
)

APPENDIX_TITLE = "PHỤ LỤC: BẢNG TÍCH HỢP NĂNG LỰC SỐ"

MAX_HEADING_WORDS = 15

_TXBX_TAG = qn("w:txbxContent")
_TABLE_SEPARATOR_CELL = re.compile(r"^:?-+:?$")


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class InjectionResult:
    """Modified document bytes plus a summary of what was inserted."""

    content: bytes
    objectives_inserted: bool = False
    materials_inserted: bool = False
    activities_inserted: int = 0
    missing_anchors: List[str] = dataclasses.field(default_factory=list)
    missing_sections: List[str] = dataclasses.field(default_factory=list)
    appendix_appended: bool = False


# ---------------------------------------------------------------------------
# Injector
# ---------------------------------------------------------------------------

class DocxInjector:
    """Merges a GeneratedContent bundle into a DOCX payload."""

    def __init__(self, color: Optional[str] = None) -> None:
        self.color = RGBColor.from_string((color or settings.INSERTION_COLOR).upper())

    def inject(
        self,
        data: bytes,
        content: GeneratedContent,
        on_progress: Optional[ProgressCallback] = None,
        options: Optional[IntegrationOptions] = None,
    ) -> bytes:
        """Return the bytes of a new document with *content* merged in."""
        return self.inject_with_report(data, content, on_progress, options).content

    def inject_with_report(
        self,
        data: bytes,
        content: GeneratedContent,
        on_progress: Optional[ProgressCallback] = None,
        options: Optional[IntegrationOptions] = None,
    ) -> InjectionResult:
        """
        Merge *content* into the document held in *data*.

        Steps
        -----
        1. Read the document from a private copy of the bytes.
        2. Insert objectives / materials after their section headings.
        3. Insert every activity record after the paragraph holding its anchor.
        4. Append the appendix table at the end of the body.
        5. Serialise the result.

        Missing headings and anchors are reported through *on_progress* and
        skipped; they never abort the run.

        Raises:
            ExtractionError: *data* is not a readable DOCX.
        """
        notify = on_progress or (lambda _msg: None)
        options = options or IntegrationOptions()

        notify(">> Đang mở file gốc để ghép nội dung...")
        try:
            doc = DocxDocument(io.BytesIO(bytes(data)))
        except Exception as exc:
            raise ExtractionError(
                "Không mở được file Word để ghép nội dung."
            ) from exc

        editor = _DocumentEditor(doc, self.color)
        result = InjectionResult(content=b"")

        # ---- Objectives / materials ----
        result.objectives_inserted = self._insert_section(
            editor,
            label="Mục tiêu",
            text=content.objectives_addition,
            keywords=OBJECTIVES_KEYWORDS,
            enabled=options.insert_objectives,
            notify=notify,
            result=result,
        )
        result.materials_inserted = self._insert_section(
            editor,
            label="Thiết bị dạy học và học liệu",
            text=content.materials_addition,
            keywords=MATERIALS_KEYWORDS,
            enabled=options.insert_materials,
            notify=notify,
            result=result,
        )

        # ---- Activities ----
        if not options.insert_activities:
            if content.activities_integration:
                notify("-- Bỏ qua chèn nội dung vào hoạt động (đã tắt).")
        elif content.activities_integration:
            notify(
                f">> Đang định vị {len(content.activities_integration)} điểm chèn hoạt động..."
            )
            self._insert_activities(editor, content.activities_integration, notify, result)

        # ---- Appendix ----
        if content.appendix_table:
            if options.append_table:
                editor.append_appendix(APPENDIX_TITLE, content.appendix_table)
                result.appendix_appended = True
                notify("✓ Đã thêm bảng phụ lục năng lực số vào cuối giáo án.")
            else:
                notify("-- Bỏ qua bảng phụ lục (đã tắt).")

        # ---- Finalize ----
        notify(">> Đang đóng gói file kết quả...")
        buffer = io.BytesIO()
        doc.save(buffer)
        result.content = buffer.getvalue()

        logger.info(
            "Injection done: objectives=%s materials=%s activities=%d "
            "missing_anchors=%d appendix=%s",
            result.objectives_inserted,
            result.materials_inserted,
            result.activities_inserted,
            len(result.missing_anchors),
            result.appendix_appended,
        )
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _insert_section(
        self,
        editor: "_DocumentEditor",
        label: str,
        text: str,
        keywords: Sequence[str],
        enabled: bool,
        notify: ProgressCallback,
        result: InjectionResult,
    ) -> bool:
        if not text:
            return False
        if not enabled:
            notify(f"-- Bỏ qua phần '{label}' (đã tắt).")
            return False

        heading = editor.find_heading(keywords)
        if heading is None:
            notify(f"⚠ Không tìm thấy mục '{label}' trong giáo án, bỏ qua.")
            result.missing_sections.append(label)
            return False

        editor.insert_after(heading, text)
        notify(f"✓ Đã chèn nội dung năng lực số vào mục '{label}'.")
        return True

    def _insert_activities(
        self,
        editor: "_DocumentEditor",
        activities: Sequence[ActivityIntegration],
        notify: ProgressCallback,
        result: InjectionResult,
    ) -> None:
        for activity in activities:
            anchor = editor.find_anchor(activity.anchor_text)
            short = _shorten(activity.anchor_text)
            if anchor is None:
                notify(f"⚠ Không tìm thấy vị trí: \"{short}\" - bỏ qua.")
                result.missing_anchors.append(activity.anchor_text)
                continue
            editor.insert_after(anchor, activity.content)
            result.activities_inserted += 1
            notify(f"✓ Đã chèn hoạt động sau: \"{short}\"")


# ---------------------------------------------------------------------------
# Low-level editing
# ---------------------------------------------------------------------------

class _DocumentEditor:
    """Per-call editing state: the loaded document and the nodes we created."""

    def __init__(self, doc: DocxDocumentType, color: RGBColor) -> None:
        self.doc = doc
        self.color = color
        self._inserted: Set = set()
        # anchor paragraph -> last paragraph inserted after it
        self._cursor: Dict = {}

    # ---- Lookup ----

    def iter_original_paragraphs(self) -> Iterator[Paragraph]:
        """Every paragraph of the body, tables included, in document order."""
        for p in self.doc.element.body.iter(qn("w:p")):
            if p in self._inserted or _in_textbox(p):
                continue
            yield Paragraph(p, self.doc)

    def find_heading(self, keywords: Sequence[str]) -> Optional[Paragraph]:
        """
        First short paragraph whose text mentions one of *keywords*.

        Heading-styled or all-bold paragraphs win over plain body lines, so
        "Chuẩn bị: ..." in the text does not shadow the real section title.
        """
        fallback: Optional[Paragraph] = None
        for para in self.iter_original_paragraphs():
            folded = fold_text(paragraph_text(para))
            if not folded or len(folded.split()) > MAX_HEADING_WORDS:
                continue
            if not any(keyword in folded for keyword in keywords):
                continue
            if heading_level(para) > 0:
                return para
            if fallback is None:
                fallback = para
        return fallback

    def find_anchor(self, anchor_text: str) -> Optional[Paragraph]:
        """
        First paragraph containing *anchor_text*.

        An exact substring match anywhere in the document wins over a
        whitespace/Unicode-normalised one.
        """
        if not anchor_text.strip():
            return None

        paragraphs = list(self.iter_original_paragraphs())
        for para in paragraphs:
            if anchor_text in paragraph_text(para):
                return para

        wanted = normalize_text(anchor_text)
        for para in paragraphs:
            if wanted in normalize_text(paragraph_text(para)):
                return para
        return None

    # ---- Insertion ----

    def insert_after(self, anchor: Paragraph, text: str) -> None:
        """Insert one coloured paragraph per non-blank line of *text*."""
        previous = self._cursor.get(anchor._p, anchor._p)
        for line in text.splitlines():
            if not line.strip():
                continue
            new_p = OxmlElement("w:p")
            previous.addnext(new_p)
            self._inserted.add(new_p)
            self._fill(Paragraph(new_p, anchor._parent), line.rstrip())
            previous = new_p
        self._cursor[anchor._p] = previous

    def append_appendix(self, title: str, text: str) -> None:
        """Append a title, the pipe-delimited rows as a table, and any loose lines."""
        leading, rows, trailing = _split_table_text(text)

        title_para = self.doc.add_paragraph()
        self._inserted.add(title_para._p)
        self._fill(title_para, title, bold=True)

        for line in leading:
            self._append_line(line)

        if rows:
            width = max(len(row) for row in rows)
            table = self.doc.add_table(rows=len(rows), cols=width)
            _apply_borders(table)
            for r_idx, row in enumerate(rows):
                for c_idx in range(width):
                    value = row[c_idx] if c_idx < len(row) else ""
                    cell_para = table.cell(r_idx, c_idx).paragraphs[0]
                    self._inserted.add(cell_para._p)
                    if value:
                        self._fill(cell_para, value, bold=(r_idx == 0))

        for line in trailing:
            self._append_line(line)

    def _append_line(self, line: str) -> None:
        para = self.doc.add_paragraph()
        self._inserted.add(para._p)
        self._fill(para, line)

    def _fill(self, paragraph: Paragraph, line: str, bold: bool = False) -> None:
        for segment, is_bold in split_bold_segments(line):
            run = paragraph.add_run(segment)
            run.font.color.rgb = self.color
            if bold or is_bold:
                run.bold = True


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

def _in_textbox(p) -> bool:
    parent = p.getparent()
    while parent is not None:
        if parent.tag == _TXBX_TAG:
            return True
        parent = parent.getparent()
    return False


def _split_table_text(text: str):
    """Split appendix text into (lines before, table rows, lines after)."""
    leading: List[str] = []
    rows: List[List[str]] = []
    trailing: List[str] = []

    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        if "|" not in line:
            (trailing if rows else leading).append(line)
            continue
        cells = [cell.strip() for cell in line.strip("|").split("|")]
        if all(not cell or _TABLE_SEPARATOR_CELL.match(cell) for cell in cells):
            continue
        rows.append(cells)

    return leading, rows, trailing


def _apply_borders(table: Table) -> None:
    """Give every cell single borders without relying on a named table style."""
    tbl_pr = table._tbl.tblPr
    borders = OxmlElement("w:tblBorders")
    for edge in ("top", "left", "bottom", "right", "insideH", "insideV"):
        element = OxmlElement(f"w:{edge}")
        element.set(qn("w:val"), "single")
        element.set(qn("w:sz"), "4")
        element.set(qn("w:space"), "0")
        element.set(qn("w:color"), "auto")
        borders.append(element)
    # Schema order puts tblBorders before tblLook
    look = tbl_pr.find(qn("w:tblLook"))
    if look is not None:
        look.addprevious(borders)
    else:
        tbl_pr.append(borders)


def _shorten(text: str, limit: int = 50) -> str:
    text = normalize_text(text)
    return text if len(text) <= limit else text[: limit - 3] + "..."

"""Tests for DOCX text extraction."""
import pytest
from docx import Document
from docx.oxml import parse_xml
from docx.shared import Inches

from app.services.document_parser import DocumentParser, paragraph_text
from app.services.errors import ExtractionError

from tests.conftest import build_lesson_docx, save_docx


@pytest.mark.asyncio
async def test_extracts_text_in_body_order():
    parsed = await DocumentParser().parse_document(build_lesson_docx(), "bai5.docx")
    text = parsed.full_text

    assert "# I. MỤC TIÊU" in text
    assert "Step 1: intro" in text
    assert "Hoạt động 2: Hình thành kiến thức | Sản phẩm" in text
    # Table rows come before the paragraph that follows the table
    assert text.index("Bảng nhóm") < text.index("Hoạt động 3: Luyện tập")


@pytest.mark.asyncio
async def test_sections_and_metadata():
    parsed = await DocumentParser().parse_document(build_lesson_docx())

    titles = [s.title for s in parsed.sections]
    assert "I. MỤC TIÊU" in titles
    assert "III. TIẾN TRÌNH DẠY HỌC" in titles
    assert parsed.metadata["table_count"] == 1
    assert parsed.metadata["file_type"] == "docx"
    assert parsed.metadata["has_equations"] is False
    assert parsed.metadata["word_count"] > 20


@pytest.mark.asyncio
async def test_inline_equation_text_is_included():
    doc = Document()
    para = doc.add_paragraph("Nghiệm: ")
    para._p.append(
        parse_xml(
            '<m:oMath xmlns:m="http://schemas.openxmlformats.org/officeDocument/2006/math">'
            "<m:r><m:t>x=2</m:t></m:r></m:oMath>"
        )
    )
    parsed = await DocumentParser().parse_document(save_docx(doc))

    assert "Nghiệm: x=2" in parsed.full_text
    assert parsed.metadata["has_equations"] is True


@pytest.mark.asyncio
async def test_merged_cells_are_read_once():
    doc = Document()
    table = doc.add_table(rows=1, cols=3)
    merged = table.cell(0, 0).merge(table.cell(0, 1))
    merged.text = "Gộp"
    table.cell(0, 2).text = "Riêng"
    parsed = await DocumentParser().parse_document(save_docx(doc))

    assert parsed.full_text == "Gộp | Riêng"


@pytest.mark.asyncio
async def test_unreadable_file_raises_extraction_error():
    with pytest.raises(ExtractionError):
        await DocumentParser().parse_document(b"not a zip archive", "broken.docx")


@pytest.mark.asyncio
async def test_tabs_and_line_breaks_are_kept():
    doc = Document()
    first = doc.add_paragraph()
    first.paragraph_format.tab_stops.add_tab_stop(Inches(1))
    run = first.add_run("Hoạt động 1:")
    run.add_tab()
    run.add_text("Khởi động")
    second = doc.add_paragraph()
    run = second.add_run("Dòng một")
    run.add_break()
    run.add_text("Dòng hai")

    parsed = await DocumentParser().parse_document(save_docx(doc))

    # Tab stops in the paragraph properties add nothing
    assert parsed.full_text == "Hoạt động 1:\tKhởi động\nDòng một\nDòng hai"
    assert paragraph_text(first) == first.text
    assert paragraph_text(second) == second.text

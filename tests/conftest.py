"""
Shared fixtures for NLS Integrator tests.

The Gemini client is replaced with an in-process fake through FastAPI's
dependency overrides, so no test touches the network.  Lesson plans are
built in memory with python-docx.
"""
from __future__ import annotations

import asyncio
import io
from typing import AsyncGenerator, List, Optional

import pytest
import pytest_asyncio
from docx import Document
from httpx import ASGITransport, AsyncClient

from app.dependencies.credentials import get_text_generator
from app.main import app
from app.services.llm_client import TextGenerator
from app.services.pipeline_manager import pipeline_manager


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeGenerator(TextGenerator):
    """Returns a canned response (or raises) and records every prompt."""

    def __init__(self, response: str = "", error: Optional[Exception] = None) -> None:
        self.response = response
        self.error = error
        self.prompts: List[str] = []
        self.gate: Optional[asyncio.Event] = None

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.response


SAMPLE_RESPONSE = """\
Here is the plan.
===BAT_DAU_MUC_TIEU===
- Sử dụng phần mềm GeoGebra để vẽ đồ thị.
- Khai thác **học liệu số** an toàn.
===KET_THUC_MUC_TIEU===
===BAT_DAU_HOC_LIEU===
Phần mềm GeoGebra, máy tính có kết nối Internet.
===KET_THUC_HOC_LIEU===
===BAT_DAU_HOAT_DONG===
ANCHOR: Step 1
CONTENT: Học sinh dùng GeoGebra kiểm tra nghiệm.
---PHAN_CACH_HOAT_DONG---
ANCHOR: Hoạt động 2: Hình thành kiến thức
CONTENT: Nhóm tra cứu tài liệu trên Internet.
---PHAN_CACH_HOAT_DONG---
ANCHOR: Không có trong giáo án
CONTENT: Nội dung này sẽ bị bỏ qua.
===KET_THUC_HOAT_DONG===
===BAT_DAU_PHU_LUC===
| Hoạt động | Năng lực số | Mức độ |
|---|---|---|
| Khởi động | 1.1 Duyệt, tìm kiếm dữ liệu | TC2 |
| Hình thành kiến thức | 3.1 Phát triển nội dung số | TC2 |
===KET_THUC_PHU_LUC===
"""


# ---------------------------------------------------------------------------
# Document builders
# ---------------------------------------------------------------------------

def build_lesson_docx() -> bytes:
    """A small Vietnamese lesson plan with headings, activities and a table."""
    doc = Document()
    doc.add_heading("Bài 5: Phương trình bậc hai một ẩn", level=1)
    doc.add_heading("I. MỤC TIÊU", level=2)
    doc.add_paragraph(
        "1. Kiến thức: Học sinh nắm được công thức nghiệm của phương trình bậc hai."
    )
    doc.add_heading("II. THIẾT BỊ DẠY HỌC VÀ HỌC LIỆU", level=2)
    doc.add_paragraph("Máy chiếu, phiếu học tập, thước kẻ.")
    doc.add_heading("III. TIẾN TRÌNH DẠY HỌC", level=2)
    doc.add_paragraph("Step 1: intro")
    doc.add_paragraph("Giáo viên nêu bài toán mở đầu về diện tích mảnh vườn.")

    table = doc.add_table(rows=2, cols=2)
    table.cell(0, 0).text = "Hoạt động 2: Hình thành kiến thức"
    table.cell(0, 1).text = "Sản phẩm"
    table.cell(1, 0).text = "Học sinh thảo luận nhóm"
    table.cell(1, 1).text = "Bảng nhóm"

    doc.add_paragraph("Hoạt động 3: Luyện tập")
    return save_docx(doc)


def save_docx(doc) -> bytes:
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def load_docx(data: bytes):
    return Document(io.BytesIO(data))


DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def lesson_form(subject: str = "Toán", grade: str = "Lớp 9", **extra) -> dict:
    form = {"subject": subject, "grade": grade}
    form.update(extra)
    return form


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_pipeline_manager():
    pipeline_manager.reset()
    yield
    pipeline_manager.reset()


@pytest.fixture
def lesson_docx() -> bytes:
    return build_lesson_docx()


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator(SAMPLE_RESPONSE)


@pytest_asyncio.fixture
async def client(fake_generator: FakeGenerator) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the text generator
    overridden to the per-test fake.
    """

    async def _override_get_text_generator():
        return fake_generator

    app.dependency_overrides[get_text_generator] = _override_get_text_generator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SESSION_HEADERS = {"X-Session-Id": "test-session-1"}
SESSION_HEADERS_2 = {"X-Session-Id": "test-session-2"}

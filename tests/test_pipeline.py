"""Tests for the integration pipeline and its immutable state."""
import dataclasses

import pytest
from docx import Document

from app.models.schemas import GradeType, IntegrationOptions, IntegrationPhase, SubjectType
from app.services.errors import AIQuotaExceededError, FileTooLargeError, InputValidationError
from app.services.pipeline import (
    IntegrationPipeline,
    IntegrationState,
    LessonUpload,
    validate_upload,
)

from tests.conftest import SAMPLE_RESPONSE, FakeGenerator, build_lesson_docx, load_docx, save_docx


def _upload(data: bytes = None, filename: str = "bai5.docx", **kwargs) -> LessonUpload:
    fields = {
        "filename": filename,
        "data": build_lesson_docx() if data is None else data,
        "subject": SubjectType.TOAN,
        "grade": GradeType.LOP_9,
    }
    fields.update(kwargs)
    return LessonUpload(**fields)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def test_validate_rejects_non_docx():
    with pytest.raises(InputValidationError):
        validate_upload(_upload(filename="bai5.pdf"))


def test_validate_rejects_missing_subject_or_grade():
    with pytest.raises(InputValidationError):
        validate_upload(_upload(subject=None))
    with pytest.raises(InputValidationError):
        validate_upload(_upload(grade=None))


def test_validate_rejects_empty_file():
    with pytest.raises(InputValidationError):
        validate_upload(_upload(data=b""))


def test_validate_rejects_oversized_file(monkeypatch):
    from app.config import settings

    monkeypatch.setattr(settings, "MAX_FILE_SIZE", 10)
    with pytest.raises(FileTooLargeError) as exc_info:
        validate_upload(_upload())
    assert exc_info.value.status_code == 413


def test_validate_accepts_uppercase_suffix():
    validate_upload(_upload(filename="BAI5.DOCX"))


# ---------------------------------------------------------------------------
# Full runs
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_successful_run_produces_artifact():
    generator = FakeGenerator(SAMPLE_RESPONSE)
    states = []

    state = await IntegrationPipeline(generator).run(_upload(), on_update=states.append)

    assert state.phase == IntegrationPhase.COMPLETED
    assert not state.is_processing
    assert state.error is None
    assert state.result.filename == "NLS_bai5.docx"
    assert state.logs[0] == "🚀 Hệ thống bắt đầu khởi chạy..."
    assert state.logs[-1] == "✨ Xử lý hoàn tất 100%."
    # The anchor that is not in the lesson plan becomes a warning
    assert any("Không có trong giáo án" in w for w in state.warnings)

    texts = [p.text for p in load_docx(state.result.content).paragraphs]
    idx = texts.index("Step 1: intro")
    assert texts[idx + 1] == "Học sinh dùng GeoGebra kiểm tra nghiệm."

    phases = [s.phase for s in states]
    order = [
        IntegrationPhase.VALIDATING,
        IntegrationPhase.EXTRACTING,
        IntegrationPhase.GENERATING,
        IntegrationPhase.PARSING,
        IntegrationPhase.INJECTING,
        IntegrationPhase.COMPLETED,
    ]
    assert [p for p in order if p in phases] == order
    assert [phases.index(p) for p in order] == sorted(phases.index(p) for p in order)


@pytest.mark.asyncio
async def test_prompt_carries_subject_grade_and_text():
    generator = FakeGenerator(SAMPLE_RESPONSE)
    await IntegrationPipeline(generator).run(_upload())

    assert len(generator.prompts) == 1
    prompt = generator.prompts[0]
    assert "Toán" in prompt
    assert "Lớp 9" in prompt
    assert "Step 1: intro" in prompt


@pytest.mark.asyncio
async def test_invalid_upload_fails_before_extraction():
    generator = FakeGenerator(SAMPLE_RESPONSE)
    state = await IntegrationPipeline(generator).run(_upload(filename="notes.txt"))

    assert state.phase == IntegrationPhase.FAILED
    assert state.error_status == 400
    assert state.result is None
    assert generator.prompts == []


@pytest.mark.asyncio
async def test_short_document_fails_with_extraction_error():
    doc = Document()
    doc.add_paragraph("Ngắn")
    generator = FakeGenerator(SAMPLE_RESPONSE)

    state = await IntegrationPipeline(generator).run(_upload(data=save_docx(doc)))

    assert state.phase == IntegrationPhase.FAILED
    assert state.error_status == 422
    assert state.error == "File quá ngắn hoặc không đọc được nội dung."
    assert state.logs[-1] == "❌ Lỗi nghiêm trọng: File quá ngắn hoặc không đọc được nội dung."
    assert generator.prompts == []


@pytest.mark.asyncio
async def test_generator_error_keeps_its_status():
    generator = FakeGenerator(error=AIQuotaExceededError("Hết hạn mức."))
    state = await IntegrationPipeline(generator).run(_upload())

    assert state.phase == IntegrationPhase.FAILED
    assert state.error == "Hết hạn mức."
    assert state.error_status == 429
    assert state.result is None


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_500():
    generator = FakeGenerator(error=RuntimeError("boom"))
    state = await IntegrationPipeline(generator).run(_upload())

    assert state.phase == IntegrationPhase.FAILED
    assert state.error_status == 500
    assert "boom" in state.error


@pytest.mark.asyncio
async def test_unformatted_response_completes_with_warning():
    original = build_lesson_docx()
    state = await IntegrationPipeline(FakeGenerator("Xin lỗi, tôi không hiểu.")).run(
        _upload(data=original)
    )

    assert state.phase == IntegrationPhase.COMPLETED
    assert len(state.warnings) == 1
    assert state.warnings[0].startswith("⚠ Phản hồi của AI")
    before = [p.text for p in load_docx(original).paragraphs]
    after = [p.text for p in load_docx(state.result.content).paragraphs]
    assert after == before


@pytest.mark.asyncio
async def test_options_are_forwarded_to_the_injector():
    options = IntegrationOptions(insert_activities=False, append_table=False)
    state = await IntegrationPipeline(FakeGenerator(SAMPLE_RESPONSE)).run(
        _upload(options=options)
    )

    doc = load_docx(state.result.content)
    texts = [p.text for p in doc.paragraphs]
    assert "Học sinh dùng GeoGebra kiểm tra nghiệm." not in texts
    assert len(doc.tables) == 1
    assert "- Sử dụng phần mềm GeoGebra để vẽ đồ thị." in texts


# ---------------------------------------------------------------------------
# State transitions
# ---------------------------------------------------------------------------

def test_state_transitions_return_new_instances():
    idle = IntegrationState()
    started = idle.start("bắt đầu")
    advanced = started.advance(IntegrationPhase.EXTRACTING, "đọc file")
    warned = advanced.warn("⚠ cảnh báo")

    assert idle.phase == IntegrationPhase.IDLE and idle.logs == ()
    assert started.logs == ("bắt đầu",)
    assert advanced.logs == ("bắt đầu", "đọc file")
    assert warned.warnings == ("⚠ cảnh báo",)
    assert advanced.warnings == ()
    assert warned.is_processing

    with pytest.raises(dataclasses.FrozenInstanceError):
        warned.phase = IntegrationPhase.COMPLETED


def test_fail_clears_result_and_records_status():
    state = IntegrationState().start("bắt đầu").fail("hỏng", 502)

    assert state.phase == IntegrationPhase.FAILED
    assert state.result is None
    assert state.error_status == 502
    assert state.elapsed_seconds is not None

"""Tests for prompt construction."""
from app.models.schemas import GradeType, IntegrationRequest, SubjectType
from app.services import response_parser as markers
from app.services.prompt_builder import build_integration_prompt


def _request(text: str = "Hoạt động 1: Khởi động", grade: GradeType = GradeType.LOP_9):
    return IntegrationRequest(source_text=text, subject=SubjectType.VAT_LY, grade=grade)


def test_prompt_embeds_subject_grade_level_and_text():
    prompt = build_integration_prompt(_request())

    assert "Vật lý" in prompt
    assert "Lớp 9" in prompt
    assert "TC2" in prompt
    assert "Hoạt động 1: Khởi động" in prompt


def test_prompt_spells_out_every_marker():
    prompt = build_integration_prompt(_request())

    for marker in (
        markers.OBJECTIVES_BEGIN,
        markers.OBJECTIVES_END,
        markers.MATERIALS_BEGIN,
        markers.MATERIALS_END,
        markers.ACTIVITIES_BEGIN,
        markers.ACTIVITIES_END,
        markers.ACTIVITY_SEPARATOR,
        markers.APPENDIX_BEGIN,
        markers.APPENDIX_END,
        markers.ANCHOR_FIELD,
        markers.CONTENT_FIELD,
    ):
        assert marker in prompt


def test_competency_level_follows_grade():
    assert GradeType.LOP_6.competency_level == "TC1"
    assert GradeType.LOP_8.competency_level == "TC2"
    assert GradeType.LOP_12.competency_level == "NC1"
    assert "NC1" in build_integration_prompt(_request(grade=GradeType.LOP_11))


def test_long_source_text_is_truncated(monkeypatch):
    from app.config import settings

    monkeypatch.setattr(settings, "MAX_CONTEXT_CHARS", 100)
    prompt = build_integration_prompt(_request(text="a" * 500))

    assert "a" * 100 in prompt
    assert "a" * 101 not in prompt
    assert "[...]" in prompt


def test_prompt_is_deterministic():
    assert build_integration_prompt(_request()) == build_integration_prompt(_request())

"""
Prompt template for the digital-competency integration request.

The template is a module-level constant so it can be tuned without touching
logic code.  Its output contract must stay in sync with the markers decoded
by ``app.services.response_parser``.
"""
from __future__ import annotations

from app.config import settings
from app.models.schemas import IntegrationRequest
from app.services.response_parser import (
    ACTIVITIES_BEGIN,
    ACTIVITIES_END,
    ACTIVITY_SEPARATOR,
    ANCHOR_FIELD,
    APPENDIX_BEGIN,
    APPENDIX_END,
    CONTENT_FIELD,
    MATERIALS_BEGIN,
    MATERIALS_END,
    OBJECTIVES_BEGIN,
    OBJECTIVES_END,
)
from app.utils.helpers import truncate_text

_INTEGRATION_PROMPT = """\
Bạn là chuyên gia giáo dục, am hiểu Khung năng lực số dành cho học sinh phổ thông.

Nhiệm vụ: tích hợp năng lực số vào giáo án môn {subject}, {grade} \
(mức năng lực số {level}).

Giáo án gốc:
---
{source_text}
---

Yêu cầu:
1. Bổ sung mục tiêu năng lực số phù hợp với bài học và mức {level}.
2. Bổ sung thiết bị dạy học, học liệu số cần thiết (phần mềm, ứng dụng, nền tảng).
3. Với từng hoạt động phù hợp trong giáo án, đề xuất nội dung tích hợp năng lực số.
   ANCHOR phải là một câu hoặc cụm từ trích NGUYÊN VĂN từ giáo án gốc (ví dụ tên \
hoạt động) để xác định vị trí chèn; nội dung sẽ được chèn ngay sau đoạn chứa ANCHOR.
4. Lập bảng phụ lục tổng hợp dạng bảng, các cột ngăn cách bằng dấu "|": \
Hoạt động | Năng lực số | Mức độ | Minh chứng.

Chỉ trả lời đúng theo định dạng sau, không thêm lời dẫn, không dùng JSON:

{objectives_begin}
(nội dung mục tiêu năng lực số, mỗi ý một dòng)
{objectives_end}
{materials_begin}
(nội dung học liệu số, mỗi ý một dòng)
{materials_end}
{activities_begin}
{anchor_field} (trích nguyên văn từ giáo án)
{content_field} (nội dung tích hợp)
{separator}
{anchor_field} ...
{content_field} ...
{activities_end}
{appendix_begin}
Hoạt động | Năng lực số | Mức độ | Minh chứng
...
{appendix_end}
"""


def build_integration_prompt(request: IntegrationRequest) -> str:
    """
    Build the single text prompt sent to the model.

    The lesson text is cut at ``MAX_CONTEXT_CHARS`` so very long plans do
    not overflow the request.
    """
    return _INTEGRATION_PROMPT.format(
        subject=request.subject.value,
        grade=request.grade.value,
        level=request.grade.competency_level,
        source_text=truncate_text(request.source_text, settings.MAX_CONTEXT_CHARS),
        objectives_begin=OBJECTIVES_BEGIN,
        objectives_end=OBJECTIVES_END,
        materials_begin=MATERIALS_BEGIN,
        materials_end=MATERIALS_END,
        activities_begin=ACTIVITIES_BEGIN,
        activities_end=ACTIVITIES_END,
        anchor_field=ANCHOR_FIELD,
        content_field=CONTENT_FIELD,
        separator=ACTIVITY_SEPARATOR,
        appendix_begin=APPENDIX_BEGIN,
        appendix_end=APPENDIX_END,
    )

"""
Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum


# Enums (fixed choices offered by the front end)
class SubjectType(str, Enum):
    """School subjects a lesson plan can belong to."""

    TOAN = "Toán"
    VAT_LY = "Vật lý"
    HOA_HOC = "Hóa học"
    SINH_HOC = "Sinh học"
    KHTN = "Khoa học tự nhiên"
    NGU_VAN = "Ngữ văn"
    TIENG_ANH = "Tiếng Anh"
    TIN_HOC = "Tin học"
    LICH_SU = "Lịch sử"
    DIA_LY = "Địa lý"
    GDCD = "GDCD"


class GradeType(str, Enum):
    """Grade labels; each maps onto a digital-competency level."""

    LOP_6 = "Lớp 6"
    LOP_7 = "Lớp 7"
    LOP_8 = "Lớp 8"
    LOP_9 = "Lớp 9"
    LOP_10 = "Lớp 10"
    LOP_11 = "Lớp 11"
    LOP_12 = "Lớp 12"

    @property
    def competency_level(self) -> str:
        return _COMPETENCY_LEVELS[self]


_COMPETENCY_LEVELS = {
    GradeType.LOP_6: "TC1",
    GradeType.LOP_7: "TC1",
    GradeType.LOP_8: "TC2",
    GradeType.LOP_9: "TC2",
    GradeType.LOP_10: "NC1",
    GradeType.LOP_11: "NC1",
    GradeType.LOP_12: "NC1",
}


class IntegrationPhase(str, Enum):
    """Pipeline phases reported while an integration runs."""

    IDLE = "idle"
    VALIDATING = "validating"
    EXTRACTING = "extracting"
    GENERATING = "generating"
    PARSING = "parsing"
    INJECTING = "injecting"
    COMPLETED = "completed"
    FAILED = "failed"


class IntegrationRequest(BaseModel):
    """Everything the prompt is built from; immutable once constructed."""

    source_text: str
    subject: SubjectType
    grade: GradeType

    model_config = ConfigDict(frozen=True)


# Generated content
class ActivityIntegration(BaseModel):
    """One block of generated content anchored to a paragraph of the plan."""

    anchor_text: str
    content: str


class GeneratedContent(BaseModel):
    """Sections decoded from the delimited AI response; absent ones stay empty."""

    objectives_addition: str = ""
    materials_addition: str = ""
    activities_integration: List[ActivityIntegration] = Field(default_factory=list)
    appendix_table: str = ""

    @property
    def is_empty(self) -> bool:
        return not (
            self.objectives_addition
            or self.materials_addition
            or self.activities_integration
            or self.appendix_table
        )


class IntegrationOptions(BaseModel):
    """Which kinds of insertion the injector should perform."""

    insert_objectives: bool = True
    insert_materials: bool = True
    insert_activities: bool = True
    append_table: bool = True


# Response Schemas
class IntegrationOptionsResponse(BaseModel):
    """Choices the front end should offer."""

    subjects: List[str]
    grades: List[str]
    defaults: IntegrationOptions
    accepted_file_types: List[str]


class IntegrationStatusResponse(BaseModel):
    """Snapshot of the latest integration run for a session."""

    phase: IntegrationPhase
    is_processing: bool
    logs: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    result_ready: bool = False
    result_filename: Optional[str] = None
    elapsed_seconds: Optional[float] = None


# Health Check Schema
class HealthCheckResponse(BaseModel):
    """Schema for health check endpoint."""

    status: str
    gemini_model: str
    server_credential: bool
    timestamp: datetime
    version: str = "0.1.0"

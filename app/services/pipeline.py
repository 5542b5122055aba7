"""
Integration pipeline: lesson plan in, lesson plan with digital-competency
insertions out.

Public API
----------
IntegrationPipeline(generator).run(upload, on_update=None)
    → IntegrationState
    validate → extract text → build prompt → generate → parse → inject.

validate_upload(upload)
    Raises InputValidationError before any stage runs.

Every stage takes an IntegrationState and returns a new one.  The pipeline
never keeps a state between calls; the caller (router or job manager) owns
whatever snapshot it wants to keep, fed through *on_update*.
"""
from __future__ import annotations

import dataclasses
import logging
import time
from pathlib import Path
from typing import Callable, Optional, Tuple

from app.config import settings
from app.models.schemas import (
    GeneratedContent,
    GradeType,
    IntegrationOptions,
    IntegrationPhase,
    IntegrationRequest,
    SubjectType,
)
from app.services.document_parser import DocumentParser
from app.services.docx_injector import DocxInjector
from app.services.errors import (
    ExtractionError,
    FileTooLargeError,
    InputValidationError,
    IntegrationError,
)
from app.services.llm_client import TextGenerator
from app.services.prompt_builder import build_integration_prompt
from app.services.response_parser import parse_structured_response
from app.utils.helpers import build_result_filename

logger = logging.getLogger(__name__)

DOCX_MEDIA_TYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class LessonUpload:
    """What the teacher submitted."""

    filename: str
    data: bytes
    subject: Optional[SubjectType]
    grade: Optional[GradeType]
    options: IntegrationOptions = dataclasses.field(default_factory=IntegrationOptions)


@dataclasses.dataclass(frozen=True)
class ResultArtifact:
    """The finished document, held until the user downloads it."""

    filename: str
    content: bytes
    media_type: str = DOCX_MEDIA_TYPE


@dataclasses.dataclass(frozen=True)
class IntegrationState:
    """
    Immutable snapshot of one integration run.

    Transitions return a new instance; nothing is mutated in place.
    """

    phase: IntegrationPhase = IntegrationPhase.IDLE
    logs: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    result: Optional[ResultArtifact] = None
    error: Optional[str] = None
    error_status: Optional[int] = None
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    @property
    def is_processing(self) -> bool:
        return self.phase not in (
            IntegrationPhase.IDLE,
            IntegrationPhase.COMPLETED,
            IntegrationPhase.FAILED,
        )

    @property
    def elapsed_seconds(self) -> Optional[float]:
        if self.started_at is None:
            return None
        end = self.completed_at if self.completed_at else time.monotonic()
        return round(end - self.started_at, 2)

    def start(self, message: str) -> "IntegrationState":
        return IntegrationState(
            phase=IntegrationPhase.VALIDATING,
            logs=(message,),
            started_at=time.monotonic(),
        )

    def advance(self, phase: IntegrationPhase, message: Optional[str] = None) -> "IntegrationState":
        logs = self.logs + (message,) if message else self.logs
        return dataclasses.replace(self, phase=phase, logs=logs)

    def log(self, message: str) -> "IntegrationState":
        return dataclasses.replace(self, logs=self.logs + (message,))

    def warn(self, message: str) -> "IntegrationState":
        return dataclasses.replace(
            self, logs=self.logs + (message,), warnings=self.warnings + (message,)
        )

    def succeed(self, artifact: ResultArtifact, message: str) -> "IntegrationState":
        return dataclasses.replace(
            self,
            phase=IntegrationPhase.COMPLETED,
            logs=self.logs + (message,),
            result=artifact,
            completed_at=time.monotonic(),
        )

    def fail(self, message: str, status_code: int) -> "IntegrationState":
        return dataclasses.replace(
            self,
            phase=IntegrationPhase.FAILED,
            logs=self.logs + (f"❌ Lỗi nghiêm trọng: {message}",),
            result=None,
            error=message,
            error_status=status_code,
            completed_at=time.monotonic(),
        )

    def discard_result(self) -> "IntegrationState":
        return dataclasses.replace(self, result=None)


StateCallback = Callable[[IntegrationState], None]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_upload(upload: LessonUpload) -> None:
    """
    Reject a submission before any pipeline step runs.

    The file type is judged by its suffix only.
    """
    if not upload.filename or not upload.data:
        raise InputValidationError("Vui lòng chọn file giáo án (.docx).")
    if Path(upload.filename).suffix.lower() not in settings.SUPPORTED_FILE_TYPES:
        raise InputValidationError("Vui lòng chọn file Word (.docx).")
    if upload.subject is None or upload.grade is None:
        raise InputValidationError("Vui lòng điền đầy đủ thông tin môn học và khối lớp.")
    if len(upload.data) > settings.MAX_FILE_SIZE:
        raise FileTooLargeError(
            f"File vượt quá giới hạn {settings.MAX_FILE_SIZE // (1024 * 1024)} MB."
        )


# ---------------------------------------------------------------------------
# IntegrationPipeline
# ---------------------------------------------------------------------------

class IntegrationPipeline:
    """
    Linear async pipeline around one AI call.

    The text generator is injected so tests (and other providers) can be
    swapped in; parser and injector default to the DOCX implementations.
    """

    def __init__(
        self,
        generator: TextGenerator,
        parser: Optional[DocumentParser] = None,
        injector: Optional[DocxInjector] = None,
    ) -> None:
        self._generator = generator
        self._parser = parser or DocumentParser()
        self._injector = injector or DocxInjector()

    async def run(
        self,
        upload: LessonUpload,
        on_update: Optional[StateCallback] = None,
    ) -> IntegrationState:
        """
        Run every stage and return the final state.

        Never raises for pipeline failures: they end in a FAILED state that
        carries the message and HTTP status, and no artifact.
        """
        notify = on_update or (lambda _state: None)
        state = IntegrationState().start("🚀 Hệ thống bắt đầu khởi chạy...")
        notify(state)
        t0 = time.monotonic()

        try:
            validate_upload(upload)

            state = _enter(
                state, IntegrationPhase.EXTRACTING, ">> Đang đọc cấu trúc file DOCX...", notify
            )
            state, source_text = await self._extract(state, upload, notify)

            state = _enter(
                state, IntegrationPhase.GENERATING, ">> Đang kết nối AI Teacher Assistant...", notify
            )
            state, raw_response = await self._generate(state, upload, source_text, notify)

            state = _enter(state, IntegrationPhase.PARSING, None, notify)
            state, content = self._parse(state, raw_response, notify)

            state = _enter(
                state, IntegrationPhase.INJECTING, ">> Đang ghép nội dung vào file gốc...", notify
            )
            state, artifact = self._inject(state, upload, content, notify)

            state = state.succeed(artifact, "✨ Xử lý hoàn tất 100%.")
            logger.info(
                "Integration of %r completed in %.2fs (%d warning(s))",
                upload.filename,
                time.monotonic() - t0,
                len(state.warnings),
            )
        except IntegrationError as exc:
            logger.warning("Integration of %r failed: %s", upload.filename, exc.message)
            state = state.fail(exc.message, exc.status_code)
        except Exception as exc:
            logger.error(
                "Integration of %r crashed: %s", upload.filename, exc, exc_info=True
            )
            state = state.fail(f"Lỗi không xác định: {str(exc)[:200]}", 500)

        notify(state)
        return state

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _extract(
        self,
        state: IntegrationState,
        upload: LessonUpload,
        notify: StateCallback,
    ) -> Tuple[IntegrationState, str]:
        parsed = await self._parser.parse_document(upload.data, upload.filename)
        text = parsed.full_text
        if len(text) < settings.MIN_CONTEXT_CHARS:
            raise ExtractionError("File quá ngắn hoặc không đọc được nội dung.")

        state = state.log(
            f"✓ Đã đọc {parsed.metadata.get('word_count', 0)} từ, "
            f"{parsed.metadata.get('table_count', 0)} bảng."
        )
        notify(state)
        return state, text

    async def _generate(
        self,
        state: IntegrationState,
        upload: LessonUpload,
        source_text: str,
        notify: StateCallback,
    ) -> Tuple[IntegrationState, str]:
        request = IntegrationRequest(
            source_text=source_text,
            subject=upload.subject,
            grade=upload.grade,
        )
        prompt = build_integration_prompt(request)

        raw_response = await self._generator.generate(prompt)

        state = state.log("✓ AI đã thiết kế xong kịch bản Năng lực số.")
        notify(state)
        return state, raw_response

    def _parse(
        self,
        state: IntegrationState,
        raw_response: str,
        notify: StateCallback,
    ) -> Tuple[IntegrationState, GeneratedContent]:
        content = parse_structured_response(raw_response)

        if content.is_empty:
            state = state.warn(
                "⚠ Phản hồi của AI không có phần nội dung nào đúng định dạng; "
                "file kết quả sẽ không có nội dung bổ sung."
            )
        else:
            state = state.log(
                f"✓ Đã phân tích: {len(content.activities_integration)} hoạt động tích hợp."
            )
        notify(state)
        return state, content

    def _inject(
        self,
        state: IntegrationState,
        upload: LessonUpload,
        content: GeneratedContent,
        notify: StateCallback,
    ) -> Tuple[IntegrationState, ResultArtifact]:
        messages = []
        report = self._injector.inject_with_report(
            upload.data, content, messages.append, upload.options
        )
        for message in messages:
            state = state.warn(message) if message.startswith("⚠") else state.log(message)
        notify(state)

        artifact = ResultArtifact(
            filename=build_result_filename(upload.filename, settings.RESULT_FILENAME_PREFIX),
            content=report.content,
        )
        return state, artifact


def _enter(
    state: IntegrationState,
    phase: IntegrationPhase,
    message: Optional[str],
    notify: StateCallback,
) -> IntegrationState:
    state = state.advance(phase, message)
    notify(state)
    return state

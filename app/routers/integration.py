"""
Digital-competency integration endpoints.

Route summary
-------------
GET  /options      — subjects, grades and default insertion options.
POST /run          — run the whole pipeline and return the modified .docx.
POST /jobs         — start the pipeline in the background for this session.
GET  /jobs/status  — latest state and log lines for this session.
GET  /jobs/result  — download the finished document (once).
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Type

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import Response

from app.config import settings
from app.dependencies.credentials import get_session_id, get_text_generator
from app.models.schemas import (
    GradeType,
    IntegrationOptions,
    IntegrationOptionsResponse,
    IntegrationPhase,
    IntegrationStatusResponse,
    SubjectType,
)
from app.services.errors import FileTooLargeError, InputValidationError, IntegrationError
from app.services.llm_client import TextGenerator
from app.services.pipeline import (
    IntegrationPipeline,
    IntegrationState,
    LessonUpload,
    ResultArtifact,
    validate_upload,
)
from app.services.pipeline_manager import pipeline_manager
from app.utils.helpers import content_disposition

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# GET /options
# ---------------------------------------------------------------------------

@router.get("/options", response_model=IntegrationOptionsResponse)
async def get_options() -> IntegrationOptionsResponse:
    """List the fixed subject and grade choices and the default options."""
    return IntegrationOptionsResponse(
        subjects=[s.value for s in SubjectType],
        grades=[g.value for g in GradeType],
        defaults=IntegrationOptions(),
        accepted_file_types=settings.SUPPORTED_FILE_TYPES,
    )


# ---------------------------------------------------------------------------
# POST /run
# ---------------------------------------------------------------------------

@router.post(
    "/run",
    response_class=Response,
    responses={200: {"content": {"application/octet-stream": {}}}},
    summary="Integrate digital competency into a lesson plan",
)
async def run_integration(
    file: Optional[UploadFile] = File(None),
    subject: Optional[str] = Form(None),
    grade: Optional[str] = Form(None),
    insert_objectives: bool = Form(True),
    insert_materials: bool = Form(True),
    insert_activities: bool = Form(True),
    append_table: bool = Form(True),
    generator: TextGenerator = Depends(get_text_generator),
) -> Response:
    """
    **Synchronous pipeline** — extract, ask the AI, merge, and return the
    modified document as an attachment named ``NLS_<original name>``.

    The ``X-Integration-Warnings`` header counts non-fatal notices such as
    anchors that could not be located.
    """
    upload = await _build_upload(
        file,
        subject,
        grade,
        IntegrationOptions(
            insert_objectives=insert_objectives,
            insert_materials=insert_materials,
            insert_activities=insert_activities,
            append_table=append_table,
        ),
    )

    state = await IntegrationPipeline(generator).run(upload)
    if state.result is None:
        raise HTTPException(
            status_code=state.error_status or status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": state.error, "logs": list(state.logs)},
        )

    return _artifact_response(state.result, warnings=len(state.warnings))


# ---------------------------------------------------------------------------
# Background jobs
# ---------------------------------------------------------------------------

@router.post(
    "/jobs",
    response_model=IntegrationStatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_job(
    file: Optional[UploadFile] = File(None),
    subject: Optional[str] = Form(None),
    grade: Optional[str] = Form(None),
    insert_objectives: bool = Form(True),
    insert_materials: bool = Form(True),
    insert_activities: bool = Form(True),
    append_table: bool = Form(True),
    session_id: str = Depends(get_session_id),
    generator: TextGenerator = Depends(get_text_generator),
) -> IntegrationStatusResponse:
    """
    Start the pipeline in the background; poll ``/jobs/status`` for progress.

    Returns 409 while a previous run for the same session is still going.
    """
    upload = await _build_upload(
        file,
        subject,
        grade,
        IntegrationOptions(
            insert_objectives=insert_objectives,
            insert_materials=insert_materials,
            insert_activities=insert_activities,
            append_table=append_table,
        ),
    )

    try:
        state = pipeline_manager.start(session_id, IntegrationPipeline(generator), upload)
    except IntegrationError as exc:
        raise _http_error(exc)
    return _status_response(state)


@router.get("/jobs/status", response_model=IntegrationStatusResponse)
async def job_status(session_id: str = Depends(get_session_id)) -> IntegrationStatusResponse:
    """Latest state of this session's run."""
    state = pipeline_manager.get_state(session_id)
    if state is None:
        return IntegrationStatusResponse(phase=IntegrationPhase.IDLE, is_processing=False)
    return _status_response(state)


@router.get(
    "/jobs/result",
    response_class=Response,
    responses={200: {"content": {"application/octet-stream": {}}}},
)
async def job_result(session_id: str = Depends(get_session_id)) -> Response:
    """Download the finished document; the server forgets it afterwards."""
    if pipeline_manager.is_running(session_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Giáo án vẫn đang được xử lý.",
        )
    artifact = pipeline_manager.take_result(session_id)
    if artifact is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Không có file kết quả để tải về.",
        )
    state = pipeline_manager.get_state(session_id)
    return _artifact_response(artifact, warnings=len(state.warnings) if state else 0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _build_upload(
    file: Optional[UploadFile],
    subject: Optional[str],
    grade: Optional[str],
    options: IntegrationOptions,
) -> LessonUpload:
    """Read the multipart fields into a LessonUpload and validate it."""
    try:
        if file is None or not file.filename:
            raise InputValidationError("Vui lòng chọn file giáo án (.docx).")

        data = bytearray()
        while True:
            chunk = await file.read(1024 * 1024)   # 1 MB slices
            if not chunk:
                break
            data.extend(chunk)
            if len(data) > settings.MAX_FILE_SIZE:
                raise FileTooLargeError(
                    f"File vượt quá giới hạn {settings.MAX_FILE_SIZE // (1024 * 1024)} MB."
                )

        upload = LessonUpload(
            filename=file.filename,
            data=bytes(data),
            subject=_coerce_choice(SubjectType, subject),
            grade=_coerce_choice(GradeType, grade),
            options=options,
        )
        validate_upload(upload)
    except IntegrationError as exc:
        raise _http_error(exc)

    logger.info(
        "Received %r (%d bytes) subject=%s grade=%s",
        upload.filename,
        len(upload.data),
        upload.subject.value,
        upload.grade.value,
    )
    return upload


def _coerce_choice(enum_cls: Type[Enum], value: Optional[str]):
    """Map a form value onto its enum member; blank means not chosen."""
    if value is None or not value.strip():
        return None
    try:
        return enum_cls(value.strip())
    except ValueError:
        raise InputValidationError(f"Giá trị không hợp lệ: {value!r}.")


def _http_error(exc: IntegrationError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


def _artifact_response(artifact: ResultArtifact, warnings: int) -> Response:
    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={
            "Content-Disposition": content_disposition(artifact.filename),
            "X-Integration-Warnings": str(warnings),
        },
    )


def _status_response(state: IntegrationState) -> IntegrationStatusResponse:
    return IntegrationStatusResponse(
        phase=state.phase,
        is_processing=state.is_processing,
        logs=list(state.logs),
        warnings=list(state.warnings),
        error=state.error,
        result_ready=state.result is not None,
        result_filename=state.result.filename if state.result else None,
        elapsed_seconds=state.elapsed_seconds,
    )

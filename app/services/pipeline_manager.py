"""
In-memory singleton that tracks background integration runs per session.

Usage
-----
    from app.services.pipeline_manager import pipeline_manager

    state = pipeline_manager.start(session_id, pipeline, upload)
    # ... later ...
    current = pipeline_manager.get_state(session_id)
    artifact = pipeline_manager.take_result(session_id)   # once only
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, Optional

from app.config import settings
from app.services.errors import PipelineBusyError
from app.services.pipeline import (
    IntegrationPipeline,
    IntegrationState,
    LessonUpload,
    ResultArtifact,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pipeline manager (class-level state, acts as a singleton)
# ---------------------------------------------------------------------------

class PipelineManager:
    """Holds one asyncio.Task and the latest IntegrationState per session."""

    _tasks: Dict[str, asyncio.Task] = {}
    _states: Dict[str, IntegrationState] = {}

    @classmethod
    def is_running(cls, session_id: str) -> bool:
        task = cls._tasks.get(session_id)
        return task is not None and not task.done()

    @classmethod
    def get_state(cls, session_id: str) -> Optional[IntegrationState]:
        cls._evict_expired()
        return cls._states.get(session_id)

    @classmethod
    def start(
        cls,
        session_id: str,
        pipeline: IntegrationPipeline,
        upload: LessonUpload,
    ) -> IntegrationState:
        """
        Launch a background integration run for *session_id*.

        A previous result for the session that was never downloaded is
        dropped.  Returns the initial state snapshot.

        Raises:
            PipelineBusyError: a run is already in flight for the session.
        """
        cls._evict_expired()
        if cls.is_running(session_id):
            raise PipelineBusyError(
                "Đang có một giáo án được xử lý. Vui lòng chờ hoàn tất."
            )

        def _record(state: IntegrationState) -> None:
            cls._states[session_id] = state

        _record(IntegrationState().start("⏳ Đã xếp hàng xử lý..."))

        async def _wrapper() -> None:
            # run() turns every pipeline failure into a FAILED state
            await pipeline.run(upload, on_update=_record)

        task = asyncio.create_task(_wrapper())
        cls._tasks[session_id] = task

        # Cleanup reference when done
        task.add_done_callback(lambda _t: cls._cleanup(session_id))

        logger.info("Integration task started for session %s", session_id)
        return cls._states[session_id]

    @classmethod
    def take_result(cls, session_id: str) -> Optional[ResultArtifact]:
        """Hand out the finished artifact once, then forget it."""
        cls._evict_expired()
        state = cls._states.get(session_id)
        if state is None or state.result is None:
            return None
        cls._states[session_id] = state.discard_result()
        return state.result

    @classmethod
    def _evict_expired(cls) -> None:
        """Drop finished runs older than JOB_STATE_TTL, results included."""
        now = time.monotonic()
        expired = [
            session_id
            for session_id, state in cls._states.items()
            if state.completed_at is not None
            and now - state.completed_at > settings.JOB_STATE_TTL
            and not cls.is_running(session_id)
        ]
        for session_id in expired:
            cls._states.pop(session_id, None)
        if expired:
            logger.info("Evicted %d expired integration run(s)", len(expired))

    @classmethod
    def _cleanup(cls, session_id: str) -> None:
        """Remove the task reference (state is kept for polling)."""
        cls._tasks.pop(session_id, None)

    @classmethod
    def reset(cls) -> None:
        """Forget every task and state (used by tests)."""
        cls._tasks.clear()
        cls._states.clear()


# Module-level singleton instance
pipeline_manager = PipelineManager

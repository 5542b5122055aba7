"""
Request-scoped dependencies: the caller's AI credential, session key and
the text generator built from them.

The credential arrives in the X-Api-Key header (entered by the teacher in the
front end).  When absent, the server-side GEMINI_API_KEY is used if one is
configured.  Keys are only ever logged masked.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from app.config import settings
from app.services.llm_client import GeminiService, TextGenerator
from app.utils.helpers import mask_secret

logger = logging.getLogger(__name__)


async def get_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-Api-Key"),
) -> str:
    """Resolve the Gemini API key for this request. Raises 401 if none is available."""
    api_key = (x_api_key or settings.GEMINI_API_KEY or "").strip()
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API Key chưa được cung cấp. Vui lòng nhập Key trong phần Cấu hình.",
        )
    logger.debug(
        "Using %s API key %s",
        "client" if x_api_key else "server",
        mask_secret(api_key),
    )
    return api_key


async def get_session_id(
    x_session_id: str = Header(..., alias="X-Session-Id"),
) -> str:
    """Extract the client session key used to scope background runs. Raises 400 if blank."""
    session_id = x_session_id.strip()
    if not session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing X-Session-Id header.",
        )
    return session_id


async def get_text_generator(api_key: str = Depends(get_api_key)) -> TextGenerator:
    """Build a fresh Gemini client bound to the caller's credential."""
    return GeminiService(api_key=api_key)

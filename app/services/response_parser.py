"""
Decoder for the delimited text format the model is asked to answer in.

The response carries up to four independent sections, each wrapped in a
BEGIN/END marker pair.  Parsing is lenient: a section whose markers are
missing simply stays empty, and activity records lacking either an anchor
or a content body are dropped.  ``parse_structured_response`` never raises.
"""
from __future__ import annotations

import logging
import re
from typing import List, Optional

from app.models.schemas import ActivityIntegration, GeneratedContent

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Delimiter grammar
# ---------------------------------------------------------------------------

OBJECTIVES_BEGIN = "===BAT_DAU_MUC_TIEU==="
OBJECTIVES_END = "===KET_THUC_MUC_TIEU==="
MATERIALS_BEGIN = "===BAT_DAU_HOC_LIEU==="
MATERIALS_END = "===KET_THUC_HOC_LIEU==="
APPENDIX_BEGIN = "===BAT_DAU_PHU_LUC==="
APPENDIX_END = "===KET_THUC_PHU_LUC==="
ACTIVITIES_BEGIN = "===BAT_DAU_HOAT_DONG==="
ACTIVITIES_END = "===KET_THUC_HOAT_DONG==="
ACTIVITY_SEPARATOR = "---PHAN_CACH_HOAT_DONG---"

ANCHOR_FIELD = "ANCHOR:"
CONTENT_FIELD = "CONTENT:"

_ANCHOR_RE = re.compile(
    re.escape(ANCHOR_FIELD) + r"\s*(.*?)(?=" + re.escape(CONTENT_FIELD) + r"|$)",
    re.DOTALL,
)
_CONTENT_RE = re.compile(re.escape(CONTENT_FIELD) + r"\s*(.*)$", re.DOTALL)


def _section_pattern(begin: str, end: str) -> re.Pattern:
    return re.compile(re.escape(begin) + r"(.*?)" + re.escape(end), re.DOTALL)


_OBJECTIVES_RE = _section_pattern(OBJECTIVES_BEGIN, OBJECTIVES_END)
_MATERIALS_RE = _section_pattern(MATERIALS_BEGIN, MATERIALS_END)
_APPENDIX_RE = _section_pattern(APPENDIX_BEGIN, APPENDIX_END)
_ACTIVITIES_RE = _section_pattern(ACTIVITIES_BEGIN, ACTIVITIES_END)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_structured_response(raw_text: Optional[str]) -> GeneratedContent:
    """
    Decode a delimited model response into a GeneratedContent bundle.

    Args:
        raw_text: Free-form model output; ``None`` is treated as empty.

    Returns:
        GeneratedContent with every section found; missing ones left empty.
    """
    text = raw_text or ""

    content = GeneratedContent(
        objectives_addition=_extract_section(_OBJECTIVES_RE, text),
        materials_addition=_extract_section(_MATERIALS_RE, text),
        appendix_table=_extract_section(_APPENDIX_RE, text),
        activities_integration=_parse_activities(_extract_section(_ACTIVITIES_RE, text)),
    )

    logger.debug(
        "Parsed response: objectives=%d chars, materials=%d chars, "
        "activities=%d, appendix=%d chars",
        len(content.objectives_addition),
        len(content.materials_addition),
        len(content.activities_integration),
        len(content.appendix_table),
    )
    return content


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _extract_section(pattern: re.Pattern, text: str) -> str:
    """Return the trimmed body of the first BEGIN…END match, or ''."""
    match = pattern.search(text)
    if not match:
        return ""
    return match.group(1).strip()


def _parse_activities(block: str) -> List[ActivityIntegration]:
    """Split an activities block into anchor/content records."""
    if not block:
        return []

    activities: List[ActivityIntegration] = []
    for record in block.split(ACTIVITY_SEPARATOR):
        anchor_match = _ANCHOR_RE.search(record)
        content_match = _CONTENT_RE.search(record)
        if not anchor_match or not content_match:
            continue

        anchor = anchor_match.group(1).strip()
        body = content_match.group(1).strip()
        if not anchor or not body:
            continue

        activities.append(ActivityIntegration(anchor_text=anchor, content=body))

    return activities

"""
Common utility functions and helpers.
"""
from typing import List, Tuple
import re
import unicodedata
from urllib.parse import quote


def normalize_text(text: str) -> str:
    """
    Normalize text for anchor matching.

    Collapses every run of whitespace (non-breaking spaces and tabs included)
    into a single space and composes Unicode so that Vietnamese diacritics
    typed in decomposed form still compare equal.

    Args:
        text: Raw text string

    Returns:
        Normalized text
    """
    text = unicodedata.normalize('NFC', text or '')
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def fold_text(text: str) -> str:
    """Normalized, case-folded text used for heading keyword lookups."""
    return normalize_text(text).casefold()


def mask_secret(secret: str, visible: int = 4) -> str:
    """
    Mask a credential for logging.

    Only the last *visible* characters are kept; short secrets are hidden
    entirely.
    """
    if not secret:
        return "<none>"
    if len(secret) <= visible * 2:
        return "*" * len(secret)
    return f"{'*' * (len(secret) - visible)}{secret[-visible:]}"


def build_result_filename(original_name: str, prefix: str) -> str:
    """Prefix the uploaded filename, dropping any client-side directory part."""
    base = re.split(r'[\\/]', original_name or '')[-1] or 'document.docx'
    return f"{prefix}{base}"


def split_bold_segments(line: str) -> List[Tuple[str, bool]]:
    """
    Split a line on ``**bold**`` markers.

    Returns (text, is_bold) pairs; empty segments are dropped. An unmatched
    ``**`` is kept as literal text.
    """
    parts = re.split(r'\*\*(.+?)\*\*', line)
    segments: List[Tuple[str, bool]] = []
    for i, part in enumerate(parts):
        if part:
            segments.append((part, i % 2 == 1))
    return segments


def truncate_text(text: str, limit: int) -> str:
    """Cut *text* to at most *limit* characters, marking the cut."""
    if limit <= 0 or len(text) <= limit:
        return text
    return text[:limit].rstrip() + "\n[...]"


def content_disposition(filename: str) -> str:
    """
    Attachment header value that survives non-ASCII (Vietnamese) filenames.

    Uses an ASCII fallback plus the RFC 5987 ``filename*`` form.
    """
    ascii_name = unicodedata.normalize('NFKD', filename).encode('ascii', 'ignore').decode()
    ascii_name = re.sub(r'[^\w.\- ]', '_', ascii_name).strip() or 'document.docx'
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"

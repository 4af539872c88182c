"""
Evidence Intake
===============

Captures metadata for uploaded evidence and produces the text used as
generation input. Plain-text files are decoded; every other format gets a
placeholder until a real extractor is wired in.
"""

import logging
import mimetypes
from typing import Optional, Tuple

import chardet

from .schemas import EvidenceCategory, EvidenceCreate

logger = logging.getLogger(__name__)

TEXT_MIMES = {
    "text/plain",
    "text/csv",
    "text/markdown",
    "text/x-markdown",
}


def split_content_type(content_type: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """`text/plain; charset=utf-8` -> ("text/plain", "utf-8")"""
    if not content_type:
        return None, None
    base, *params = content_type.split(";")
    charset = None
    for param in params:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset" and value.strip():
            charset = value.strip().strip('"').strip("'")
    return base.strip().lower() or None, charset


def guess_mime(filename: str, declared: Optional[str] = None) -> str:
    """Declared content type (without parameters), else a guess from the file extension"""
    declared, _ = split_content_type(declared)
    if declared and declared != "application/octet-stream":
        return declared
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or declared or "application/octet-stream"


def placeholder_content(filename: str) -> str:
    return f"[Content of {filename} would be extracted here for AI processing]"


def decode_text(data: bytes, charset: Optional[str] = None) -> str:
    """Decode text bytes using the declared charset, else the detected encoding, else UTF-8"""
    if charset:
        try:
            return data.decode(charset)
        except (UnicodeDecodeError, LookupError):
            logger.debug(f"Declared charset {charset} does not fit, detecting instead")
    detected = chardet.detect(data)
    encoding = detected.get("encoding") or "utf-8"
    try:
        return data.decode(encoding)
    except (UnicodeDecodeError, LookupError):
        return data.decode("utf-8", errors="replace")


def extract_content(data: bytes, filename: str, mime: str, charset: Optional[str] = None) -> str:
    if mime in TEXT_MIMES:
        text = decode_text(data, charset).strip()
        if text:
            return text
    return placeholder_content(filename)


def build_evidence_create(
    data: bytes,
    filename: str,
    category: EvidenceCategory,
    declared_mime: Optional[str] = None,
) -> EvidenceCreate:
    """Metadata and content for an uploaded file"""
    mime = guess_mime(filename, declared_mime)
    _, charset = split_content_type(declared_mime)
    logger.debug(f"Evidence intake: {filename} mime={mime} charset={charset} size={len(data)}")
    return EvidenceCreate(
        name=filename,
        category=category,
        file_type=mime,
        file_size=len(data),
        content=extract_content(data, filename, mime, charset),
    )

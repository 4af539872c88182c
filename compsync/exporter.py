"""
Response Exporter
=================

Plain-text export of a finding's attached response.
"""

import re
from typing import Optional

from .schemas import Finding

_UNSAFE = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def export_filename(finding: Finding) -> str:
    """`MRA-Response-<title prefix>.txt` with non-alphanumerics replaced by '-'"""
    return f"MRA-Response-{_UNSAFE.sub('-', finding.title[:30])}.txt"


def export_response_text(finding: Finding) -> Optional[str]:
    """Attached response content, or None if nothing has been drafted"""
    if finding.generated_response is None:
        return None
    return finding.generated_response.content

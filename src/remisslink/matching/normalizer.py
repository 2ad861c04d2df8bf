"""
Organization name normalization.

Strips presentation noise that document listings attach to names:
- File-size annotations: "Riksdagens ombudsmän (JO) (pdf 140 kB)"
- Bare trailing sizes: "Boverket 2.1 MB"
- File extensions: "Blekinge Tekniska Högskola.PDF"
- Whitespace runs and NBSP from PDF extraction

Must run before every similarity comparison and rule lookup.
"""

import re
import unicodedata
from typing import Optional

# "(pdf 140 kB)", "(word 2 MB)", "(docx 1.5 kb)"
FILE_SIZE_ANNOTATION = re.compile(
    r"\s*\((?:pdf|word|doc|docx)\s+\d+(?:\.\d+)?\s*(?:kB|KB|MB|mb|b|B)\)\s*$",
    re.IGNORECASE,
)

# "140 kB" at the end of the name
BARE_FILE_SIZE = re.compile(
    r"\s+\d+(?:\.\d+)?\s*(?:kB|KB|MB|mb|b|B)\s*$",
    re.IGNORECASE,
)

FILE_EXTENSION = re.compile(r"\.(?:pdf|docx?|xlsx?|pptx?|odt|rtf)\s*$", re.IGNORECASE)

WHITESPACE = re.compile(r"\s+")


def _strip_once(text: str) -> str:
    text = unicodedata.normalize("NFKC", text)
    # Size first so that "Namn.PDF (pdf 10 kB)" leaves the extension at the end
    text = FILE_SIZE_ANNOTATION.sub("", text)
    text = BARE_FILE_SIZE.sub("", text)
    text = FILE_EXTENSION.sub("", text)
    return WHITESPACE.sub(" ", text).strip()


def normalize_organization_name(raw: Optional[str]) -> str:
    """
    Normalize a raw organization name.

    Rules are reapplied until nothing changes, so the result is a fixed
    point: normalize(normalize(x)) == normalize(x).

    Args:
        raw: Name as scraped, may be None

    Returns:
        Normalized name, "" for empty or missing input
    """
    if not raw:
        return ""

    current = raw
    while True:
        stripped = _strip_once(current)
        if stripped == current:
            return stripped
        current = stripped

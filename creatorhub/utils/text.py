"""Text helpers: slugs, reading time, excerpts and email personalization."""

import math
import re
from typing import Dict, Optional

WORDS_PER_MINUTE = 225
EXCERPT_LENGTH = 200
SLUG_MAX_LENGTH = 100

_TAG_RE = re.compile(r"<[^>]+>")
_PLACEHOLDER_RE = re.compile(r"{{\s*([A-Za-z_][A-Za-z0-9_]*)\s*}}")


def slugify(title: str) -> str:
    slug = title.lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug[:SLUG_MAX_LENGTH]


def strip_html(content: str) -> str:
    return re.sub(r"\s+", " ", _TAG_RE.sub(" ", content or "")).strip()


def reading_time(content: str) -> int:
    """Minutes to read at 225 words per minute, at least 1."""
    words = len(strip_html(content).split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


def make_excerpt(content: str, length: int = EXCERPT_LENGTH) -> str:
    """Plain-text excerpt cut at a sentence end, else at a word boundary."""
    text = strip_html(content)
    if len(text) <= length:
        return text
    cut = text[:length]
    sentence_end = max(cut.rfind(". "), cut.rfind("! "), cut.rfind("? "))
    if sentence_end > length // 2:
        return cut[: sentence_end + 1]
    space = cut.rfind(" ")
    if space > 0:
        cut = cut[:space]
    return cut.rstrip(",;:") + "..."


def personalization_variables(email: str, name: Optional[str] = None) -> Dict[str, str]:
    """Default `{{...}}` variables for one recipient."""
    first_name = name.split()[0] if name and name.strip() else "there"
    return {
        "first_name": first_name,
        "full_name": name or email,
        "email": email,
    }


def personalize(template: str, variables: Dict[str, str]) -> str:
    """Replace `{{ key }}` placeholders (case-insensitive keys); unknown keys are left as-is."""
    lookup = {key.lower(): value for key, value in variables.items()}

    def replace(match):
        key = match.group(1).lower()
        return str(lookup[key]) if key in lookup else match.group(0)

    return _PLACEHOLDER_RE.sub(replace, template or "")

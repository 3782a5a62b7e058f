"""Text cleanup for comment bodies and ticket descriptions."""
import html
import re
from functools import lru_cache
from typing import Iterable

ELLIPSIS = "…"

_SCRIPT_STYLE = re.compile(r"<(script|style)\b[\s\S]*?</\1\s*>", re.I)
_BLOCK_TAG = re.compile(r"</?(?:br|p|div|li|ul|ol|tr|td|table|blockquote|h[1-6])\b[^>]*>", re.I)
# Only real tag syntax; unescaped "<" and ">" are visible text.
_TAG = re.compile(r"</?[A-Za-z!][^<>]*>")
_WHITESPACE = re.compile(r"\s+")
_LEADING_PUNCT = re.compile(r"^[。、，,．.！!？?\s]+")
_TRAILING_PUNCT = r"[。、，,！!\s]*"

# Every pass either shortens the text or leaves it alone, so this is only a guard.
_MAX_PASSES = 10


def strip_markup(text: str | None) -> str:
    """Return the visible text of an HTML fragment."""
    if not text:
        return ""
    text = _SCRIPT_STYLE.sub(" ", text)
    text = _BLOCK_TAG.sub(" ", text)
    text = _TAG.sub("", text)
    return html.unescape(text)


@lru_cache(maxsize=32)
def _phrase_pattern(phrases: tuple[str, ...]) -> re.Pattern | None:
    # Longest first so "何卒よろしくお願いします" wins over its suffix.
    ordered = sorted({p for p in phrases if p}, key=len, reverse=True)
    if not ordered:
        return None
    return re.compile("(?:" + "|".join(re.escape(p) for p in ordered) + ")" + _TRAILING_PUNCT)


def remove_boilerplate(text: str, phrases: Iterable[str]) -> str:
    """Drop every courtesy phrase (and the punctuation after it), then leading punctuation."""
    pattern = _phrase_pattern(tuple(phrases))
    if pattern is not None:
        text = pattern.sub("", text)
    return _LEADING_PUNCT.sub("", text)


def _clean_once(text: str, phrases: tuple[str, ...], strip_boilerplate: bool) -> str:
    text = strip_markup(text)
    text = _WHITESPACE.sub(" ", text).strip()
    if strip_boilerplate:
        text = remove_boilerplate(text, phrases)
    return text.strip()


def truncate(text: str, max_length: int | None) -> str:
    """Cut ``text`` to at most ``max_length`` characters, ellipsis included."""
    if max_length is None or len(text) <= max_length:
        return text
    if max_length <= 0:
        return ""
    return text[:max_length - 1].rstrip() + ELLIPSIS


def normalize(
    text: str | None,
    max_length: int | None = None,
    phrases: Iterable[str] = (),
    strip_boilerplate: bool = True,
) -> str:
    """Markup-free, single-line, boilerplate-free text bounded to ``max_length``.

    Pure and idempotent: ``normalize(normalize(x)) == normalize(x)``.
    """
    if not text or not str(text).strip():
        return ""
    phrases = tuple(phrases)
    current = str(text)
    for _ in range(_MAX_PASSES):
        cleaned = _clean_once(current, phrases, strip_boilerplate)
        if cleaned == current:
            break
        current = cleaned
    return truncate(current, max_length)

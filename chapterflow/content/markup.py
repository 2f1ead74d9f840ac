"""
Markup Helpers
==============
Conversions between chapter HTML, provider markdown and speech-ready text.
"""

import html
import re

from chapterflow.errors import ContentTooShortError


MIN_PROVIDER_CONTENT = 50

_TAG = re.compile(r"<[^<>]*>")
_BREAK_TAG = re.compile(r"<\s*(?:br|/p|/div|/h[1-6]|/li)\s*/?>", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_INLINE_SPACE = re.compile(r"[ \t\f\v]+")
_BOLD = re.compile(r"\*\*(.*?)\*\*", re.DOTALL)
_ITALIC = re.compile(r"\*(.*?)\*")
_WORD_PUNCT = re.compile(r"[.,\-·]")
_TTS_UNSAFE = re.compile(r"[\"“”\\'`/*<>|~]")


def strip_html(text: str) -> str:
    """Drop tags and entities, collapsing all whitespace to single spaces."""
    flat = _TAG.sub(" ", text)
    flat = html.unescape(flat)
    return _WHITESPACE.sub(" ", flat).strip()


def html_to_lines(text: str) -> str:
    """Like strip_html but keeps paragraph and line breaks as newlines."""
    marked = _BREAK_TAG.sub("\n", text)
    flat = html.unescape(_TAG.sub(" ", marked))
    lines = (_INLINE_SPACE.sub(" ", line).strip() for line in flat.split("\n"))
    return "\n".join(line for line in lines if line)


def _normalize_word(word: str) -> str:
    bare = _WORD_PUNCT.sub("", word)
    if word.endswith("."):
        return bare + "."
    if word.endswith(","):
        return bare + ","
    return bare


def normalize_for_speech(text: str) -> str:
    """
    Remove punctuation inside words that a speech engine would read aloud.

    "1.000" becomes "1000" and "A-B" becomes "AB"; a trailing period or comma
    is kept. Lines with at most one character are dropped.
    """
    lines = []
    for line in text.split("\n"):
        cleaned = " ".join(_normalize_word(w) for w in line.split(" ")).strip()
        if len(cleaned) > 1:
            lines.append(cleaned)
    return "\n".join(lines)


def prepare_for_provider(content: str, min_length: int = MIN_PROVIDER_CONTENT) -> str:
    """
    Flatten chapter HTML into speech-normalized plain text.

    Raises:
        ContentTooShortError: If fewer than ``min_length`` characters remain
    """
    text = normalize_for_speech(strip_html(content))
    if len(text) < min_length:
        raise ContentTooShortError(len(text), min_length)
    return text


def sanitize_sentence(sentence: str) -> str:
    """Remove characters that break or disturb the synthesis service."""
    return _TTS_UNSAFE.sub("", sentence)


def simple_md_to_html(md: str) -> str:
    """
    Convert the small markdown subset providers emit into reader HTML.

    Bold and italic become <strong>/<em>; blank lines become <br><br>.
    """
    out = md.replace("```text", "")
    out = _BOLD.sub(r"<strong>\1</strong>", out)
    out = _ITALIC.sub(r"<em>\1</em>", out)
    return out.replace("\n\n", "<br><br>")

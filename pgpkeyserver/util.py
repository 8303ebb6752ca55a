"""String helpers for key identifiers and user ID keyword extraction."""

from __future__ import annotations

import re

MIN_KEYWORD_LEN = 3

_WS = r"[\t\n\f\r ]"
_NON_WS = r"[^\t\n\f\r ]"

USER_ID_REGEX = re.compile(
    rf"^{_WS}*({_NON_WS}.*\b)?{_WS}*(\([^(]+\))?{_WS}*(<[^>]+>)?\Z",
    re.ASCII,
)


def reverse(s: str) -> str:
    """Return the string with its characters in reverse order."""
    return s[::-1]


def _byte_len(s: str) -> int:
    return len(s.encode("utf-8", "surrogatepass"))


def _is_word_char(ch: str) -> bool:
    return ch.isalpha() or ch.isdecimal()


def _keyword_normalize(s: str) -> str:
    words = "".join(ch if _is_word_char(ch) else " " for ch in s).split()
    lowered = (word.lower() for word in words)
    return " ".join(word for word in lowered if _byte_len(word) > 2)


def split_user_id(user_id: str) -> list[str]:
    """Split a user ID string into full-text searchable keywords."""
    match = USER_ID_REGEX.search(user_id)
    if match is None:
        return []
    name, comment, email = (group or "" for group in match.groups())
    candidates = [
        _keyword_normalize(name),
        _keyword_normalize(comment.strip("()")),
        email.strip("<>").lower(),
    ]
    return [word for word in candidates if _byte_len(word) >= MIN_KEYWORD_LEN]


def clean_utf8(s: str | bytes) -> str:
    """Replace undecodable characters with '?' and drop control characters."""
    if isinstance(s, (bytes, bytearray)):
        s = bytes(s).decode("utf-8", "surrogateescape")
    cleaned = []
    for ch in s:
        code = ord(ch)
        if ch == "\ufffd" or 0xD800 <= code <= 0xDFFF:
            ch = "?"
        elif code < 0x20 or code == 0x7F:
            continue
        cleaned.append(ch)
    return "".join(cleaned)
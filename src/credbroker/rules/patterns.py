"""
credbroker.rules.patterns

Anchored glob matching for namespace and role-name patterns.

Responsibilities:
- Match a whole string against a shell-style pattern (`*`, `?`, `[...]`, `\\`).
- Reject malformed patterns with `PatternSyntaxError` instead of guessing.

Semantics:
- `*` matches any run of characters except `/`; `?` matches one character except `/`.
- `[abc]`, `[a-z]` and negated `[^a-z]` classes; a class must hold at least one range.
- A backslash escapes the next character, inside or outside a class.
- Matching is case-sensitive and covers the whole candidate (`foo` never matches `foobar`).
"""

from __future__ import annotations

import re
from functools import lru_cache

from credbroker.errors import PatternSyntaxError

_SEPARATOR = "/"


def match(pattern: str, candidate: str) -> bool:
    return _compile(pattern).fullmatch(candidate) is not None


def validate(pattern: str) -> None:
    """Raise `PatternSyntaxError` if `pattern` is malformed."""

    _compile(pattern)


@lru_cache(maxsize=1024)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(_translate(pattern), re.DOTALL)


def _translate(pattern: str) -> str:
    out: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            # Consecutive stars collapse; none of them cross a separator.
            while i < n and pattern[i] == "*":
                i += 1
            out.append(f"[^{re.escape(_SEPARATOR)}]*")
            continue
        if c == "?":
            out.append(f"[^{re.escape(_SEPARATOR)}]")
            i += 1
            continue
        if c == "\\":
            if i + 1 >= n:
                raise PatternSyntaxError(pattern, "trailing backslash")
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if c == "[":
            expr, i = _translate_class(pattern, i + 1)
            out.append(expr)
            continue
        out.append(re.escape(c))
        i += 1
    return "".join(out)


def _translate_class(pattern: str, i: int) -> tuple[str, int]:
    n = len(pattern)
    negated = False
    if i < n and pattern[i] == "^":
        negated = True
        i += 1

    ranges: list[tuple[str, str]] = []
    while True:
        if i < n and pattern[i] == "]" and ranges:
            i += 1
            break
        lo, i = _class_char(pattern, i)
        hi = lo
        if i < n and pattern[i] == "-":
            hi, i = _class_char(pattern, i + 1)
        ranges.append((lo, hi))

    # Inverted ranges are legal but match nothing.
    parts = [
        re.escape(lo) if lo == hi else f"{re.escape(lo)}-{re.escape(hi)}"
        for lo, hi in ranges
        if lo <= hi
    ]
    if not parts:
        return (r"[\s\S]" if negated else "(?!)"), i
    return f"[{'^' if negated else ''}{''.join(parts)}]", i


def _class_char(pattern: str, i: int) -> tuple[str, int]:
    n = len(pattern)
    if i >= n:
        raise PatternSyntaxError(pattern, "unterminated character class")
    c = pattern[i]
    if c in "-]":
        raise PatternSyntaxError(pattern, f"unexpected {c!r} in character class")
    if c == "\\":
        i += 1
        if i >= n:
            raise PatternSyntaxError(pattern, "trailing backslash in character class")
        c = pattern[i]
    i += 1
    if i >= n:
        raise PatternSyntaxError(pattern, "unterminated character class")
    return c, i


# --- Module Notes -----------------------------------------------------------
# Unlike `fnmatch`, malformed patterns raise and `*` stops at `/`, so a role-name
# pattern never reaches into an IAM role path.

"""Glob matching for include patterns and exclude rules."""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Pattern, Sequence

from .models import DEFAULT_PATTERNS


@dataclass(frozen=True)
class GlobRule:
    """A compiled glob together with the flags parsed off its text."""

    pattern: str
    regex: Pattern[str]
    directory_only: bool
    has_slash: bool

    def matches_name(self, rel_path: str) -> bool:
        """Match as an include pattern: whole path when slashed, file name otherwise."""
        if self.directory_only:
            return False
        if self.has_slash:
            return self.regex.fullmatch(rel_path) is not None
        name = rel_path.rsplit("/", 1)[-1]
        return self.regex.fullmatch(name) is not None

    def matches_any_segment(self, rel_path: str, is_dir: bool = False) -> bool:
        """Match as an exclude rule: any enclosing directory or the path itself."""
        parts = rel_path.split("/")
        if self.has_slash:
            prefixes = ["/".join(parts[:index]) for index in range(1, len(parts) + 1)]
            if not is_dir:
                if not self.directory_only and self.regex.fullmatch(rel_path):
                    return True
                prefixes = prefixes[:-1]
            return any(self.regex.fullmatch(prefix) for prefix in prefixes)
        candidates = parts if is_dir or not self.directory_only else parts[:-1]
        return any(self.regex.fullmatch(part) for part in candidates)


@lru_cache(maxsize=1024)
def compile_glob(pattern: str) -> GlobRule:
    """Compile ``pattern`` into a ``GlobRule``.

    ``*`` stays within one path segment, ``**`` crosses separators (``**/``
    also matches zero directories), ``?`` is one non-separator character,
    ``[...]`` is a character class (``!`` or ``^`` negates) and ``{a,b}``
    is alternation, nestable.
    """
    text = pattern.strip().replace("\\", "/")
    if text.startswith("./"):
        text = text[2:]
    directory_only = text.endswith("/")
    text = text.rstrip("/")
    anchored = text.startswith("/")
    text = text.lstrip("/")
    regex = re.compile(_translate(text))
    return GlobRule(
        pattern=pattern,
        regex=regex,
        directory_only=directory_only,
        has_slash=anchored or "/" in text,
    )


def matches(relative_path: str, patterns: Sequence[str]) -> bool:
    """Return True when ``relative_path`` matches at least one include pattern."""
    path = normalize_relative(relative_path)
    selected = [item for item in patterns if item.strip()] or list(DEFAULT_PATTERNS)
    return any(compile_glob(item).matches_name(path) for item in selected)


def excluded(relative_path: str, excludes: Sequence[str], *, is_dir: bool = False) -> bool:
    """Return True when ``relative_path`` (or a directory above it) is excluded."""
    path = normalize_relative(relative_path)
    for item in excludes:
        if not item.strip():
            continue
        if compile_glob(item).matches_any_segment(path, is_dir=is_dir):
            return True
    return False


def is_candidate(
    relative_path: str,
    patterns: Sequence[str],
    local_excludes: Sequence[str] = (),
    global_excludes: Sequence[str] = (),
) -> bool:
    """Include when a pattern matches and no exclude does; excludes always win."""
    if excluded(relative_path, local_excludes):
        return False
    if excluded(relative_path, global_excludes):
        return False
    return matches(relative_path, patterns)


def normalize_relative(path: str) -> str:
    normalized = path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.strip("/")


def _translate(pattern: str) -> str:
    out: List[str] = []
    index = 0
    length = len(pattern)
    while index < length:
        char = pattern[index]
        if char == "*":
            end = index
            while end < length and pattern[end] == "*":
                end += 1
            if end - index >= 2:
                starts_segment = index == 0 or pattern[index - 1] == "/"
                if starts_segment and end < length and pattern[end] == "/":
                    out.append("(?:[^/]*/)*")
                    index = end + 1
                    continue
                out.append(".*")
            else:
                out.append("[^/]*")
            index = end
            continue
        if char == "?":
            out.append("[^/]")
        elif char == "[":
            close = _class_end(pattern, index)
            if close is None:
                out.append(re.escape(char))
            else:
                body = pattern[index + 1 : close]
                if body[0] in "!^":
                    body = "^" + body[1:]
                out.append("[" + body.replace("\\", "\\\\") + "]")
                index = close + 1
                continue
        elif char == "{":
            close = _brace_end(pattern, index)
            if close is None:
                out.append(re.escape(char))
            else:
                alternatives = _split_alternatives(pattern[index + 1 : close])
                out.append("(?:" + "|".join(_translate(item) for item in alternatives) + ")")
                index = close + 1
                continue
        else:
            out.append(re.escape(char))
        index += 1
    return "".join(out)


def _class_end(pattern: str, start: int) -> Optional[int]:
    cursor = start + 1
    if cursor < len(pattern) and pattern[cursor] in "!^":
        cursor += 1
    if cursor < len(pattern) and pattern[cursor] == "]":
        cursor += 1
    while cursor < len(pattern) and pattern[cursor] != "]":
        cursor += 1
    return cursor if cursor < len(pattern) else None


def _brace_end(pattern: str, start: int) -> Optional[int]:
    depth = 0
    for cursor in range(start, len(pattern)):
        if pattern[cursor] == "{":
            depth += 1
        elif pattern[cursor] == "}":
            depth -= 1
            if depth == 0:
                return cursor
    return None


def _split_alternatives(body: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    current: List[str] = []
    for char in body:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        elif char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return parts


__all__ = ["GlobRule", "compile_glob", "excluded", "is_candidate", "matches", "normalize_relative"]

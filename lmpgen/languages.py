"""File extension to fenced-code language tag lookup."""

from __future__ import annotations

from pathlib import PurePath
from typing import Optional

PLAIN_TAG = "text"

_TAG_BY_SUFFIX = {
    ".py": "python",
    ".pyi": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "jsx",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".java": "java",
    ".kt": "kotlin",
    ".kts": "kotlin",
    ".go": "go",
    ".rs": "rust",
    ".rb": "ruby",
    ".php": "php",
    ".cs": "csharp",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cc": "cpp",
    ".hh": "cpp",
    ".swift": "swift",
    ".m": "objectivec",
    ".mm": "objectivec",
    ".scala": "scala",
    ".r": "r",
    ".jl": "julia",
    ".lua": "lua",
    ".sh": "bash",
    ".bash": "bash",
    ".zsh": "zsh",
    ".ps1": "powershell",
    ".bat": "batch",
    ".cmd": "batch",
    ".sql": "sql",
    ".html": "html",
    ".htm": "html",
    ".css": "css",
    ".scss": "scss",
    ".vue": "vue",
    ".svelte": "svelte",
    ".md": "markdown",
    ".rst": "rst",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".json": "json",
    ".toml": "toml",
    ".ini": "ini",
    ".cfg": "ini",
    ".xml": "xml",
    ".graphql": "graphql",
    ".proto": "protobuf",
    ".tf": "hcl",
}

_TAG_BY_NAME = {
    "dockerfile": "dockerfile",
    "makefile": "makefile",
    "cmakelists.txt": "cmake",
}


def lookup_language(path: str | PurePath) -> Optional[str]:
    """Return the tag for ``path`` or ``None`` when the extension is unknown."""
    pure = PurePath(path)
    by_name = _TAG_BY_NAME.get(pure.name.lower())
    if by_name is not None:
        return by_name
    return _TAG_BY_SUFFIX.get(pure.suffix.lower())


def language_tag(path: str | PurePath) -> str:
    """Return the fence tag for ``path``, falling back to plain text."""
    return lookup_language(path) or PLAIN_TAG


__all__ = ["PLAIN_TAG", "language_tag", "lookup_language"]

"""Engine-level settings shared by every stage of one invocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple

DEFAULT_SOURCE_FILENAMES: Tuple[str, ...] = (".lmp.md", ".lmp")

_SKIPPED_DIRS = frozenset({".git", ".hg", ".svn"})


@dataclass(frozen=True)
class EngineSettings:
    """Tunables for discovery, selection and content reading."""

    source_filenames: Tuple[str, ...] = DEFAULT_SOURCE_FILENAMES
    max_workers: int = 8
    default_max_tokens: Optional[int] = None
    allow_outside_root: bool = False
    skip_dirs: FrozenSet[str] = field(default_factory=lambda: _SKIPPED_DIRS)
    include_source_files: bool = False

    def __post_init__(self) -> None:
        if not self.source_filenames:
            raise ValueError("source_filenames must name at least one file")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.default_max_tokens is not None and self.default_max_tokens <= 0:
            raise ValueError("default_max_tokens must be positive")


__all__ = ["DEFAULT_SOURCE_FILENAMES", "EngineSettings"]

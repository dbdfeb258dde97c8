"""Core data models shared across lmpgen components."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Tuple


class MergeStrategy(str, Enum):
    """How a more specific scope combines with the configuration above it."""

    INHERIT = "inherit"
    REPLACE = "replace"
    APPEND = "append"


class EntryType(str, Enum):
    FILE = "file"
    DIR = "dir"


class OutputFormat(str, Enum):
    MARKDOWN = "markdown"
    JSON = "json"


AI_CONTEXT_FIELDS: Tuple[str, ...] = (
    "focus_areas",
    "domain_knowledge",
    "avoid",
    "patterns_to_follow",
    "performance_considerations",
    "security_notes",
)

DEFAULT_PRIORITY = 5
DEFAULT_PATTERNS: Tuple[str, ...] = ("*",)


@dataclass(frozen=True)
class IncludeEntry:
    """A single path selected by a source document's ``include`` list."""

    path: str
    entry_type: EntryType
    recursive: bool = True
    patterns: Tuple[str, ...] = DEFAULT_PATTERNS
    exclude: Tuple[str, ...] = ()
    max_depth: Optional[int] = None
    description: Optional[str] = None
    priority: int = DEFAULT_PRIORITY
    base_dir: Optional[Path] = None
    source: Optional[Path] = field(default=None, compare=False)
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    def target_key(self) -> Tuple[str, str]:
        """Return the normalized (target, type) pair used to spot duplicate entries."""
        if os.path.isabs(self.path) or self.base_dir is None:
            target = os.path.normpath(self.path)
        else:
            target = os.path.normpath(os.path.join(str(self.base_dir), self.path))
        return target, self.entry_type.value


@dataclass(frozen=True)
class AIContext:
    """Guidance block handed to the downstream model alongside the files."""

    focus_areas: Tuple[str, ...] = ()
    domain_knowledge: Tuple[str, ...] = ()
    avoid: Tuple[str, ...] = ()
    patterns_to_follow: Tuple[str, ...] = ()
    performance_considerations: Tuple[str, ...] = ()
    security_notes: Tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in AI_CONTEXT_FIELDS)

    def items(self) -> Tuple[Tuple[str, Tuple[str, ...]], ...]:
        return tuple((name, getattr(self, name)) for name in AI_CONTEXT_FIELDS)


@dataclass(frozen=True)
class ContextOptions:
    """Generation options; ``None`` means the scope leaves the option unset."""

    max_tokens: Optional[int] = None
    merge_strategy: Optional[MergeStrategy] = None
    output_format: Optional[OutputFormat] = None


@dataclass(frozen=True)
class ParsedConfig:
    """Decoded configuration fragment of one source document.

    ``fields_set`` records which keys the fragment spelled out. Nested keys use
    dotted names (``ai_context.avoid``, ``context_options.max_tokens``) so the
    merge resolver can tell an explicit empty list from an absent one.
    """

    name: Optional[str] = None
    description: Optional[str] = None
    version: Optional[str] = None
    include: Tuple[IncludeEntry, ...] = ()
    exclude: Tuple[str, ...] = ()
    tech_stack: Dict[str, str] = field(default_factory=dict)
    conventions: Dict[str, str] = field(default_factory=dict)
    ai_context: Optional[AIContext] = None
    ai_instructions: Optional[str] = None
    context_options: ContextOptions = field(default_factory=ContextOptions)
    extra: Dict[str, Any] = field(default_factory=dict)
    fields_set: FrozenSet[str] = field(default_factory=frozenset, compare=False)

    @property
    def merge_strategy(self) -> MergeStrategy:
        return self.context_options.merge_strategy or MergeStrategy.INHERIT

    def is_set(self, name: str) -> bool:
        return name in self.fields_set


@dataclass(frozen=True)
class SourceDocument:
    """One hybrid documentation/configuration file."""

    path: Path
    documentation: Optional[str] = None
    config: Optional[ParsedConfig] = None
    config_format: Optional[str] = None

    @property
    def directory(self) -> Path:
        return self.path.parent


@dataclass(frozen=True)
class EffectiveConfig(ParsedConfig):
    """Configuration produced by folding every discovered document."""

    documentation: str = ""
    sources: Tuple[Path, ...] = ()
    provenance: Dict[str, Tuple[Path, ...]] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class CandidateFile:
    """A file selected by an include entry, pending budget admission."""

    absolute_path: Path
    relative_path: str
    size_bytes: int
    priority: int
    description: Optional[str]
    estimated_tokens: int
    source_entry: Optional[IncludeEntry] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class IncludedFile:
    """A candidate admitted into the artifact together with its content."""

    candidate: CandidateFile
    content: str
    language: str


@dataclass(frozen=True)
class Diagnostic:
    """Structured note about a soft condition or recoverable failure."""

    level: str
    code: str
    message: str
    path: Optional[str] = None


@dataclass(frozen=True)
class GenerationMetadata:
    """Summary facts rendered at the top of the artifact."""

    root: str
    files_processed_count: int
    lmp_file_count: int
    estimated_total_tokens: int
    generated_at: str
    max_tokens: Optional[int] = None
    output_format: OutputFormat = OutputFormat.MARKDOWN


@dataclass(frozen=True)
class GenerationResult:
    """Everything the output assembler needs for one invocation."""

    documentation: str
    included_files: Tuple[IncludedFile, ...]
    excluded_for_budget: Tuple[CandidateFile, ...]
    metadata: GenerationMetadata
    config: EffectiveConfig
    diagnostics: Tuple[Diagnostic, ...] = ()
    errors: Tuple[Exception, ...] = field(default=(), compare=False)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


__all__ = [
    "AI_CONTEXT_FIELDS",
    "AIContext",
    "CandidateFile",
    "ContextOptions",
    "DEFAULT_PATTERNS",
    "DEFAULT_PRIORITY",
    "Diagnostic",
    "EffectiveConfig",
    "EntryType",
    "GenerationMetadata",
    "GenerationResult",
    "IncludeEntry",
    "IncludedFile",
    "MergeStrategy",
    "OutputFormat",
    "ParsedConfig",
    "SourceDocument",
]

"""Hierarchical project context generation from LMP documentation files."""

from .assembler import OutputAssembler
from .engine import ContextEngine, Preview
from .errors import (
    ConfigError,
    ConfigParseError,
    ConfigSchemaError,
    FileAccessError,
    IncludeResolutionError,
    LMPError,
    PathResolutionError,
    PathTraversalError,
)
from .models import (
    CandidateFile,
    EffectiveConfig,
    GenerationResult,
    IncludeEntry,
    MergeStrategy,
    OutputFormat,
    ParsedConfig,
    SourceDocument,
)
from .settings import EngineSettings

__version__ = "0.1.0"

__all__ = [
    "CandidateFile",
    "ConfigError",
    "ConfigParseError",
    "ConfigSchemaError",
    "ContextEngine",
    "EffectiveConfig",
    "EngineSettings",
    "FileAccessError",
    "GenerationResult",
    "IncludeEntry",
    "IncludeResolutionError",
    "LMPError",
    "MergeStrategy",
    "OutputAssembler",
    "OutputFormat",
    "ParsedConfig",
    "PathResolutionError",
    "PathTraversalError",
    "Preview",
    "SourceDocument",
]

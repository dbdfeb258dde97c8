"""Exception hierarchy raised by the context generation engine."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class LMPError(RuntimeError):
    """Base class for every error raised by lmpgen."""


class ConfigError(LMPError):
    """Raised when a source document's configuration cannot be used."""

    def __init__(self, path: Optional[Path], message: str) -> None:
        self.path = path
        self.detail = message
        location = str(path) if path is not None else "<text>"
        super().__init__(f"{location}: {message}")


class ConfigParseError(ConfigError):
    """Raised when a JSON, YAML or TOML fragment fails to decode."""

    def __init__(self, path: Optional[Path], fmt: str, message: str) -> None:
        self.format = fmt
        super().__init__(path, f"invalid {fmt} configuration: {message}")


class ConfigSchemaError(ConfigError):
    """Raised when a decoded fragment does not match the configuration schema."""

    def __init__(self, path: Optional[Path], field_name: str, message: str) -> None:
        self.field = field_name
        super().__init__(path, f"{field_name}: {message}")


class PathResolutionError(LMPError):
    """Raised when a configured path cannot be resolved."""

    def __init__(self, configured: str, base_dir: Path, message: str) -> None:
        self.configured = configured
        self.base_dir = base_dir
        super().__init__(f"{configured!r} (relative to {base_dir}): {message}")


class PathTraversalError(PathResolutionError):
    """Raised when a relative path escapes the project boundary."""

    def __init__(self, configured: str, base_dir: Path, boundary: Path) -> None:
        self.boundary = boundary
        super().__init__(configured, base_dir, f"escapes project root {boundary}")


class IncludeResolutionError(LMPError):
    """Raised when an include entry of type ``file`` does not name an existing file."""

    def __init__(
        self,
        configured: str,
        resolved: Path,
        source: Optional[Path] = None,
        *,
        is_directory: bool = False,
    ) -> None:
        self.configured = configured
        self.resolved = resolved
        self.source = source
        self.is_directory = is_directory
        origin = f" (declared in {source})" if source is not None else ""
        if is_directory:
            message = f"Included path is a directory, not a file: {resolved}{origin}"
        else:
            message = f"Included file not found: {resolved}{origin}"
        super().__init__(message)


class FileAccessError(LMPError):
    """Wraps filesystem failures with the path that triggered them."""

    def __init__(self, path: Path, error: OSError) -> None:
        self.path = path
        self.error = error
        reason = error.strerror or str(error)
        super().__init__(f"{path}: {reason}")


__all__ = [
    "ConfigError",
    "ConfigParseError",
    "ConfigSchemaError",
    "FileAccessError",
    "IncludeResolutionError",
    "LMPError",
    "PathResolutionError",
    "PathTraversalError",
]

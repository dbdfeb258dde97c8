"""Resolution of configured include paths against their owning directory."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import PathResolutionError, PathTraversalError


@dataclass(frozen=True)
class ResolvedPath:
    """Normalized absolute path plus portability flag for diagnostics."""

    path: Path
    portable: bool


def resolve_path(
    configured: str,
    base_dir: Path,
    *,
    project_root: Path,
    allow_outside_root: bool = False,
) -> ResolvedPath:
    """Turn ``configured`` into a normalized absolute path.

    Relative paths (``./src``, ``src``, ``../shared``) are joined onto
    ``base_dir``, the directory holding the source document that declared
    them. The result must stay inside ``project_root`` unless
    ``allow_outside_root`` is set. Absolute paths are accepted as-is and
    reported as non-portable. No filesystem access happens here.
    """
    text = configured.strip()
    if not text:
        raise PathResolutionError(configured, base_dir, "path is empty")
    text = text.replace("\\", "/")

    if os.path.isabs(text):
        return ResolvedPath(path=Path(os.path.normpath(text)), portable=False)

    joined = os.path.normpath(os.path.join(str(base_dir), text))
    resolved = Path(joined)
    if not allow_outside_root and not is_within(resolved, project_root):
        raise PathTraversalError(configured, base_dir, project_root)
    return ResolvedPath(path=resolved, portable=True)


def is_within(path: Path, boundary: Path) -> bool:
    """Return True when ``path`` equals ``boundary`` or sits underneath it."""
    target = os.path.normpath(str(path))
    root = os.path.normpath(str(boundary))
    try:
        return os.path.commonpath([target, root]) == root
    except ValueError:
        # Different drives on Windows.
        return False


def resolves_within(path: Path, boundary: Path) -> bool:
    """Return True when ``path`` still sits under ``boundary`` once symlinks are followed."""
    return is_within(Path(os.path.realpath(path)), Path(os.path.realpath(boundary)))


def relative_to_root(path: Path, root: Path) -> str:
    """Return ``path`` relative to ``root`` in POSIX form, or absolute when outside."""
    if is_within(path, root):
        relative = os.path.relpath(os.path.normpath(str(path)), os.path.normpath(str(root)))
        return Path(relative).as_posix()
    return Path(path).as_posix()


__all__ = ["ResolvedPath", "is_within", "relative_to_root", "resolve_path", "resolves_within"]

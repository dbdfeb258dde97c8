"""Selection of candidate files from the effective include list."""

from __future__ import annotations

import os
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

from .budget import estimate_tokens
from .errors import FileAccessError, IncludeResolutionError, PathResolutionError, PathTraversalError
from .logging import get_logger
from .models import CandidateFile, Diagnostic, EffectiveConfig, EntryType, IncludeEntry
from .paths import relative_to_root, resolve_path, resolves_within
from .patterns import excluded, is_candidate
from .settings import EngineSettings

_DirKey = Tuple[int, int]


@dataclass
class Selection:
    """Deduplicated candidates in include order plus soft-condition notes."""

    candidates: List[CandidateFile] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    errors: List[FileAccessError] = field(default_factory=list)


class SelectionEngine:
    """Expands include entries into candidate files.

    Entries are processed in order. A later entry that selects an already
    selected file replaces it in place, so a specific include can refine
    priority and description of a broad directory include.
    """

    def __init__(self, settings: EngineSettings | None = None) -> None:
        self.settings = settings or EngineSettings()
        self.logger = get_logger("selection")

    def select(self, config: EffectiveConfig, project_root: Path) -> Selection:
        """Return candidates for ``config`` with paths relative to ``project_root``.

        Raises ``IncludeResolutionError`` when a ``file`` entry names a path
        that does not exist.
        """
        selection = Selection()
        chosen: Dict[Path, CandidateFile] = {}
        global_excludes = list(config.exclude)
        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as pool:
            for entry in config.include:
                for candidate in self._select_entry(entry, project_root, global_excludes, pool, selection):
                    if candidate.absolute_path in chosen:
                        self.logger.debug(
                            "%s re-selected by %s; later entry wins", candidate.relative_path, entry.path
                        )
                    chosen[candidate.absolute_path] = candidate
        selection.candidates = list(chosen.values())
        self.logger.debug("Selected %d candidate files", len(selection.candidates))
        return selection

    # ------------------------------------------------------------------
    # Internal helpers

    def _select_entry(
        self,
        entry: IncludeEntry,
        project_root: Path,
        global_excludes: Sequence[str],
        pool: Executor,
        selection: Selection,
    ) -> List[CandidateFile]:
        base_dir = entry.base_dir or project_root
        origin = str(entry.source) if entry.source is not None else None
        try:
            resolved = resolve_path(
                entry.path,
                base_dir,
                project_root=project_root,
                allow_outside_root=self.settings.allow_outside_root,
            )
        except PathTraversalError as exc:
            self.logger.warning("Ignoring include %r: %s", entry.path, exc)
            selection.diagnostics.append(Diagnostic("warning", "path-traversal", str(exc), origin))
            return []
        except PathResolutionError as exc:
            self.logger.warning("Ignoring include %r: %s", entry.path, exc)
            selection.diagnostics.append(Diagnostic("warning", "invalid-path", str(exc), origin))
            return []

        if not resolved.portable:
            selection.diagnostics.append(
                Diagnostic("warning", "non-portable-path", f"absolute include path {entry.path}", origin)
            )

        if entry.entry_type is EntryType.FILE:
            paths = self._file_entry(entry, resolved.path, project_root, global_excludes)
        else:
            paths = self._dir_entry(entry, resolved.path, project_root, global_excludes, selection)

        candidates: List[CandidateFile] = []
        for outcome in pool.map(lambda path: _measure(path, project_root, entry), paths):
            if isinstance(outcome, FileAccessError):
                self.logger.warning("Skipping unreadable file %s", outcome)
                selection.errors.append(outcome)
                selection.diagnostics.append(Diagnostic("error", "unreadable-file", str(outcome), str(outcome.path)))
                continue
            candidates.append(outcome)
        return candidates

    def _file_entry(
        self,
        entry: IncludeEntry,
        path: Path,
        project_root: Path,
        global_excludes: Sequence[str],
    ) -> List[Path]:
        if path.is_dir():
            raise IncludeResolutionError(entry.path, path, entry.source, is_directory=True)
        if not path.is_file():
            raise IncludeResolutionError(entry.path, path, entry.source)
        local_path = relative_to_root(path, entry.base_dir or path.parent)
        if excluded(local_path, entry.exclude) or excluded(relative_to_root(path, project_root), global_excludes):
            self.logger.debug("Explicit file %s is excluded", path)
            return []
        return [path]

    def _dir_entry(
        self,
        entry: IncludeEntry,
        directory: Path,
        project_root: Path,
        global_excludes: Sequence[str],
        selection: Selection,
    ) -> List[Path]:
        origin = str(entry.source) if entry.source is not None else None
        if not directory.is_dir():
            self.logger.debug("Include directory %s does not exist", directory)
            selection.diagnostics.append(
                Diagnostic("info", "missing-directory", f"include directory {entry.path} not found", origin)
            )
            return []

        depth_limit: Optional[int] = entry.max_depth if entry.recursive else 0
        found: List[Path] = []
        self._enumerate(
            directory,
            directory,
            0,
            depth_limit,
            (),
            set(),
            found,
            entry,
            project_root,
            global_excludes,
            selection,
        )
        found.sort(key=lambda path: path.relative_to(directory).as_posix())
        if not found:
            selection.diagnostics.append(
                Diagnostic("info", "empty-directory", f"include directory {entry.path} matched no files", origin)
            )
        return found

    def _enumerate(
        self,
        current: Path,
        top: Path,
        depth: int,
        depth_limit: Optional[int],
        chain: Tuple[_DirKey, ...],
        visited: Set[_DirKey],
        found: List[Path],
        entry: IncludeEntry,
        project_root: Path,
        global_excludes: Sequence[str],
        selection: Selection,
    ) -> None:
        try:
            stat_result = os.stat(current)
            with os.scandir(current) as iterator:
                children = sorted(iterator, key=lambda child: child.name)
        except OSError as exc:
            self.logger.warning("Cannot list %s: %s", current, exc)
            selection.diagnostics.append(Diagnostic("warning", "unreadable-directory", str(exc), str(current)))
            return
        key = (stat_result.st_dev, stat_result.st_ino)
        if key in chain:
            self.logger.warning("Symlink loop at %s; branch skipped", current)
            selection.diagnostics.append(
                Diagnostic("warning", "symlink-loop", "symlink loop detected; branch skipped", str(current))
            )
            return
        if key in visited:
            return
        visited.add(key)

        for child in children:
            child_path = Path(child.path)
            local_path = child_path.relative_to(top).as_posix()
            root_path = relative_to_root(child_path, project_root)
            try:
                is_dir = child.is_dir(follow_symlinks=True)
                is_file = not is_dir and child.is_file(follow_symlinks=True)
            except OSError:
                continue
            if is_dir:
                if child.name in self.settings.skip_dirs:
                    continue
                if depth_limit is not None and depth >= depth_limit:
                    continue
                if excluded(local_path, entry.exclude, is_dir=True) or excluded(
                    root_path, global_excludes, is_dir=True
                ):
                    continue
                if not self._stays_inside(child, child_path, project_root, selection):
                    continue
                self._enumerate(
                    child_path,
                    top,
                    depth + 1,
                    depth_limit,
                    chain + (key,),
                    visited,
                    found,
                    entry,
                    project_root,
                    global_excludes,
                    selection,
                )
            elif is_file:
                if not self.settings.include_source_files and child.name in self.settings.source_filenames:
                    continue
                if not is_candidate(local_path, entry.patterns, entry.exclude):
                    continue
                if excluded(root_path, global_excludes):
                    continue
                if not self._stays_inside(child, child_path, project_root, selection):
                    continue
                found.append(child_path)

    def _stays_inside(
        self, child: os.DirEntry, child_path: Path, project_root: Path, selection: Selection
    ) -> bool:
        if not child.is_symlink() or self.settings.allow_outside_root:
            return True
        if resolves_within(child_path, project_root):
            return True
        self.logger.warning("Skipping %s; symlink leads outside %s", child_path, project_root)
        selection.diagnostics.append(
            Diagnostic("warning", "path-traversal", f"symlink leads outside {project_root}", str(child_path))
        )
        return False


def _measure(path: Path, project_root: Path, entry: IncludeEntry) -> Union[CandidateFile, FileAccessError]:
    try:
        size = path.stat().st_size
    except OSError as exc:
        return FileAccessError(path, exc)
    return CandidateFile(
        absolute_path=path,
        relative_path=relative_to_root(path, project_root),
        size_bytes=size,
        priority=entry.priority,
        description=entry.description,
        estimated_tokens=estimate_tokens(size),
        source_entry=entry,
    )


__all__ = ["Selection", "SelectionEngine"]

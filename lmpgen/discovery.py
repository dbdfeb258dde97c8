"""Hierarchical discovery of source documents around a target directory."""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Set, Tuple, Union

from .config import load_document
from .errors import LMPError
from .logging import get_logger
from .models import Diagnostic, SourceDocument
from .paths import resolves_within
from .settings import EngineSettings

_DirKey = Tuple[int, int]


@dataclass
class Discovery:
    """Ordered documents found for a target plus the failures met on the way."""

    target: Path
    project_root: Path
    source_paths: List[Path] = field(default_factory=list)
    documents: List[SourceDocument] = field(default_factory=list)
    errors: List[LMPError] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)


class DiscoveryWalker:
    """Locates source documents above and below a target directory.

    Ancestors are collected while every parent directory holds a source
    document; the topmost one found becomes the project root. The subtree
    below the target is walked completely. Output order is root-most
    ancestor first, then the target's own document, then descendants sorted
    by relative directory path.
    """

    def __init__(self, settings: EngineSettings | None = None) -> None:
        self.settings = settings or EngineSettings()
        self.logger = get_logger("discovery")

    def discover(self, target: Union[str, Path]) -> Discovery:
        """Return every source document relevant to ``target`` in merge order."""
        target_dir = Path(target).expanduser().resolve()
        if not target_dir.exists():
            raise FileNotFoundError(f"Target path not found: {target}")
        if not target_dir.is_dir():
            raise NotADirectoryError(f"Target path is not a directory: {target}")

        diagnostics: List[Diagnostic] = []
        ancestors = self._ascend(target_dir, diagnostics)
        own = self._source_in(target_dir, diagnostics)
        project_root = ancestors[0].parent if ancestors else target_dir
        descendants = self._descend(target_dir, project_root, diagnostics)

        ordered = list(ancestors)
        if own is not None:
            ordered.append(own)
        ordered.extend(descendants)
        self.logger.debug(
            "Found %d source documents (%d ancestors, %d descendants) under root %s",
            len(ordered),
            len(ancestors),
            len(descendants),
            project_root,
        )

        discovery = Discovery(
            target=target_dir,
            project_root=project_root,
            source_paths=ordered,
            diagnostics=diagnostics,
        )
        self._parse_all(ordered, discovery)
        return discovery

    # ------------------------------------------------------------------
    # Internal helpers

    def _ascend(self, target_dir: Path, diagnostics: List[Diagnostic]) -> List[Path]:
        found: List[Path] = []
        current = target_dir
        while True:
            parent = current.parent
            if parent == current:
                break
            source = self._source_in(parent, diagnostics)
            if source is None:
                break
            found.append(source)
            current = parent
        found.reverse()
        return found

    def _descend(self, root: Path, boundary: Path, diagnostics: List[Diagnostic]) -> List[Path]:
        results: List[Path] = []
        visited: Set[_DirKey] = set()
        self._walk(root, root, boundary, (), visited, results, diagnostics)
        results.sort(key=lambda source: source.parent.relative_to(root).as_posix())
        return results

    def _walk(
        self,
        directory: Path,
        root: Path,
        boundary: Path,
        chain: Tuple[_DirKey, ...],
        visited: Set[_DirKey],
        results: List[Path],
        diagnostics: List[Diagnostic],
    ) -> None:
        try:
            stat_result = os.stat(directory)
        except OSError as exc:
            self._warn(diagnostics, "unreadable-directory", f"cannot stat directory: {exc}", directory)
            return
        key = (stat_result.st_dev, stat_result.st_ino)
        if key in chain:
            self._warn(diagnostics, "symlink-loop", "symlink loop detected; branch skipped", directory)
            return
        if key in visited:
            self.logger.debug("Skipping %s; already visited through another link", directory)
            return
        visited.add(key)

        try:
            with os.scandir(directory) as iterator:
                entries = sorted(iterator, key=lambda entry: entry.name)
        except OSError as exc:
            self._warn(diagnostics, "unreadable-directory", f"cannot list directory: {exc}", directory)
            return

        if directory != root:
            source = self._source_in(directory, diagnostics)
            if source is not None:
                results.append(source)

        for entry in entries:
            if entry.name in self.settings.skip_dirs:
                continue
            try:
                is_dir = entry.is_dir(follow_symlinks=True)
            except OSError:
                continue
            if not is_dir:
                continue
            child = Path(entry.path)
            if (
                entry.is_symlink()
                and not self.settings.allow_outside_root
                and not resolves_within(child, boundary)
            ):
                self._warn(
                    diagnostics, "path-traversal", f"symlink leads outside {boundary}; branch skipped", child
                )
                continue
            self._walk(child, root, boundary, chain + (key,), visited, results, diagnostics)

    def _source_in(self, directory: Path, diagnostics: List[Diagnostic]) -> Optional[Path]:
        found = [directory / name for name in self.settings.source_filenames if (directory / name).is_file()]
        if not found:
            return None
        if len(found) > 1:
            names = ", ".join(path.name for path in found)
            self._warn(
                diagnostics,
                "duplicate-source",
                f"multiple source documents ({names}); using {found[0].name}",
                directory,
            )
        return found[0]

    def _parse_all(self, paths: Sequence[Path], discovery: Discovery) -> None:
        if not paths:
            return
        workers = min(self.settings.max_workers, len(paths))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            # map() yields in submission order, so discovery order survives the fan-out.
            outcomes = list(pool.map(_load_safely, paths))
        for path, outcome in zip(paths, outcomes):
            if isinstance(outcome, LMPError):
                self.logger.warning("Skipping %s: %s", path, outcome)
                discovery.errors.append(outcome)
                discovery.diagnostics.append(Diagnostic("error", "invalid-source", str(outcome), str(path)))
                continue
            self.logger.debug("Parsed %s (config=%s)", path, outcome.config_format or "none")
            discovery.documents.append(outcome)

    def _warn(self, diagnostics: List[Diagnostic], code: str, message: str, path: Path) -> None:
        self.logger.warning("%s: %s", path, message)
        diagnostics.append(Diagnostic("warning", code, message, str(path)))


def _load_safely(path: Path) -> Union[SourceDocument, LMPError]:
    try:
        return load_document(path)
    except LMPError as exc:
        return exc


__all__ = ["Discovery", "DiscoveryWalker"]

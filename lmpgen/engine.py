"""Pipeline entry point: discovery, merge, selection, packing and assembly."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from .assembler import OutputAssembler
from .budget import PackResult, estimate_text_tokens, pack
from .config import validate_file
from .discovery import DiscoveryWalker
from .errors import FileAccessError, LMPError
from .languages import PLAIN_TAG, language_tag, lookup_language
from .logging import get_logger
from .merge import merge
from .models import (
    CandidateFile,
    Diagnostic,
    EffectiveConfig,
    GenerationMetadata,
    GenerationResult,
    IncludedFile,
    OutputFormat,
)
from .selection import SelectionEngine
from .settings import EngineSettings


@dataclass
class Preview:
    """Selection and packing outcome without file contents."""

    project_root: Path
    config: EffectiveConfig
    candidates: List[CandidateFile]
    packed: PackResult
    max_tokens: Optional[int]
    source_count: int = 0
    diagnostics: List[Diagnostic] = field(default_factory=list)
    errors: List[LMPError] = field(default_factory=list)


def _utc_now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class ContextEngine:
    """Builds bounded-size project context artifacts from LMP files.

    Every call keeps its state local, so one engine can serve many
    invocations from a long-lived process.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        *,
        walker: DiscoveryWalker | None = None,
        selector: SelectionEngine | None = None,
        assembler: OutputAssembler | None = None,
        clock: Callable[[], str] | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.walker = walker or DiscoveryWalker(self.settings)
        self.selector = selector or SelectionEngine(self.settings)
        self.assembler = assembler or OutputAssembler()
        self._clock = clock or _utc_now
        self.logger = get_logger("engine")

    def generate(
        self,
        target: Union[str, Path],
        *,
        max_tokens: Optional[int] = None,
        output_format: OutputFormat | str | None = None,
    ) -> GenerationResult:
        """Run the full pipeline for ``target`` and return the result.

        Broken source documents and unreadable files are skipped and
        reported on the result; an include entry naming a missing file
        raises ``IncludeResolutionError``.
        """
        self.logger.info("Generating context for %s", target)
        preview = self.preview(target, max_tokens=max_tokens)
        diagnostics = list(preview.diagnostics)
        errors: List[Exception] = list(preview.errors)

        included, read_failures, read_notes = self._read_contents(preview.packed.included)
        diagnostics.extend(read_notes)
        for failure in read_failures:
            self.logger.warning("Dropping unreadable file %s", failure)
            errors.append(failure)
            diagnostics.append(Diagnostic("error", "unreadable-file", str(failure), str(failure.path)))

        config = preview.config
        fmt = self._resolve_format(output_format, config)
        documentation = config.documentation
        total_tokens = sum(item.candidate.estimated_tokens for item in included)
        total_tokens += estimate_text_tokens(documentation)

        metadata = GenerationMetadata(
            root=str(preview.project_root),
            files_processed_count=len(preview.candidates),
            lmp_file_count=preview.source_count,
            estimated_total_tokens=total_tokens,
            generated_at=self._clock(),
            max_tokens=preview.max_tokens,
            output_format=fmt,
        )
        self.logger.info(
            "Included %d of %d files (~%d tokens); %d skipped for budget",
            len(included),
            len(preview.candidates),
            total_tokens,
            len(preview.packed.excluded),
        )
        return GenerationResult(
            documentation=documentation,
            included_files=tuple(included),
            excluded_for_budget=tuple(preview.packed.excluded),
            metadata=metadata,
            config=config,
            diagnostics=tuple(diagnostics),
            errors=tuple(errors),
        )

    def render(
        self,
        target: Union[str, Path],
        *,
        max_tokens: Optional[int] = None,
        output_format: OutputFormat | str | None = None,
    ) -> Tuple[GenerationResult, str]:
        """Generate and assemble; return the result alongside the artifact text."""
        result = self.generate(target, max_tokens=max_tokens, output_format=output_format)
        return result, self.assembler.assemble(result)

    def preview(self, target: Union[str, Path], *, max_tokens: Optional[int] = None) -> Preview:
        """Run discovery through packing without reading any file contents."""
        discovery = self.walker.discover(target)
        config = merge(discovery.documents)
        selection = self.selector.select(config, discovery.project_root)

        budget = max_tokens or config.context_options.max_tokens or self.settings.default_max_tokens
        packed = pack(selection.candidates, budget)

        diagnostics = list(discovery.diagnostics) + list(selection.diagnostics)
        for candidate in packed.excluded:
            diagnostics.append(
                Diagnostic(
                    "info",
                    "skipped-for-budget",
                    f"{candidate.relative_path} (~{candidate.estimated_tokens} tokens) did not fit the budget",
                    candidate.relative_path,
                )
            )
        errors: List[LMPError] = list(discovery.errors) + list(selection.errors)
        return Preview(
            project_root=discovery.project_root,
            config=config,
            candidates=selection.candidates,
            packed=packed,
            max_tokens=budget,
            source_count=len(discovery.source_paths),
            diagnostics=diagnostics,
            errors=errors,
        )

    def validate(self, target: Union[str, Path]) -> List[Diagnostic]:
        """Check every source document relevant to ``target`` without selecting files."""
        discovery = self.walker.discover(target)
        diagnostics = [item for item in discovery.diagnostics if item.code != "invalid-source"]
        for path in discovery.source_paths:
            diagnostics.extend(validate_file(path))
        return diagnostics

    # ------------------------------------------------------------------
    # Internal helpers

    def _read_contents(
        self, candidates: Sequence[CandidateFile]
    ) -> Tuple[List[IncludedFile], List[FileAccessError], List[Diagnostic]]:
        if not candidates:
            return [], [], []
        workers = min(self.settings.max_workers, len(candidates))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(_read_candidate, candidates))

        included: List[IncludedFile] = []
        failures: List[FileAccessError] = []
        notes: List[Diagnostic] = []
        for outcome in outcomes:
            if isinstance(outcome, FileAccessError):
                failures.append(outcome)
                continue
            if lookup_language(outcome.candidate.relative_path) is None:
                notes.append(
                    Diagnostic(
                        "info",
                        "unknown-language",
                        f"no language tag for {outcome.candidate.relative_path}; using {PLAIN_TAG}",
                        outcome.candidate.relative_path,
                    )
                )
            included.append(outcome)
        return included, failures, notes

    def _resolve_format(self, override: OutputFormat | str | None, config: EffectiveConfig) -> OutputFormat:
        if override is not None:
            return OutputFormat(override)
        return config.context_options.output_format or OutputFormat.MARKDOWN


def _read_candidate(candidate: CandidateFile) -> Union[IncludedFile, FileAccessError]:
    try:
        raw = candidate.absolute_path.read_bytes()
    except OSError as exc:
        return FileAccessError(candidate.absolute_path, exc)
    content = raw.decode("utf-8", errors="replace")
    return IncludedFile(candidate=candidate, content=content, language=language_tag(candidate.relative_path))


__all__ = ["ContextEngine", "Preview"]

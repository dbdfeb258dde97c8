"""Folding discovered configurations into one effective configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from .logging import get_logger
from .models import (
    AI_CONTEXT_FIELDS,
    AIContext,
    ContextOptions,
    EffectiveConfig,
    IncludeEntry,
    MergeStrategy,
    OutputFormat,
    ParsedConfig,
    SourceDocument,
)

_TEXT_FIELDS: Tuple[str, ...] = ("name", "description", "version", "ai_instructions")
# Joined rather than overridden under the append strategy.
_NARRATIVE_FIELDS = frozenset({"description", "ai_instructions"})
_OPTION_FIELDS: Tuple[str, ...] = ("max_tokens", "output_format")

logger = get_logger("merge")


@dataclass
class _MergeState:
    scalars: Dict[str, Optional[str]] = field(default_factory=lambda: {key: None for key in _TEXT_FIELDS})
    options: Dict[str, Any] = field(default_factory=lambda: {key: None for key in _OPTION_FIELDS})
    merge_strategy: Optional[MergeStrategy] = None
    include: List[IncludeEntry] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    tech_stack: Dict[str, str] = field(default_factory=dict)
    conventions: Dict[str, str] = field(default_factory=dict)
    ai_context: Dict[str, List[str]] = field(default_factory=lambda: {key: [] for key in AI_CONTEXT_FIELDS})
    has_ai_context: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)
    fields_set: Set[str] = field(default_factory=set)
    provenance: Dict[str, List[Path]] = field(default_factory=dict)

    def record(self, name: str, path: Path, *, reset: bool = False) -> None:
        sources = self.provenance.setdefault(name, [])
        if reset:
            sources.clear()
        if path not in sources:
            sources.append(path)


def merge(documents: Sequence[SourceDocument]) -> EffectiveConfig:
    """Fold ``documents`` left to right into an ``EffectiveConfig``.

    Each document's own ``merge_strategy`` decides how it combines with
    everything folded before it, so the order of ``documents`` (root-most
    first) determines precedence. Documentation is always concatenated.
    """
    state = _MergeState()
    documentation: List[str] = []
    for document in documents:
        if document.documentation and document.documentation.strip():
            documentation.append(document.documentation.strip())
        config = document.config
        if config is None:
            continue
        strategy = config.merge_strategy
        logger.debug("Merging %s with strategy %s", document.path, strategy.value)
        _FOLDS[strategy](state, config, document.path)
        if config.context_options.merge_strategy is not None:
            state.merge_strategy = config.context_options.merge_strategy
        state.fields_set.update(config.fields_set)
        for key, value in config.extra.items():
            state.extra[key] = value
            state.record(key, document.path, reset=True)

    return _freeze(state, documentation, tuple(document.path for document in documents))


def _fold_inherit(state: _MergeState, config: ParsedConfig, path: Path) -> None:
    _override_scalars(state, config, path)
    _concat_collections(state, config, path)


def _fold_replace(state: _MergeState, config: ParsedConfig, path: Path) -> None:
    _override_scalars(state, config, path)
    if config.is_set("include"):
        state.include = []
        _concat_entries(state.include, config.include)
        state.record("include", path, reset=True)
    if config.is_set("exclude"):
        state.exclude = list(config.exclude)
        state.record("exclude", path, reset=True)
    if config.is_set("tech_stack"):
        state.tech_stack = dict(config.tech_stack)
        state.record("tech_stack", path, reset=True)
    if config.is_set("conventions"):
        state.conventions = dict(config.conventions)
        state.record("conventions", path, reset=True)
    if config.ai_context is not None:
        state.has_ai_context = True
        for name, values in config.ai_context.items():
            if config.is_set(f"ai_context.{name}"):
                state.ai_context[name] = list(values)
                state.record(f"ai_context.{name}", path, reset=True)


def _fold_append(state: _MergeState, config: ParsedConfig, path: Path) -> None:
    for key in _TEXT_FIELDS:
        value = getattr(config, key)
        if value is None:
            continue
        current = state.scalars[key]
        if key in _NARRATIVE_FIELDS and current:
            state.scalars[key] = f"{current}\n\n{value}"
            state.record(key, path)
        elif current is None:
            state.scalars[key] = value
            state.record(key, path, reset=True)
    for key in _OPTION_FIELDS:
        value = getattr(config.context_options, key)
        if value is not None and state.options[key] is None:
            state.options[key] = value
            state.record(f"context_options.{key}", path, reset=True)
    _concat_collections(state, config, path)


def _override_scalars(state: _MergeState, config: ParsedConfig, path: Path) -> None:
    for key in _TEXT_FIELDS:
        value = getattr(config, key)
        if value is not None:
            state.scalars[key] = value
            state.record(key, path, reset=True)
    for key in _OPTION_FIELDS:
        value = getattr(config.context_options, key)
        if value is not None:
            state.options[key] = value
            state.record(f"context_options.{key}", path, reset=True)


def _concat_collections(state: _MergeState, config: ParsedConfig, path: Path) -> None:
    if config.include:
        _concat_entries(state.include, config.include)
        state.record("include", path)
    if config.exclude:
        for pattern in config.exclude:
            if pattern not in state.exclude:
                state.exclude.append(pattern)
        state.record("exclude", path)
    if config.tech_stack:
        state.tech_stack.update(config.tech_stack)
        state.record("tech_stack", path)
    if config.conventions:
        state.conventions.update(config.conventions)
        state.record("conventions", path)
    if config.ai_context is not None:
        state.has_ai_context = True
        for name, values in config.ai_context.items():
            if values:
                state.ai_context[name].extend(values)
                state.record(f"ai_context.{name}", path)


def _concat_entries(existing: List[IncludeEntry], incoming: Sequence[IncludeEntry]) -> None:
    positions = {entry.target_key(): index for index, entry in enumerate(existing)}
    for entry in incoming:
        key = entry.target_key()
        if key in positions:
            # Same target and type: the later entry takes the earlier slot.
            existing[positions[key]] = entry
            continue
        positions[key] = len(existing)
        existing.append(entry)


def _freeze(state: _MergeState, documentation: List[str], sources: Tuple[Path, ...]) -> EffectiveConfig:
    ai_context = None
    if state.has_ai_context:
        ai_context = AIContext(**{name: tuple(values) for name, values in state.ai_context.items()})
    output_format = state.options["output_format"]
    options = ContextOptions(
        max_tokens=state.options["max_tokens"],
        merge_strategy=state.merge_strategy,
        output_format=OutputFormat(output_format) if output_format is not None else None,
    )
    return EffectiveConfig(
        name=state.scalars["name"],
        description=state.scalars["description"],
        version=state.scalars["version"],
        include=tuple(state.include),
        exclude=tuple(state.exclude),
        tech_stack=dict(state.tech_stack),
        conventions=dict(state.conventions),
        ai_context=ai_context,
        ai_instructions=state.scalars["ai_instructions"],
        context_options=options,
        extra=dict(state.extra),
        fields_set=frozenset(state.fields_set),
        documentation="\n\n".join(documentation),
        sources=sources,
        provenance={name: tuple(paths) for name, paths in state.provenance.items()},
    )


_FOLDS: Dict[MergeStrategy, Callable[[_MergeState, ParsedConfig, Path], None]] = {
    MergeStrategy.INHERIT: _fold_inherit,
    MergeStrategy.REPLACE: _fold_replace,
    MergeStrategy.APPEND: _fold_append,
}


__all__ = ["merge"]

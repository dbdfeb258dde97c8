"""Parsing of hybrid documentation/configuration source documents (LMP files)."""

from __future__ import annotations

import datetime
import json
import os
import re
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import tomli_w
import yaml

from .errors import ConfigError, ConfigParseError, ConfigSchemaError, FileAccessError
from .models import (
    AI_CONTEXT_FIELDS,
    DEFAULT_PATTERNS,
    DEFAULT_PRIORITY,
    AIContext,
    ContextOptions,
    Diagnostic,
    EntryType,
    IncludeEntry,
    MergeStrategy,
    OutputFormat,
    ParsedConfig,
    SourceDocument,
)

_FENCE_OPEN = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})(?P<info>.*)$")
_FENCE_CLOSE = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})\s*$")

_FORMAT_ALIASES = {
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "toml": "toml",
}

_KNOWN_KEYS = {
    "name",
    "description",
    "version",
    "include",
    "exclude",
    "tech_stack",
    "conventions",
    "ai_context",
    "ai_instructions",
    "context_options",
}

_ENTRY_KEYS = {
    "path",
    "type",
    "recursive",
    "patterns",
    "exclude",
    "max_depth",
    "description",
    "priority",
}


@dataclass
class _Fence:
    tag: str
    start: int
    end: Optional[int]
    body: str


def load_document(path: Path) -> SourceDocument:
    """Read and parse one source document from disk."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise FileAccessError(path, exc) from exc
    except UnicodeDecodeError as exc:
        raise ConfigError(path, f"not valid UTF-8 text ({exc.reason})") from exc
    return parse_document(text, path)


def parse_document(text: str, path: Optional[Path] = None) -> SourceDocument:
    """Split ``text`` into documentation and configuration and decode the latter.

    Only the last fenced block tagged ``json``, ``yaml``/``yml`` or ``toml`` is
    configuration; earlier blocks, and blocks with any other tag, stay in the
    documentation.
    """
    lines = text.splitlines(keepends=True)
    fences = _scan_fences(lines)
    recognized = [fence for fence in fences if fence.tag in _FORMAT_ALIASES]
    doc_path = path if path is not None else Path("<text>")

    if not recognized:
        return SourceDocument(path=doc_path, documentation=_clean(text))

    fence = recognized[-1]
    before = "".join(lines[: fence.start])
    after = "".join(lines[fence.end + 1 :]) if fence.end is not None else ""
    documentation = _join_text(_clean(before), _clean(after))

    fmt = _FORMAT_ALIASES[fence.tag]
    config: Optional[ParsedConfig] = None
    if fence.body.strip():
        data = decode_fragment(fence.body, fmt, path)
        base_dir = path.parent if path is not None else None
        config = build_config(data, path=path, base_dir=base_dir)

    return SourceDocument(
        path=doc_path,
        documentation=documentation,
        config=config,
        config_format=fmt,
    )


def decode_fragment(body: str, fmt: str, path: Optional[Path] = None) -> Dict[str, Any]:
    """Decode a configuration fragment written in ``fmt``."""
    fmt = _FORMAT_ALIASES.get(fmt.lower(), fmt.lower())
    decoder = _DECODERS.get(fmt)
    if decoder is None:
        raise ConfigParseError(path, fmt, "unsupported configuration format")
    try:
        loaded = decoder(body)
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigParseError(path, fmt, str(exc)) from exc
    except RecursionError as exc:
        raise ConfigParseError(path, fmt, "configuration is nested too deeply") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigSchemaError(path, "<root>", "configuration must be a mapping")
    return loaded


def build_config(
    data: Mapping[str, Any],
    *,
    path: Optional[Path] = None,
    base_dir: Optional[Path] = None,
) -> ParsedConfig:
    """Coerce a decoded mapping into a ``ParsedConfig``."""
    fields_set = set(key for key in data if key in _KNOWN_KEYS and data[key] is not None)

    include_data = data.get("include")
    if include_data is None:
        include: Tuple[IncludeEntry, ...] = ()
    elif isinstance(include_data, list):
        include = tuple(
            _build_entry(item, index, path=path, base_dir=base_dir)
            for index, item in enumerate(include_data)
        )
    else:
        raise ConfigSchemaError(path, "include", "must be a list of entries")

    ai_context = None
    ai_data = data.get("ai_context")
    if ai_data is not None:
        if not isinstance(ai_data, dict):
            raise ConfigSchemaError(path, "ai_context", "must be a mapping")
        values = {
            name: tuple(_as_str_list(ai_data.get(name), f"ai_context.{name}", path))
            for name in AI_CONTEXT_FIELDS
        }
        ai_context = AIContext(**values)
        fields_set.update(f"ai_context.{name}" for name in AI_CONTEXT_FIELDS if name in ai_data)

    options = ContextOptions()
    options_data = data.get("context_options")
    if options_data is not None:
        if not isinstance(options_data, dict):
            raise ConfigSchemaError(path, "context_options", "must be a mapping")
        options = _build_options(options_data, path)
        fields_set.update(
            f"context_options.{name}"
            for name in ("max_tokens", "merge_strategy", "output_format")
            if options_data.get(name) is not None
        )

    extra = {str(key): _plain(value) for key, value in data.items() if key not in _KNOWN_KEYS}

    return ParsedConfig(
        name=_as_str(data.get("name"), "name", path),
        description=_as_str(data.get("description"), "description", path),
        version=_as_str(data.get("version"), "version", path),
        include=include,
        exclude=tuple(_unique(_as_str_list(data.get("exclude"), "exclude", path))),
        tech_stack=_as_str_mapping(data.get("tech_stack"), "tech_stack", path),
        conventions=_as_str_mapping(data.get("conventions"), "conventions", path),
        ai_context=ai_context,
        ai_instructions=_as_str(data.get("ai_instructions"), "ai_instructions", path),
        context_options=options,
        extra=extra,
        fields_set=frozenset(fields_set),
    )


def config_to_dict(config: ParsedConfig) -> Dict[str, Any]:
    """Return the plain-data form of ``config`` suitable for any serializer."""
    data: Dict[str, Any] = {}
    for key in ("name", "description", "version"):
        value = getattr(config, key)
        if value is not None:
            data[key] = value
    data["include"] = [_entry_to_dict(entry) for entry in config.include]
    if config.exclude:
        data["exclude"] = list(config.exclude)
    if config.tech_stack:
        data["tech_stack"] = dict(config.tech_stack)
    if config.conventions:
        data["conventions"] = dict(config.conventions)
    if config.ai_context is not None:
        data["ai_context"] = {name: list(values) for name, values in config.ai_context.items()}
    if config.ai_instructions is not None:
        data["ai_instructions"] = config.ai_instructions
    options = config.context_options
    options_data: Dict[str, Any] = {}
    if options.max_tokens is not None:
        options_data["max_tokens"] = options.max_tokens
    if options.merge_strategy is not None:
        options_data["merge_strategy"] = options.merge_strategy.value
    if options.output_format is not None:
        options_data["output_format"] = options.output_format.value
    if options_data:
        data["context_options"] = options_data
    data.update(config.extra)
    return data


def dump_config(config: ParsedConfig, fmt: str) -> str:
    """Serialize ``config`` as JSON, YAML or TOML text."""
    fmt = _FORMAT_ALIASES.get(fmt.lower(), fmt.lower())
    data = config_to_dict(config)
    if fmt == "json":
        return json.dumps(data, indent=2) + "\n"
    if fmt == "yaml":
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    if fmt == "toml":
        # TOML has no null; absent keys already mean "unset".
        return tomli_w.dumps(_drop_none(data))
    raise ValueError(f"Unsupported configuration format: {fmt}")


def render_document(documentation: Optional[str], config: Optional[ParsedConfig], fmt: str = "yaml") -> str:
    """Render a source document with an optional trailing configuration block."""
    parts: List[str] = []
    if documentation:
        parts.append(documentation.strip() + "\n")
    if config is not None:
        tag = _FORMAT_ALIASES.get(fmt.lower(), fmt.lower())
        body = dump_config(config, tag)
        if not body.endswith("\n"):
            body += "\n"
        parts.append(f"```{tag}\n{body}```\n")
    return "\n".join(parts)


def validate_text(text: str, path: Optional[Path] = None) -> List[Diagnostic]:
    """Check one source document without selecting or packing any files."""
    location = str(path) if path is not None else None
    try:
        document = parse_document(text, path)
    except ConfigError as exc:
        code = "parse-error" if isinstance(exc, ConfigParseError) else "schema-error"
        return [Diagnostic("error", code, exc.detail, location)]

    diagnostics: List[Diagnostic] = []
    if document.config is None:
        diagnostics.append(
            Diagnostic("warning", "no-config", "no json/yaml/toml configuration block found", location)
        )
        return diagnostics
    if not document.documentation:
        diagnostics.append(Diagnostic("info", "no-documentation", "document has no prose section", location))
    config = document.config
    for key in sorted(config.extra):
        diagnostics.append(Diagnostic("info", "unknown-field", f"unknown field '{key}' is ignored", location))
    for entry in config.include:
        if os.path.isabs(entry.path):
            diagnostics.append(
                Diagnostic("warning", "non-portable-path", f"absolute include path {entry.path}", location)
            )
        for key in sorted(entry.extra):
            diagnostics.append(
                Diagnostic("info", "unknown-field", f"unknown include field '{key}' is ignored", location)
            )
    return diagnostics


def validate_file(path: Path) -> List[Diagnostic]:
    """Validate the source document at ``path``."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return [Diagnostic("error", "read-error", str(exc), str(path))]
    return validate_text(text, path)


def _scan_fences(lines: Sequence[str]) -> List[_Fence]:
    fences: List[_Fence] = []
    index = 0
    while index < len(lines):
        opening = _FENCE_OPEN.match(lines[index].rstrip("\r\n"))
        if not opening:
            index += 1
            continue
        marker = opening.group("fence")
        info = opening.group("info").strip()
        tag = info.split()[0].lower() if info else ""
        close: Optional[int] = None
        cursor = index + 1
        while cursor < len(lines):
            closing = _FENCE_CLOSE.match(lines[cursor].rstrip("\r\n"))
            if closing:
                candidate = closing.group("fence")
                if candidate[0] == marker[0] and len(candidate) >= len(marker):
                    close = cursor
                    break
            cursor += 1
        # An unclosed fence runs to the end of the document.
        stop = close if close is not None else len(lines)
        fences.append(_Fence(tag=tag, start=index, end=close, body="".join(lines[index + 1 : stop])))
        index = stop + 1
    return fences


def _build_entry(
    item: Any,
    index: int,
    *,
    path: Optional[Path],
    base_dir: Optional[Path],
) -> IncludeEntry:
    field_name = f"include[{index}]"
    if not isinstance(item, dict):
        raise ConfigSchemaError(path, field_name, "entry must be a mapping")

    entry_path = _as_str(item.get("path"), f"{field_name}.path", path)
    if not entry_path:
        raise ConfigSchemaError(path, f"{field_name}.path", "is required")

    raw_type = item.get("type")
    if raw_type is None:
        raise ConfigSchemaError(path, f"{field_name}.type", "is required")
    try:
        entry_type = EntryType(str(raw_type).lower())
    except ValueError:
        raise ConfigSchemaError(
            path, f"{field_name}.type", f"must be 'file' or 'dir', got {raw_type!r}"
        ) from None

    recursive = _as_bool(item.get("recursive"))
    if item.get("recursive") is not None and recursive is None:
        raise ConfigSchemaError(path, f"{field_name}.recursive", "must be a boolean")

    patterns = _as_str_list(item.get("patterns"), f"{field_name}.patterns", path)

    max_depth = None
    if item.get("max_depth") is not None:
        max_depth = _as_int(item.get("max_depth"))
        if max_depth is None or max_depth < 0:
            raise ConfigSchemaError(path, f"{field_name}.max_depth", "must be an integer >= 0")

    priority = DEFAULT_PRIORITY
    if item.get("priority") is not None:
        parsed_priority = _as_int(item.get("priority"))
        if parsed_priority is None or not 1 <= parsed_priority <= 10:
            raise ConfigSchemaError(path, f"{field_name}.priority", "must be an integer between 1 and 10")
        priority = parsed_priority

    return IncludeEntry(
        path=entry_path,
        entry_type=entry_type,
        recursive=True if recursive is None else recursive,
        patterns=tuple(patterns) if patterns else DEFAULT_PATTERNS,
        exclude=tuple(_unique(_as_str_list(item.get("exclude"), f"{field_name}.exclude", path))),
        max_depth=max_depth,
        description=_as_str(item.get("description"), f"{field_name}.description", path),
        priority=priority,
        base_dir=base_dir,
        source=path,
        extra={str(key): _plain(value) for key, value in item.items() if key not in _ENTRY_KEYS},
    )


def _build_options(data: Mapping[str, Any], path: Optional[Path]) -> ContextOptions:
    max_tokens = None
    if data.get("max_tokens") is not None:
        max_tokens = _as_int(data.get("max_tokens"))
        if max_tokens is None or max_tokens <= 0:
            raise ConfigSchemaError(path, "context_options.max_tokens", "must be a positive integer")

    strategy = None
    if data.get("merge_strategy") is not None:
        try:
            strategy = MergeStrategy(str(data["merge_strategy"]).lower())
        except ValueError:
            choices = ", ".join(item.value for item in MergeStrategy)
            raise ConfigSchemaError(
                path, "context_options.merge_strategy", f"must be one of {choices}"
            ) from None

    output_format = None
    if data.get("output_format") is not None:
        try:
            output_format = OutputFormat(str(data["output_format"]).lower())
        except ValueError:
            choices = ", ".join(item.value for item in OutputFormat)
            raise ConfigSchemaError(
                path, "context_options.output_format", f"must be one of {choices}"
            ) from None

    return ContextOptions(max_tokens=max_tokens, merge_strategy=strategy, output_format=output_format)


def _entry_to_dict(entry: IncludeEntry) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "path": entry.path,
        "type": entry.entry_type.value,
        "recursive": entry.recursive,
        "patterns": list(entry.patterns),
    }
    if entry.exclude:
        data["exclude"] = list(entry.exclude)
    if entry.max_depth is not None:
        data["max_depth"] = entry.max_depth
    if entry.description is not None:
        data["description"] = entry.description
    data["priority"] = entry.priority
    data.update(entry.extra)
    return data


def _drop_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _drop_none(item) for key, item in value.items() if item is not None}
    if isinstance(value, list):
        return [_drop_none(item) for item in value if item is not None]
    return value


def _clean(text: str) -> Optional[str]:
    stripped = text.strip()
    return stripped or None


def _join_text(*parts: Optional[str]) -> Optional[str]:
    present = [part for part in parts if part]
    return "\n\n".join(present) if present else None


def _unique(values: Sequence[str]) -> List[str]:
    seen = set()
    result: List[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def _scalar_text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    if isinstance(value, (datetime.date, datetime.time)):
        # YAML and TOML decode bare dates natively; JSON only has strings.
        return value.isoformat()
    return None


def _as_str(value: Any, field_name: str, path: Optional[Path]) -> Optional[str]:
    if value is None:
        return None
    text = _scalar_text(value)
    if text is None:
        raise ConfigSchemaError(path, field_name, f"must be a string, got {type(value).__name__}")
    return text


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any, field_name: str, path: Optional[Path]) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        return [_as_str(value, field_name, path) or ""]
    result: List[str] = []
    for index, item in enumerate(value):
        text = _scalar_text(item)
        if text is None:
            raise ConfigSchemaError(
                path, f"{field_name}[{index}]", f"must be a string, got {type(item).__name__}"
            )
        result.append(text)
    return result


def _as_str_mapping(value: Any, field_name: str, path: Optional[Path]) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigSchemaError(path, field_name, "must be a mapping of strings")
    result: Dict[str, str] = {}
    for key, item in value.items():
        if item is None:
            continue
        name = str(key)
        if isinstance(item, list):
            result[name] = ", ".join(_as_str_list(item, f"{field_name}.{name}", path))
        else:
            result[name] = _as_str(item, f"{field_name}.{name}", path) or ""
    return result


def _plain(value: Any) -> Any:
    """Normalize an unknown field into data every serializer accepts."""
    if isinstance(value, dict):
        return {str(key): _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    return value


_DECODERS: Dict[str, Callable[[str], Any]] = {
    "json": json.loads,
    "yaml": yaml.safe_load,
    "toml": tomllib.loads,
}


__all__ = [
    "build_config",
    "config_to_dict",
    "decode_fragment",
    "dump_config",
    "load_document",
    "parse_document",
    "render_document",
    "validate_file",
    "validate_text",
]

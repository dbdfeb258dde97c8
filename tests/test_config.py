"""Tests for lmpgen.config."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from lmpgen.config import (
    config_to_dict,
    dump_config,
    load_document,
    parse_document,
    render_document,
    validate_file,
    validate_text,
)
from lmpgen.errors import ConfigParseError, ConfigSchemaError, FileAccessError
from lmpgen.models import EntryType, MergeStrategy, OutputFormat

SAMPLE = textwrap.dedent(
    """
    # Payments service

    Handles card payments.

    Example include block:

    ```json
    {"include": []}
    ```

    ```yaml
    name: payments
    description: Card payment processing
    version: "1.2"
    include:
      - path: ./src/
        type: dir
        patterns: ["*.py"]
        exclude: ["*_test.py"]
        max_depth: 2
        description: Service code
        priority: 8
      - path: README.md
        type: file
    exclude: ["*.log"]
    tech_stack:
      language: Python
      framework: FastAPI
    conventions:
      style: black
    ai_context:
      focus_areas: [reliability]
      avoid: [global state]
    ai_instructions: Prefer small functions.
    context_options:
      max_tokens: 4000
      merge_strategy: inherit
      output_format: markdown
    owner: platform-team
    released: 2024-01-01
    codes:
      1: one
    ```
    """
).lstrip("\n")


def test_parse_document_without_fence_is_all_documentation() -> None:
    document = parse_document("# Notes\n\nJust prose here.\n", Path("/repo/.lmp.md"))

    assert document.config is None
    assert document.documentation == "# Notes\n\nJust prose here."


def test_parse_document_reads_last_recognized_fence(tmp_path: Path) -> None:
    path = tmp_path / ".lmp.md"
    document = parse_document(SAMPLE, path)

    assert document.config_format == "yaml"
    assert document.documentation is not None
    assert "Handles card payments." in document.documentation
    assert '{"include": []}' in document.documentation
    assert "name: payments" not in document.documentation

    config = document.config
    assert config is not None
    assert config.name == "payments"
    assert config.version == "1.2"
    assert config.exclude == ("*.log",)
    assert config.tech_stack == {"language": "Python", "framework": "FastAPI"}
    assert config.conventions == {"style": "black"}
    assert config.ai_context is not None
    assert config.ai_context.focus_areas == ("reliability",)
    assert config.ai_context.avoid == ("global state",)
    assert config.ai_instructions == "Prefer small functions."
    assert config.context_options.max_tokens == 4000
    assert config.context_options.merge_strategy is MergeStrategy.INHERIT
    assert config.context_options.output_format is OutputFormat.MARKDOWN
    assert config.extra == {"owner": "platform-team", "released": "2024-01-01", "codes": {"1": "one"}}

    src, readme = config.include
    assert src.entry_type is EntryType.DIR
    assert src.patterns == ("*.py",)
    assert src.exclude == ("*_test.py",)
    assert src.max_depth == 2
    assert src.priority == 8
    assert src.base_dir == tmp_path
    assert readme.entry_type is EntryType.FILE
    assert readme.priority == 5
    assert readme.recursive is True
    assert readme.patterns == ("*",)


def test_parse_document_ignores_untagged_and_foreign_fences() -> None:
    text = "Intro\n\n```python\nprint('hi')\n```\n\n```\nplain\n```\n"
    document = parse_document(text, Path("/repo/.lmp.md"))

    assert document.config is None
    assert "print('hi')" in (document.documentation or "")


def test_parse_document_empty_fence_yields_no_config() -> None:
    document = parse_document("Docs\n\n```toml\n```\n", Path("/repo/.lmp.md"))

    assert document.config is None
    assert document.config_format == "toml"
    assert document.documentation == "Docs"


def test_parse_document_config_only_has_no_documentation() -> None:
    document = parse_document('```json\n{"name": "solo"}\n```\n', Path("/repo/.lmp.md"))

    assert document.documentation is None
    assert document.config is not None
    assert document.config.name == "solo"
    assert document.config.include == ()


def test_parse_document_keeps_text_after_config_block() -> None:
    text = "Before\n\n```yml\nname: x\n```\n\nAfter\n"
    document = parse_document(text, Path("/repo/.lmp.md"))

    assert document.documentation == "Before\n\nAfter"
    assert document.config_format == "yaml"


def test_parse_document_tilde_fence_and_unclosed_block() -> None:
    text = "Docs\n~~~toml\nname = \"tilde\"\n"
    document = parse_document(text, Path("/repo/.lmp.md"))

    assert document.config is not None
    assert document.config.name == "tilde"


def test_malformed_json_raises_parse_error_with_path() -> None:
    path = Path("/repo/.lmp.md")
    with pytest.raises(ConfigParseError) as excinfo:
        parse_document('```json\n{"name": \n```\n', path)

    assert excinfo.value.path == path
    assert excinfo.value.format == "json"
    assert str(path) in str(excinfo.value)


@pytest.mark.parametrize(
    "body, field_name",
    [
        ("include:\n  - path: src\n", "include[0].type"),
        ("include:\n  - type: dir\n", "include[0].path"),
        ("include:\n  - path: src\n    type: folder\n", "include[0].type"),
        ("include:\n  - path: a.py\n    type: file\n    priority: 11\n", "include[0].priority"),
        ("include:\n  - path: src\n    type: dir\n    max_depth: -1\n", "include[0].max_depth"),
        ("context_options:\n  max_tokens: 0\n", "context_options.max_tokens"),
        ("context_options:\n  merge_strategy: overwrite\n", "context_options.merge_strategy"),
        ("include: src\n", "include"),
        ("- just\n- a list\n", "<root>"),
        ("version: [1, 2]\n", "version"),
        ("include:\n  - path: {nested: x}\n    type: file\n", "include[0].path"),
        ("exclude: [{a: 1}]\n", "exclude[0]"),
        ("tech_stack:\n  language: {name: Python}\n", "tech_stack.language"),
    ],
)
def test_schema_violations_raise_schema_error(body: str, field_name: str) -> None:
    with pytest.raises(ConfigSchemaError) as excinfo:
        parse_document(f"```yaml\n{body}```\n", Path("/repo/.lmp.md"))

    assert excinfo.value.field == field_name


def test_file_entry_ignores_directory_only_fields() -> None:
    text = "```yaml\ninclude:\n  - path: main.py\n    type: file\n    recursive: false\n    patterns: ['*.md']\n    max_depth: 0\n```\n"
    document = parse_document(text, Path("/repo/.lmp.md"))

    entry = document.config.include[0]
    assert entry.entry_type is EntryType.FILE
    assert entry.max_depth == 0


def test_native_dates_read_as_iso_strings(tmp_path: Path) -> None:
    path = tmp_path / ".lmp.md"
    yaml_doc = "```yaml\nname: x\nversion: 2024-01-01\ndescription: 2024-01-02\n```\n"
    toml_doc = "```toml\nname = \"x\"\nversion = 2024-01-01\ndescription = 2024-01-02\n```\n"
    json_doc = '```json\n{"name": "x", "version": "2024-01-01", "description": "2024-01-02"}\n```\n'

    configs = [parse_document(text, path).config for text in (yaml_doc, toml_doc, json_doc)]

    assert configs[0].version == "2024-01-01"
    assert configs[0].description == "2024-01-02"
    assert configs[0] == configs[1] == configs[2]


def test_deeply_nested_fragment_is_a_parse_error() -> None:
    body = "[" * 100000 + "]" * 100000

    with pytest.raises(ConfigParseError) as excinfo:
        parse_document(f"```json\n{body}\n```\n", Path("/repo/.lmp.md"))

    assert excinfo.value.format == "json"


def test_same_config_in_three_formats_is_equal(tmp_path: Path) -> None:
    path = tmp_path / ".lmp.md"
    yaml_doc = "```yaml\nname: demo\ninclude:\n  - path: src\n    type: dir\n    priority: 7\ncontext_options:\n  max_tokens: 100\n```\n"
    json_doc = '```json\n{"name": "demo", "include": [{"path": "src", "type": "dir", "priority": 7}], "context_options": {"max_tokens": 100}}\n```\n'
    toml_doc = '```toml\nname = "demo"\n\n[[include]]\npath = "src"\ntype = "dir"\npriority = 7\n\n[context_options]\nmax_tokens = 100\n```\n'

    configs = [parse_document(text, path).config for text in (yaml_doc, json_doc, toml_doc)]

    assert configs[0] == configs[1] == configs[2]


@pytest.mark.parametrize("fmt", ["json", "yaml", "toml"])
def test_round_trip_through_each_format(tmp_path: Path, fmt: str) -> None:
    path = tmp_path / ".lmp.md"
    original = parse_document(SAMPLE, path)

    rendered = render_document(original.documentation, original.config, fmt)
    reparsed = parse_document(rendered, path)

    assert reparsed.config == original.config
    assert config_to_dict(reparsed.config) == config_to_dict(original.config)
    assert reparsed.documentation == original.documentation


def test_dump_config_rejects_unknown_format(tmp_path: Path) -> None:
    config = parse_document(SAMPLE, tmp_path / ".lmp.md").config

    with pytest.raises(ValueError):
        dump_config(config, "ini")


def test_load_document_wraps_os_errors(tmp_path: Path) -> None:
    with pytest.raises(FileAccessError) as excinfo:
        load_document(tmp_path / "missing.lmp.md")

    assert excinfo.value.path == tmp_path / "missing.lmp.md"


def test_validate_text_reports_issues() -> None:
    text = "```yaml\ninclude:\n  - path: /opt/shared\n    type: dir\n    color: blue\nstray: 1\n```\n"
    diagnostics = validate_text(text, Path("/repo/.lmp.md"))
    codes = [item.code for item in diagnostics]

    assert "no-documentation" in codes
    assert "non-portable-path" in codes
    assert codes.count("unknown-field") == 2


def test_validate_file_reports_parse_errors(tmp_path: Path) -> None:
    path = tmp_path / ".lmp.md"
    path.write_text("Docs\n\n```toml\nname = \n```\n", encoding="utf-8")

    diagnostics = validate_file(path)

    assert len(diagnostics) == 1
    assert diagnostics[0].level == "error"
    assert diagnostics[0].code == "parse-error"
    assert diagnostics[0].path == str(path)

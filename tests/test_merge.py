"""Tests for lmpgen.merge."""

from __future__ import annotations

from pathlib import Path

from lmpgen.config import parse_document
from lmpgen.merge import merge
from lmpgen.models import SourceDocument

ROOT = Path("/work/project")


def _doc(relative_dir: str, body: str, docs: str | None = None) -> SourceDocument:
    path = ROOT / relative_dir / ".lmp.md" if relative_dir else ROOT / ".lmp.md"
    text = f"{docs}\n\n" if docs else ""
    text += f"```yaml\n{body}```\n"
    return parse_document(text, path)


def test_child_inherits_unset_max_tokens() -> None:
    parent = _doc("", "context_options:\n  max_tokens: 1000\n")
    child = _doc("app", "name: app\n")

    effective = merge([parent, child])

    assert effective.context_options.max_tokens == 1000
    assert effective.name == "app"
    assert effective.provenance["context_options.max_tokens"] == (ROOT / ".lmp.md",)


def test_inherit_overrides_scalars_and_concatenates_collections() -> None:
    parent = _doc(
        "",
        "name: root\ndescription: Root\nexclude: ['*.log']\ntech_stack:\n  lang: Python\n  db: Postgres\n"
        "include:\n  - path: src\n    type: dir\nai_context:\n  avoid: [globals]\n",
    )
    child = _doc(
        "app",
        "description: App\nexclude: ['*.tmp', '*.log']\ntech_stack:\n  db: SQLite\n"
        "include:\n  - path: lib\n    type: dir\nai_context:\n  avoid: [singletons]\n",
    )

    effective = merge([parent, child])

    assert effective.name == "root"
    assert effective.description == "App"
    assert effective.exclude == ("*.log", "*.tmp")
    assert effective.tech_stack == {"lang": "Python", "db": "SQLite"}
    assert [entry.path for entry in effective.include] == ["src", "lib"]
    assert effective.ai_context.avoid == ("globals", "singletons")


def test_duplicate_include_targets_keep_first_position_with_later_values() -> None:
    parent = _doc(
        "",
        "include:\n  - path: app/src\n    type: dir\n    priority: 2\n  - path: docs\n    type: dir\n",
    )
    child = _doc("app", "include:\n  - path: ./src\n    type: dir\n    priority: 9\n")

    effective = merge([parent, child])

    assert [entry.priority for entry in effective.include] == [9, 5]
    assert effective.include[0].base_dir == ROOT / "app"


def test_replace_drops_parent_collections_it_sets() -> None:
    parent = _doc(
        "",
        "name: root\nexclude: ['*.log']\ninclude:\n  - path: .\n    type: dir\n    patterns: ['*.py']\n",
    )
    child = _doc(
        "docs",
        "context_options:\n  merge_strategy: replace\n"
        "include:\n  - path: .\n    type: dir\n    patterns: ['*.md']\n    priority: 8\n",
    )

    effective = merge([parent, child])

    assert len(effective.include) == 1
    assert effective.include[0].patterns == ("*.md",)
    assert effective.include[0].priority == 8
    # Unset fields still fall back to the parent.
    assert effective.name == "root"
    assert effective.exclude == ("*.log",)
    assert effective.provenance["include"] == (ROOT / "docs" / ".lmp.md",)


def test_replace_with_explicit_empty_list_clears() -> None:
    parent = _doc("", "exclude: ['*.log']\n")
    child = _doc("app", "exclude: []\ncontext_options:\n  merge_strategy: replace\n")

    assert merge([parent, child]).exclude == ()


def test_append_joins_narrative_fields_and_keeps_first_plain_scalars() -> None:
    parent = _doc("", "name: root\nversion: '1'\ndescription: Root service.\nai_instructions: Be brief.\n")
    child = _doc(
        "app",
        "name: app\nversion: '2'\ndescription: App module.\nai_instructions: Cite files.\n"
        "context_options:\n  merge_strategy: append\n  max_tokens: 50\n",
    )

    effective = merge([parent, child])

    assert effective.description == "Root service.\n\nApp module."
    assert effective.ai_instructions == "Be brief.\n\nCite files."
    assert effective.name == "root"
    assert effective.version == "1"
    assert effective.context_options.max_tokens == 50


def test_discovery_order_determines_precedence() -> None:
    first = _doc("", "name: first\ncontext_options:\n  max_tokens: 10\n")
    second = _doc("a", "name: second\ncontext_options:\n  max_tokens: 20\n")

    forward = merge([first, second])
    backward = merge([second, first])

    assert forward.name == "second"
    assert backward.name == "first"
    assert forward.context_options.max_tokens == 20
    assert backward.context_options.max_tokens == 10


def test_documentation_is_concatenated_regardless_of_strategy() -> None:
    parent = _doc("", "name: root\n", docs="Root docs.")
    child = _doc("app", "context_options:\n  merge_strategy: replace\n", docs="App docs.")
    prose_only = parse_document("Just prose.\n", ROOT / "app" / "x" / ".lmp.md")

    effective = merge([parent, child, prose_only])

    assert effective.documentation == "Root docs.\n\nApp docs.\n\nJust prose."
    assert len(effective.sources) == 3


def test_merge_of_nothing_is_empty() -> None:
    effective = merge([])

    assert effective.include == ()
    assert effective.documentation == ""
    assert effective.context_options.max_tokens is None

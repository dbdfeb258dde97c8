"""Tests for lmpgen.assembler."""

from __future__ import annotations

import json
from pathlib import Path

from lmpgen.assembler import OutputAssembler, fence_for
from lmpgen.languages import language_tag
from lmpgen.models import (
    AIContext,
    CandidateFile,
    EffectiveConfig,
    GenerationMetadata,
    GenerationResult,
    IncludedFile,
    OutputFormat,
)


def _result(**config_fields) -> GenerationResult:
    candidate = CandidateFile(
        absolute_path=Path("/p/src/app.py"),
        relative_path="src/app.py",
        size_bytes=12,
        priority=7,
        description="Entry point",
        estimated_tokens=3,
    )
    skipped = CandidateFile(
        absolute_path=Path("/p/big.bin"),
        relative_path="big.bin",
        size_bytes=4000,
        priority=1,
        description=None,
        estimated_tokens=1000,
    )
    config = EffectiveConfig(documentation="Project docs.", **config_fields)
    return GenerationResult(
        documentation="Project docs.",
        included_files=(IncludedFile(candidate=candidate, content="print('hi')\n", language="python"),),
        excluded_for_budget=(skipped,),
        metadata=GenerationMetadata(
            root="/p",
            files_processed_count=2,
            lmp_file_count=1,
            estimated_total_tokens=7,
            generated_at="2024-01-01T00:00:00Z",
            max_tokens=10,
        ),
        config=config,
    )


def test_markdown_sections_appear_in_fixed_order() -> None:
    result = _result(
        name="demo",
        tech_stack={"language": "Python"},
        conventions={"style": "black"},
        ai_context=AIContext(focus_areas=("latency",)),
    )

    artifact = OutputAssembler().assemble(result)

    assert artifact.startswith("# Project Context: demo\n")
    positions = [
        artifact.index("## Metadata"),
        artifact.index("## Documentation"),
        artifact.index("## Configuration"),
        artifact.index("### Tech Stack"),
        artifact.index("### Conventions"),
        artifact.index("### AI Context"),
        artifact.index("## Files"),
    ]
    assert positions == sorted(positions)
    assert "- Generated: 2024-01-01T00:00:00Z" in artifact
    assert "- Root: /p" in artifact
    assert "- Files skipped for budget: 1" in artifact
    assert "- **language**: Python" in artifact
    assert "#### Focus Areas" in artifact
    assert "### src/app.py\n\nEntry point\n\n```python\nprint('hi')\n```" in artifact


def test_empty_configuration_summary_is_omitted() -> None:
    artifact = OutputAssembler().assemble(_result(ai_context=AIContext()))

    assert "## Configuration" not in artifact
    assert "### AI Context" not in artifact


def test_json_output_carries_the_same_sections() -> None:
    artifact = OutputAssembler().assemble(_result(name="demo"), OutputFormat.JSON)
    payload = json.loads(artifact)

    assert payload["metadata"]["root"] == "/p"
    assert payload["documentation"] == "Project docs."
    assert payload["configuration"]["name"] == "demo"
    assert payload["files"][0]["path"] == "src/app.py"
    assert payload["files"][0]["language"] == "python"
    assert payload["excluded_for_budget"] == ["big.bin"]


def test_fence_grows_past_backticks_in_content() -> None:
    assert fence_for("plain") == "```"
    assert fence_for("has ``` inside") == "````"


def test_unknown_extensions_get_plain_tag() -> None:
    assert language_tag("notes.unknownext") == "text"
    assert language_tag("Dockerfile") == "dockerfile"
    assert language_tag("src/App.TSX") == "tsx"

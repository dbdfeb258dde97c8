"""Rendering of a generation result into the final context artifact."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from jinja2 import Environment, FileSystemLoader

from .models import GenerationResult, IncludedFile, OutputFormat

_AI_CONTEXT_TITLES: Dict[str, str] = {
    "focus_areas": "Focus Areas",
    "domain_knowledge": "Domain Knowledge",
    "avoid": "Avoid",
    "patterns_to_follow": "Patterns to Follow",
    "performance_considerations": "Performance Considerations",
    "security_notes": "Security Notes",
}

_BACKTICK_RUN = re.compile(r"`{3,}")


class OutputAssembler:
    """Turns a ``GenerationResult`` into markdown or JSON text.

    Rendering is pure: nothing is written anywhere, the caller decides where
    the artifact goes.
    """

    TEMPLATE_NAME = "context.md.j2"

    def __init__(self, templates_dir: Path | None = None) -> None:
        self.templates_dir = templates_dir or Path(__file__).with_name("templates")
        self._env = self._create_env(self.templates_dir)

    def assemble(self, result: GenerationResult, output_format: OutputFormat | str | None = None) -> str:
        """Render ``result`` in ``output_format`` (defaults to the result's own format)."""
        fmt = OutputFormat(output_format) if output_format is not None else result.metadata.output_format
        if fmt is OutputFormat.JSON:
            return self._render_json(result)
        return self._render_markdown(result)

    def _render_markdown(self, result: GenerationResult) -> str:
        config = result.config
        ai_context = _ai_context_sections(result)
        summary = bool(
            config.description
            or config.tech_stack
            or config.conventions
            or ai_context
            or config.ai_instructions
        )
        template = self._env.get_template(self.TEMPLATE_NAME)
        rendered = template.render(
            config=config,
            metadata=result.metadata,
            documentation=result.documentation.strip(),
            summary=summary,
            ai_context=ai_context,
            files=[_file_context(item) for item in result.included_files],
            skipped=[candidate.relative_path for candidate in result.excluded_for_budget],
        )
        return rendered.rstrip() + "\n"

    def _render_json(self, result: GenerationResult) -> str:
        config = result.config
        metadata = result.metadata
        payload: Dict[str, Any] = {
            "metadata": {
                "generated_at": metadata.generated_at,
                "root": metadata.root,
                "lmp_file_count": metadata.lmp_file_count,
                "files_processed_count": metadata.files_processed_count,
                "files_included_count": len(result.included_files),
                "estimated_total_tokens": metadata.estimated_total_tokens,
                "max_tokens": metadata.max_tokens,
            },
            "documentation": result.documentation,
            "configuration": {
                "name": config.name,
                "description": config.description,
                "version": config.version,
                "tech_stack": dict(config.tech_stack),
                "conventions": dict(config.conventions),
                "ai_context": {name: list(values) for name, values in config.ai_context.items()}
                if config.ai_context is not None and not config.ai_context.is_empty()
                else {},
                "ai_instructions": config.ai_instructions,
            },
            "files": [
                {
                    "path": item.candidate.relative_path,
                    "description": item.candidate.description,
                    "language": item.language,
                    "priority": item.candidate.priority,
                    "estimated_tokens": item.candidate.estimated_tokens,
                    "content": item.content,
                }
                for item in result.included_files
            ],
            "excluded_for_budget": [candidate.relative_path for candidate in result.excluded_for_budget],
            "diagnostics": [
                {"level": item.level, "code": item.code, "message": item.message, "path": item.path}
                for item in result.diagnostics
            ],
        }
        return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"

    @staticmethod
    def _create_env(templates_dir: Path) -> Environment:
        directories = [str(templates_dir)]
        default_dir = Path(__file__).with_name("templates")
        if default_dir != templates_dir:
            directories.append(str(default_dir))
        loader = FileSystemLoader(directories)
        return Environment(loader=loader, autoescape=False, trim_blocks=True, lstrip_blocks=True)


def fence_for(content: str) -> str:
    """Return a backtick fence longer than any backtick run inside ``content``."""
    longest = max((len(match.group(0)) for match in _BACKTICK_RUN.finditer(content)), default=0)
    return "`" * max(3, longest + 1)


def _file_context(item: IncludedFile) -> Dict[str, Optional[str]]:
    content = item.content.rstrip("\n")
    return {
        "path": item.candidate.relative_path,
        "description": item.candidate.description,
        "language": item.language,
        "content": content,
        "fence": fence_for(content),
    }


def _ai_context_sections(result: GenerationResult) -> List[Tuple[str, Tuple[str, ...]]]:
    ai_context = result.config.ai_context
    if ai_context is None:
        return []
    return [(_AI_CONTEXT_TITLES[name], values) for name, values in ai_context.items() if values]


__all__ = ["OutputAssembler", "fence_for"]

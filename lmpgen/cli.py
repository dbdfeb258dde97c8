"""CLI entrypoints for lmpgen commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from .engine import ContextEngine
from .errors import ConfigError, LMPError
from .logging import configure_logging
from .models import Diagnostic, OutputFormat

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_CONFIG = 3


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from None
    if parsed <= 0:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return parsed


def _add_common_options(parser: argparse.ArgumentParser, *, suppress_default: bool = False) -> None:
    default: object = argparse.SUPPRESS if suppress_default else False
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=default,
        help="Increase log verbosity for troubleshooting.",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=default,
        help="Only log warnings and errors.",
    )


def _add_path_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Directory to generate context for (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lmpgen",
        description="Assemble token-budgeted project context from LMP files.",
    )
    _add_common_options(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate_parser = subparsers.add_parser(
        "generate",
        help="Generate the context artifact for a directory.",
    )
    _add_common_options(generate_parser, suppress_default=True)
    _add_path_argument(generate_parser)
    generate_parser.add_argument(
        "--max-tokens",
        type=_positive_int,
        default=None,
        help="Override the token budget from the LMP files.",
    )
    generate_parser.add_argument(
        "--format",
        dest="output_format",
        choices=[item.value for item in OutputFormat],
        default=None,
        help="Override the output format from the LMP files.",
    )
    generate_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Write the artifact to this file instead of stdout.",
    )

    preview_parser = subparsers.add_parser(
        "preview",
        help="List the files that would be included without reading them.",
    )
    _add_common_options(preview_parser, suppress_default=True)
    _add_path_argument(preview_parser)
    preview_parser.add_argument(
        "--max-tokens",
        type=_positive_int,
        default=None,
        help="Override the token budget from the LMP files.",
    )

    validate_parser = subparsers.add_parser(
        "validate",
        help="Check LMP files for parse and schema errors.",
    )
    _add_common_options(validate_parser, suppress_default=True)
    _add_path_argument(validate_parser)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP service (requires the service extra).",
    )
    _add_common_options(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint for lmpgen commands; returns the process exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), quiet=bool(args.quiet))
    engine = ContextEngine()

    try:
        if args.command == "generate":
            return _run_generate(engine, args)
        if args.command == "preview":
            return _run_preview(engine, args)
        if args.command == "validate":
            return _run_validate(engine, args)
        if args.command == "serve":
            return _run_serve(args)
    except (FileNotFoundError, NotADirectoryError) as exc:
        print(f"lmpgen: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    except ConfigError as exc:
        print(f"lmpgen: configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    except LMPError as exc:
        print(f"lmpgen {args.command} failed: {exc}\nRun with --verbose for more details.", file=sys.stderr)
        return EXIT_FAILURE
    parser.error("Unknown command")  # pragma: no cover - argparse enforces choices
    return EXIT_USAGE  # pragma: no cover


def _run_generate(engine: ContextEngine, args: argparse.Namespace) -> int:
    result, artifact = engine.render(
        args.path,
        max_tokens=args.max_tokens,
        output_format=args.output_format,
    )
    if args.output is not None:
        args.output.write_text(artifact, encoding="utf-8")
        print(f"Context written to {_relativize(args.output)}", file=sys.stderr)
    else:
        sys.stdout.write(artifact)
    for diagnostic in result.diagnostics:
        if diagnostic.level in {"warning", "error"}:
            print(_format_diagnostic(diagnostic), file=sys.stderr)
    return _exit_code_for(result.errors)


def _run_preview(engine: ContextEngine, args: argparse.Namespace) -> int:
    preview = engine.preview(args.path, max_tokens=args.max_tokens)
    budget = preview.max_tokens if preview.max_tokens is not None else "unbounded"
    print(f"Root: {preview.project_root}")
    print(f"Budget: {budget}")
    for candidate in preview.packed.included:
        print(f"  + {candidate.relative_path} (p{candidate.priority}, ~{candidate.estimated_tokens} tokens)")
    for candidate in preview.packed.excluded:
        print(f"  - {candidate.relative_path} (p{candidate.priority}, ~{candidate.estimated_tokens} tokens)")
    print(f"Included {len(preview.packed.included)} files, ~{preview.packed.included_tokens} tokens")
    for diagnostic in preview.diagnostics:
        if diagnostic.level in {"warning", "error"}:
            print(_format_diagnostic(diagnostic), file=sys.stderr)
    return _exit_code_for(preview.errors)


def _run_validate(engine: ContextEngine, args: argparse.Namespace) -> int:
    diagnostics = engine.validate(args.path)
    for diagnostic in diagnostics:
        print(_format_diagnostic(diagnostic))
    if any(item.level == "error" for item in diagnostics):
        return EXIT_CONFIG
    print("All LMP files are valid")
    return EXIT_OK


def _run_serve(args: argparse.Namespace) -> int:  # pragma: no cover - blocks until interrupted
    from .service import run_service

    run_service(host=args.host, port=args.port)
    return EXIT_OK


def _exit_code_for(errors: Sequence[Exception]) -> int:
    if any(isinstance(error, ConfigError) for error in errors):
        return EXIT_CONFIG
    if errors:
        return EXIT_FAILURE
    return EXIT_OK


def _format_diagnostic(diagnostic: Diagnostic) -> str:
    location = f"{diagnostic.path}: " if diagnostic.path else ""
    return f"{diagnostic.level}: {location}{diagnostic.message} [{diagnostic.code}]"


def _relativize(path: Path) -> str:
    try:
        return str(path.resolve().relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))

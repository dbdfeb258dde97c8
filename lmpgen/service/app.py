"""FastAPI application entrypoint for lmpgen service mode."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, List, Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..engine import ContextEngine
from ..errors import ConfigError, IncludeResolutionError, LMPError
from ..models import Diagnostic, OutputFormat


class GenerateRequest(BaseModel):
    path: str
    max_tokens: Optional[int] = Field(default=None, gt=0)
    output_format: Optional[OutputFormat] = None


class DiagnosticModel(BaseModel):
    level: str
    code: str
    message: str
    path: Optional[str] = None


class GenerateResponse(BaseModel):
    artifact: str
    root: str
    files_included: List[str]
    excluded_for_budget: List[str]
    estimated_total_tokens: int
    diagnostics: List[DiagnosticModel]
    has_errors: bool


class ValidateRequest(BaseModel):
    path: str


class ValidateResponse(BaseModel):
    valid: bool
    diagnostics: List[DiagnosticModel]


class HealthResponse(BaseModel):
    status: str


def _default_engine() -> ContextEngine:
    return ContextEngine()


def _diagnostic_model(item: Diagnostic) -> DiagnosticModel:
    return DiagnosticModel(level=item.level, code=item.code, message=item.message, path=item.path)


async def _run_blocking(func: Callable[[], Any]) -> Any:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func)


def create_app(engine_factory: Callable[[], ContextEngine] = _default_engine) -> FastAPI:
    """Create the FastAPI application exposing context generation."""

    app = FastAPI(title="lmpgen Service", version="1.0.0")

    async def get_engine() -> ContextEngine:
        # A fresh engine per request keeps invocations isolated.
        return engine_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/generate", response_model=GenerateResponse)
    async def generate(
        payload: GenerateRequest,
        engine: ContextEngine = Depends(get_engine),
    ) -> GenerateResponse:
        result, artifact = await _run_blocking(
            lambda: engine.render(
                payload.path,
                max_tokens=payload.max_tokens,
                output_format=payload.output_format,
            )
        )
        return GenerateResponse(
            artifact=artifact,
            root=result.metadata.root,
            files_included=[item.candidate.relative_path for item in result.included_files],
            excluded_for_budget=[candidate.relative_path for candidate in result.excluded_for_budget],
            estimated_total_tokens=result.metadata.estimated_total_tokens,
            diagnostics=[_diagnostic_model(item) for item in result.diagnostics],
            has_errors=result.has_errors,
        )

    @app.post("/validate", response_model=ValidateResponse)
    async def validate(
        payload: ValidateRequest,
        engine: ContextEngine = Depends(get_engine),
    ) -> ValidateResponse:
        diagnostics = await _run_blocking(lambda: engine.validate(payload.path))
        return ValidateResponse(
            valid=not any(item.level == "error" for item in diagnostics),
            diagnostics=[_diagnostic_model(item) for item in diagnostics],
        )

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(_: Any, exc: FileNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(NotADirectoryError)
    async def not_a_directory_handler(_: Any, exc: NotADirectoryError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(IncludeResolutionError)
    async def include_error_handler(_: Any, exc: IncludeResolutionError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(LMPError)
    async def engine_error_handler(_: Any, exc: LMPError) -> JSONResponse:
        status = 422 if isinstance(exc, ConfigError) else 400
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    return app


def run_service(host: str = "127.0.0.1", port: int = 8000) -> None:  # pragma: no cover - integration path
    import uvicorn

    uvicorn.run(create_app(), host=host, port=port)


__all__ = ["create_app", "run_service"]

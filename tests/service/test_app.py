"""Tests for the FastAPI service mode."""

from __future__ import annotations

import pytest

try:
    from fastapi.testclient import TestClient
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    pytest.skip("fastapi not installed", allow_module_level=True)

from lmpgen.engine import ContextEngine
from lmpgen.service import create_app
from tests._fixtures.tree_builder import TreeBuilder


def _client() -> TestClient:
    return TestClient(create_app(lambda: ContextEngine(clock=lambda: "2024-01-01T00:00:00Z")))


def test_health_endpoint() -> None:
    response = _client().get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_generate_endpoint_returns_artifact(tree: TreeBuilder) -> None:
    tree.write(
        {
            ".lmp.md": "Docs\n\n```yaml\ninclude:\n  - path: src\n    type: dir\n```\n",
            "src/a.py": "a = 1\n",
            "src/b.py": "b = 2\n",
        }
    )

    response = _client().post("/generate", json={"path": str(tree.path()), "max_tokens": 100})

    assert response.status_code == 200
    body = response.json()
    assert body["files_included"] == ["src/a.py", "src/b.py"]
    assert body["excluded_for_budget"] == []
    assert body["has_errors"] is False
    assert "### src/a.py" in body["artifact"]


def test_generate_endpoint_honours_output_format(tree: TreeBuilder) -> None:
    tree.write({".lmp.md": "Docs\n"})

    response = _client().post("/generate", json={"path": str(tree.path()), "output_format": "json"})

    assert response.status_code == 200
    assert response.json()["artifact"].lstrip().startswith("{")


def test_generate_endpoint_missing_path_returns_404(tree: TreeBuilder) -> None:
    response = _client().post("/generate", json={"path": str(tree.path("missing"))})
    assert response.status_code == 404


def test_generate_endpoint_missing_include_returns_422(tree: TreeBuilder) -> None:
    tree.write({".lmp.md": "```yaml\ninclude:\n  - path: gone.py\n    type: file\n```\n"})

    response = _client().post("/generate", json={"path": str(tree.path())})

    assert response.status_code == 422
    assert "gone.py" in response.json()["detail"]


def test_generate_endpoint_rejects_non_positive_budget(tree: TreeBuilder) -> None:
    response = _client().post("/generate", json={"path": str(tree.path()), "max_tokens": 0})
    assert response.status_code == 422


def test_validate_endpoint_reports_errors(tree: TreeBuilder) -> None:
    tree.write({".lmp.md": "Docs\n\n```yaml\ninclude: [\n```\n"})

    response = _client().post("/validate", json={"path": str(tree.path())})

    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is False
    assert body["diagnostics"][0]["code"] == "parse-error"

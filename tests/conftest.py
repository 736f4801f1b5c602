"""Shared pytest fixtures for the context server test suite."""

import json
import os
from datetime import datetime, timedelta, UTC
from pathlib import Path

import pytest

from context_server.analyzer import ProjectAnalyzer
from context_server.config import AnalyzerFeatures, ServerConfig, set_config
from context_server.core.models import CodePattern, PatternFile
from context_server.core.server import ContextServer
from context_server.store import PatternStore


# ============================================================================
# Global state isolation
# ============================================================================

@pytest.fixture(autouse=True)
def reset_global_config(monkeypatch):
    """Keep the process-wide config and MCP_CONTEXT_ variables out of tests."""
    for name in list(os.environ):
        if name.upper().startswith("MCP_CONTEXT_"):
            monkeypatch.delenv(name, raising=False)
    set_config(None)
    yield
    set_config(None)


# ============================================================================
# Patterns
# ============================================================================

@pytest.fixture
def make_pattern():
    """Factory building a valid CodePattern with overridable fields."""

    def _make(**overrides) -> CodePattern:
        fields = {
            "id": "blazor-lifecycle-001",
            "category": "lifecycle",
            "framework": "blazor-server",
            "title": "OnInitializedAsync Lifecycle",
            "description": "Load data asynchronously during initialization",
            "code": "protected override async Task OnInitializedAsync() { }",
            "tags": ["lifecycle", "async"],
            "usage_count": 0,
            "relevance_score": 0.8,
        }
        fields.update(overrides)
        return CodePattern(**fields)

    return _make


@pytest.fixture
def write_pattern_file():
    """Write ``{"patterns": [...]}`` to ``<dir>/<name>``."""

    def _write(directory: Path, name: str, patterns) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_text(PatternFile(patterns=list(patterns)).model_dump_json(indent=2), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def days_ago():
    """Timestamp helper: ``days_ago(10)`` is ten days before now (UTC)."""

    def _days_ago(days: float) -> datetime:
        return datetime.now(UTC) - timedelta(days=days)

    return _days_ago


# ============================================================================
# Store, config and server
# ============================================================================

@pytest.fixture
def patterns_dir(tmp_path) -> Path:
    return tmp_path / "patterns"


@pytest.fixture
def store(patterns_dir) -> PatternStore:
    """Empty store over a temporary directory."""
    return PatternStore(patterns_dir)


@pytest.fixture
def config(patterns_dir) -> ServerConfig:
    """Config pointing at the temporary pattern directory; no symbol parsing."""
    return ServerConfig(
        patterns_path=str(patterns_dir),
        analyzer=AnalyzerFeatures(parse_symbols=False),
    )


@pytest.fixture
def server(config, store) -> ContextServer:
    return ContextServer(config=config, store=store, analyzer=ProjectAnalyzer(config.analyzer))


# ============================================================================
# Sample projects
# ============================================================================

@pytest.fixture
def blazor_project(tmp_path) -> Path:
    """Minimal Blazor Server project with one component."""
    root = tmp_path / "BlazorApp"
    (root / "Pages").mkdir(parents=True)
    (root / "BlazorApp.csproj").write_text(
        """<Project Sdk="Microsoft.NET.Sdk.Web">
  <PropertyGroup>
    <TargetFramework>net8.0</TargetFramework>
    <Version>1.2.0</Version>
  </PropertyGroup>
  <ItemGroup>
    <PackageReference Include="Microsoft.AspNetCore.Components.Web" Version="8.0.0" />
    <PackageReference Include="Serilog" Version="3.1.1" />
  </ItemGroup>
</Project>
""",
        encoding="utf-8",
    )
    (root / "Program.cs").write_text("var builder = WebApplication.CreateBuilder(args);\n", encoding="utf-8")
    (root / "Pages" / "Counter.razor").write_text(
        """@page "/counter"

<h1>Counter</h1>

@code {
    private int count;

    protected override void OnInitialized()
    {
        count = 1;
    }

    private async void Increment()
    {
        count++;
    }
}
""",
        encoding="utf-8",
    )
    return root


@pytest.fixture
def fastapi_project(tmp_path) -> Path:
    root = tmp_path / "api"
    root.mkdir()
    (root / "requirements.txt").write_text(
        "# web\nFastAPI==0.110.0\nuvicorn>=0.29\npydantic\n",
        encoding="utf-8",
    )
    (root / "main.py").write_text(
        "from fastapi import FastAPI\n\napp = FastAPI()\n",
        encoding="utf-8",
    )
    return root


def frame(payload) -> bytes:
    """Content-Length framed message for a dict payload or raw bytes."""
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    return f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body


@pytest.fixture
def framed():
    return frame

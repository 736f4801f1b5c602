"""Core data models for the MCP context server."""

from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from datetime import datetime, UTC
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple


class ProjectType(str, Enum):
    """Detected project ecosystem."""

    DOTNET = "dotnet"  # .csproj, .fsproj, .sln
    RUST = "rust"  # Cargo.toml
    NODE = "node"  # package.json
    PYTHON = "python"  # pyproject.toml, setup.py, requirements.txt
    GO = "go"  # go.mod
    JAVA = "java"  # pom.xml, build.gradle
    PHP = "php"  # composer.json
    UNKNOWN = "unknown"


class SymbolKind(str, Enum):
    """Kinds of declarations extracted from source files."""

    CLASS = "class"
    INTERFACE = "interface"
    FUNCTION = "function"
    METHOD = "method"
    PROPERTY = "property"
    FIELD = "field"
    ENUM = "enum"
    STRUCT = "struct"
    MODULE = "module"
    TRAIT = "trait"
    IMPL = "impl"
    COMPONENT = "component"
    OTHER = "other"


# Kinds that own member declarations
TYPE_KINDS = {
    SymbolKind.CLASS,
    SymbolKind.STRUCT,
    SymbolKind.INTERFACE,
    SymbolKind.TRAIT,
    SymbolKind.IMPL,
    SymbolKind.ENUM,
    SymbolKind.COMPONENT,
}


class SeverityLevel(str, Enum):
    """Suggestion severity."""

    INFO = "info"  # low
    WARNING = "warning"  # medium
    ERROR = "error"  # high


def _normalize_tags(tags: List[str]) -> List[str]:
    """Strip, lowercase and de-duplicate tags, keeping first-seen order."""
    seen = []
    for tag in tags:
        tag = tag.strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CodePattern(BaseModel):
    """A curated, scorable best-practice snippet."""

    id: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    framework: str = Field(..., min_length=1)
    version: str = "latest"
    title: str = Field(..., min_length=1)
    description: str = ""
    code: str
    tags: List[str] = Field(default_factory=list)
    usage_count: int = Field(default=0, ge=0)
    relevance_score: float = Field(default=0.8, ge=0.0, le=1.0)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: List[str]) -> List[str]:
        """Validate and normalize tags."""
        return _normalize_tags(v)

    @field_validator("created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @model_validator(mode="after")
    def validate_timestamps(self) -> "CodePattern":
        """updated_at can never precede created_at."""
        if self.updated_at < self.created_at:
            raise ValueError(
                f"updated_at ({self.updated_at.isoformat()}) is earlier than "
                f"created_at ({self.created_at.isoformat()})"
            )
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "blazor-lifecycle-001",
                "category": "lifecycle",
                "framework": "blazor-server",
                "title": "OnInitializedAsync Lifecycle",
                "code": "protected override async Task OnInitializedAsync() { ... }",
                "tags": ["lifecycle", "blazor"],
            }
        },
    )


class PatternFile(BaseModel):
    """On-disk layout of one framework's pattern file."""

    patterns: List[CodePattern] = Field(default_factory=list)


class SearchCriteria(BaseModel):
    """Query value object for pattern search."""

    query: Optional[str] = None
    framework: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    min_score: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: List[str]) -> List[str]:
        """Normalize requested tags the same way pattern tags are."""
        return _normalize_tags(v)

    @field_validator("query", "framework", "category")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Empty strings mean 'no filter'."""
        if v is not None and not v.strip():
            return None
        return v


class ScoredPattern(BaseModel):
    """A pattern paired with its query-time score."""

    pattern: CodePattern
    score: float


# ============================================================================
# Project facts (produced by the analyzer)
# ============================================================================


class Dependency(BaseModel):
    """A declared package dependency."""

    name: str
    version: str = "*"
    dev_only: bool = False


class Symbol(BaseModel):
    """A declaration extracted from a source file."""

    name: str
    kind: SymbolKind
    modifiers: List[str] = Field(default_factory=list)
    base_types: List[str] = Field(default_factory=list)
    return_type: Optional[str] = None
    is_async: bool = False
    line: Optional[int] = None
    children: List["Symbol"] = Field(default_factory=list)

    def walk(self) -> Iterator["Symbol"]:
        """Yield this symbol and all nested symbols depth-first."""
        yield self
        for child in self.children:
            yield from child.walk()


class SourceFile(BaseModel):
    """A parsed source file."""

    path: str
    language: str
    size_bytes: int = 0
    symbols: List[Symbol] = Field(default_factory=list)

    def walk_symbols(self) -> Iterator[Symbol]:
        for symbol in self.symbols:
            yield from symbol.walk()

    def walk_members(self) -> Iterator[Tuple[Optional[Symbol], Symbol]]:
        """Yield ``(enclosing type or None, symbol)`` for every symbol depth-first."""
        stack = [(None, symbol) for symbol in reversed(self.symbols)]
        while stack:
            owner, symbol = stack.pop()
            yield owner, symbol
            child_owner = symbol if symbol.kind in TYPE_KINDS else owner
            stack.extend((child_owner, child) for child in reversed(symbol.children))


class ProjectMetadata(BaseModel):
    """Ecosystem-specific metadata."""

    target_framework: Optional[str] = None
    language_version: Optional[str] = None
    entry_point: Optional[str] = None
    build_command: Optional[str] = None
    extra: Dict[str, str] = Field(default_factory=dict)


_CLASS_KINDS = {SymbolKind.CLASS, SymbolKind.STRUCT, SymbolKind.COMPONENT}
_METHOD_KINDS = {SymbolKind.METHOD, SymbolKind.FUNCTION}


class Project(BaseModel):
    """Flat project fact structure consumed by the context builder."""

    path: str
    name: str
    project_type: ProjectType = ProjectType.UNKNOWN
    version: Optional[str] = None
    dependencies: List[Dependency] = Field(default_factory=list)
    files: List[SourceFile] = Field(default_factory=list)
    metadata: ProjectMetadata = Field(default_factory=ProjectMetadata)

    def walk_symbols(self) -> Iterator[Symbol]:
        for source_file in self.files:
            yield from source_file.walk_symbols()

    @property
    def total_files(self) -> int:
        return len(self.files)

    @property
    def total_classes(self) -> int:
        return sum(1 for s in self.walk_symbols() if s.kind in _CLASS_KINDS)

    @property
    def total_methods(self) -> int:
        return sum(1 for s in self.walk_symbols() if s.kind in _METHOD_KINDS)


class Suggestion(BaseModel):
    """A rule-based recommendation about the analyzed project."""

    severity: SeverityLevel
    category: str
    message: str
    file: Optional[str] = None
    line: Optional[int] = None


class ProjectStatistics(BaseModel):
    """Aggregate counts for an analyzed project."""

    total_files: int = 0
    total_classes: int = 0
    total_methods: int = 0
    package_count: int = 0
    framework: str = "unknown"
    framework_version: Optional[str] = None


class AnalysisResult(BaseModel):
    """Output of the context builder for one analysis request."""

    project: Project
    framework: str
    patterns: List[ScoredPattern] = Field(default_factory=list)
    suggestions: List[Suggestion] = Field(default_factory=list)
    statistics: ProjectStatistics = Field(default_factory=ProjectStatistics)
    context: str = ""

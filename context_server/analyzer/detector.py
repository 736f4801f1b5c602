"""Ecosystem detection from marker files."""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from context_server.core.models import ProjectType

logger = logging.getLogger(__name__)

# Source file extensions analyzed for each ecosystem
SOURCE_EXTENSIONS: Dict[ProjectType, List[str]] = {
    ProjectType.DOTNET: ["cs", "fs", "vb", "razor"],
    ProjectType.RUST: ["rs"],
    ProjectType.NODE: ["js", "ts", "jsx", "tsx", "mjs", "cjs", "vue", "svelte"],
    ProjectType.PYTHON: ["py", "pyi"],
    ProjectType.GO: ["go"],
    ProjectType.JAVA: ["java", "kt", "kts", "scala"],
    ProjectType.PHP: ["php", "blade.php", "twig", "js", "ts", "vue"],
    ProjectType.UNKNOWN: [],
}

# Primary manifest per ecosystem (.NET project files are named after the project)
CONFIG_FILES: Dict[ProjectType, Optional[str]] = {
    ProjectType.DOTNET: None,
    ProjectType.RUST: "Cargo.toml",
    ProjectType.NODE: "package.json",
    ProjectType.PYTHON: "pyproject.toml",
    ProjectType.GO: "go.mod",
    ProjectType.JAVA: "pom.xml",
    ProjectType.PHP: "composer.json",
    ProjectType.UNKNOWN: None,
}

# Extension -> language name used by the symbol extractor. Compound
# extensions are listed first so "view.blade.php" is not taken for PHP.
LANGUAGE_BY_EXTENSION: List[Tuple[str, str]] = [
    ("blade.php", "blade"),
    ("cs", "csharp"),
    ("razor", "razor"),
    ("fs", "fsharp"),
    ("vb", "vb"),
    ("rs", "rust"),
    ("js", "javascript"),
    ("jsx", "javascript"),
    ("mjs", "javascript"),
    ("cjs", "javascript"),
    ("ts", "typescript"),
    ("tsx", "tsx"),
    ("vue", "vue"),
    ("svelte", "svelte"),
    ("py", "python"),
    ("pyi", "python"),
    ("go", "go"),
    ("java", "java"),
    ("kt", "kotlin"),
    ("kts", "kotlin"),
    ("scala", "scala"),
    ("php", "php"),
    ("twig", "twig"),
]


class ProjectDetector:
    """Detects the ecosystem of a project directory."""

    @classmethod
    def detect(cls, path: Path) -> ProjectType:
        """
        Detect the project type from marker files in ``path``.

        Markers are checked in priority order; PHP comes before Node because
        PHP applications often ship a package.json for their front end.
        """
        path = Path(path)

        if cls._has_extension(path, ("csproj", "fsproj", "sln")):
            return ProjectType.DOTNET
        if (path / "Cargo.toml").exists():
            return ProjectType.RUST
        if (path / "composer.json").exists():
            return ProjectType.PHP
        if (path / "package.json").exists():
            return ProjectType.NODE
        if any((path / marker).exists() for marker in ("pyproject.toml", "setup.py", "requirements.txt")):
            return ProjectType.PYTHON
        if (path / "go.mod").exists():
            return ProjectType.GO
        if any((path / marker).exists() for marker in ("pom.xml", "build.gradle", "build.gradle.kts")):
            return ProjectType.JAVA

        logger.debug(f"No ecosystem markers found in {path}")
        return ProjectType.UNKNOWN

    @staticmethod
    def _has_extension(path: Path, extensions: Tuple[str, ...]) -> bool:
        try:
            return any(
                entry.is_file() and entry.suffix.lstrip(".") in extensions
                for entry in path.iterdir()
            )
        except OSError as e:
            logger.warning(f"Cannot list {path}: {e}")
            return False

    @staticmethod
    def source_extensions(project_type: ProjectType) -> List[str]:
        return list(SOURCE_EXTENSIONS.get(project_type, []))

    @staticmethod
    def config_file(project_type: ProjectType) -> Optional[str]:
        return CONFIG_FILES.get(project_type)


def matching_extension(file_name: str, extensions: List[str]) -> Optional[str]:
    """Return the extension from ``extensions`` that ``file_name`` ends with, if any."""
    lowered = file_name.lower()
    # Longest first so "blade.php" wins over "php"
    for extension in sorted(extensions, key=len, reverse=True):
        if lowered.endswith("." + extension):
            return extension
    return None


def language_for_file(file_name: str) -> str:
    """Language name for a source file, or its bare extension when unmapped."""
    lowered = file_name.lower()
    for extension, language in LANGUAGE_BY_EXTENSION:
        if lowered.endswith("." + extension):
            return language
    return Path(lowered).suffix.lstrip(".")

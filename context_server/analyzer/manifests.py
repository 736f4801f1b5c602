"""Manifest readers: project name, version, dependencies and metadata per ecosystem.

A malformed or unreadable manifest never aborts an analysis; the reader logs
a warning and returns whatever it could gather (at least the directory name).
"""

import json
import logging
import re
import tomllib
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from context_server.core.models import Dependency, ProjectMetadata, ProjectType

logger = logging.getLogger(__name__)

# Directories never searched for nested .NET project files
_DOTNET_SKIP_DIRS = {"bin", "obj", "node_modules", ".git"}

# PEP 508 requirement: name, optional extras, then a version specifier
_REQUIREMENT_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)\s*(\[[^\]]*\])?\s*(.*)$")

# implementation 'group:artifact:version' / testImplementation("group:artifact:version")
_GRADLE_DEP_RE = re.compile(
    r"""^\s*(\w+)\s*\(?\s*['"]([^'":\s]+):([^'":\s]+)(?::([^'"\s]+))?['"]""",
    re.MULTILINE,
)
_GRADLE_TEST_CONFIGURATIONS = {"testImplementation", "testCompileOnly", "testRuntimeOnly", "androidTestImplementation"}


@dataclass
class ManifestInfo:
    """What a manifest reader learned about a project."""

    name: str
    version: Optional[str] = None
    dependencies: List[Dependency] = field(default_factory=list)
    metadata: ProjectMetadata = field(default_factory=ProjectMetadata)


def _read_text(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.warning(f"Failed to read manifest {path}: {e}")
        return None


def _read_json(path: Path) -> Optional[Dict[str, Any]]:
    content = _read_text(path)
    if content is None:
        return None
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        logger.warning(f"Malformed JSON manifest {path}: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"Unexpected manifest structure in {path}")
        return None
    return data


def _read_toml(path: Path) -> Optional[Dict[str, Any]]:
    content = _read_text(path)
    if content is None:
        return None
    try:
        return tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        logger.warning(f"Malformed TOML manifest {path}: {e}")
        return None


def _read_xml(path: Path) -> Optional[ET.Element]:
    try:
        return ET.parse(path).getroot()
    except (OSError, ET.ParseError) as e:
        logger.warning(f"Malformed XML manifest {path}: {e}")
        return None


def _local_name(tag: str) -> str:
    """Strip an XML namespace: '{ns}PackageReference' -> 'PackageReference'."""
    return tag.rsplit("}", 1)[-1]


def _child_text(element: ET.Element, name: str) -> Optional[str]:
    for child in element:
        if _local_name(child.tag) == name and child.text and child.text.strip():
            return child.text.strip()
    return None


def _mapping_dependencies(mapping: Any, dev_only: bool, skip: Iterable[str] = ()) -> List[Dependency]:
    """Dependencies from a {name: version} mapping (package.json, composer.json)."""
    if not isinstance(mapping, dict):
        return []
    skipped = set(skip)
    return [
        Dependency(
            name=name,
            version=version if isinstance(version, str) else "*",
            dev_only=dev_only,
        )
        for name, version in mapping.items()
        if name not in skipped
    ]


# ============================================================================
# .NET
# ============================================================================


def _find_dotnet_projects(path: Path) -> List[Path]:
    top_level = sorted(p for p in path.iterdir() if p.suffix in (".csproj", ".fsproj"))
    if top_level:
        return top_level
    # Solution at the root with projects in subdirectories
    return sorted(
        p for p in path.rglob("*.*proj")
        if p.suffix in (".csproj", ".fsproj")
        and not _DOTNET_SKIP_DIRS.intersection(p.relative_to(path).parts)
    )


def read_dotnet(path: Path) -> ManifestInfo:
    """Read .csproj/.fsproj files: PackageReference items and TargetFramework."""
    projects = _find_dotnet_projects(path)
    solutions = sorted(path.glob("*.sln"))

    if projects:
        name = projects[0].stem
    elif solutions:
        name = solutions[0].stem
    else:
        name = path.name

    info = ManifestInfo(name=name)
    seen = set()

    for project_file in projects:
        root = _read_xml(project_file)
        if root is None:
            continue

        for element in root.iter():
            tag = _local_name(element.tag)
            if tag == "PackageReference":
                package = element.get("Include") or element.get("Update")
                if not package or package in seen:
                    continue
                seen.add(package)
                version = element.get("Version") or _child_text(element, "Version") or "*"
                info.dependencies.append(Dependency(name=package, version=version))
            elif tag in ("TargetFramework", "TargetFrameworks") and element.text:
                if info.metadata.target_framework is None:
                    info.metadata.target_framework = element.text.strip()
            elif tag == "LangVersion" and element.text:
                info.metadata.language_version = element.text.strip()
            elif tag == "PropertyGroup" and info.version is None:
                info.version = _child_text(element, "Version")

    if (path / "Program.cs").exists():
        info.metadata.entry_point = "Program.cs"
    info.metadata.build_command = "dotnet build"
    return info


# ============================================================================
# Rust
# ============================================================================


def _cargo_dependencies(table: Any, dev_only: bool) -> List[Dependency]:
    if not isinstance(table, dict):
        return []
    dependencies = []
    for name, spec in table.items():
        if isinstance(spec, str):
            version = spec
        elif isinstance(spec, dict):
            # path / git dependencies carry no version
            version = spec.get("version")
            if not isinstance(version, str):
                version = "*"
        else:
            version = "*"
        dependencies.append(Dependency(name=name, version=version, dev_only=dev_only))
    return dependencies


def read_cargo(path: Path) -> ManifestInfo:
    """Read Cargo.toml [package], [dependencies] and [dev-dependencies]."""
    info = ManifestInfo(name=path.name)
    data = _read_toml(path / "Cargo.toml")
    if data is None:
        return info

    package = data.get("package", {})
    if isinstance(package, dict):
        info.name = package.get("name", info.name)
        version = package.get("version")
        info.version = version if isinstance(version, str) else None
        edition = package.get("edition")
        if isinstance(edition, str):
            info.metadata.language_version = edition
            info.metadata.extra["rust_edition"] = edition

    info.dependencies.extend(_cargo_dependencies(data.get("dependencies"), dev_only=False))
    info.dependencies.extend(_cargo_dependencies(data.get("dev-dependencies"), dev_only=True))

    workspace = data.get("workspace", {})
    if not info.dependencies and isinstance(workspace, dict):
        info.dependencies.extend(_cargo_dependencies(workspace.get("dependencies"), dev_only=False))

    if (path / "src" / "main.rs").exists():
        info.metadata.entry_point = "src/main.rs"
    elif (path / "src" / "lib.rs").exists():
        info.metadata.entry_point = "src/lib.rs"
    info.metadata.build_command = "cargo build"
    return info


# ============================================================================
# Node
# ============================================================================


def read_package_json(path: Path) -> ManifestInfo:
    """Read package.json dependencies and devDependencies."""
    info = ManifestInfo(name=path.name)
    data = _read_json(path / "package.json")
    if data is None:
        return info

    if isinstance(data.get("name"), str):
        info.name = data["name"]
    if isinstance(data.get("version"), str):
        info.version = data["version"]

    info.dependencies.extend(_mapping_dependencies(data.get("dependencies"), dev_only=False))
    info.dependencies.extend(_mapping_dependencies(data.get("devDependencies"), dev_only=True))

    if isinstance(data.get("main"), str):
        info.metadata.entry_point = data["main"]

    engines = data.get("engines")
    if isinstance(engines, dict) and isinstance(engines.get("node"), str):
        info.metadata.language_version = engines["node"]

    scripts = data.get("scripts")
    if isinstance(scripts, dict) and "build" in scripts:
        info.metadata.build_command = "npm run build"

    return info


# ============================================================================
# Python
# ============================================================================


def parse_requirement(line: str, dev_only: bool = False) -> Optional[Dependency]:
    """
    Parse one requirement line ("fastapi==0.110", "Django>=4.2", "rich").

    ``==`` and ``>=`` pins contribute the bare version; other specifiers
    are kept verbatim. Names are lowercased since package indexes treat
    them case-insensitively.
    """
    line = line.split("#", 1)[0].split(";", 1)[0].strip()
    if not line or line.startswith("-"):
        return None

    match = _REQUIREMENT_RE.match(line)
    if not match:
        return None

    name, _extras, specifier = match.groups()
    specifier = specifier.strip()
    if specifier.startswith("==") or specifier.startswith(">="):
        version = specifier[2:].split(",", 1)[0].strip() or "*"
    else:
        version = specifier or "*"

    return Dependency(name=name.lower(), version=version, dev_only=dev_only)


def read_python(path: Path) -> ManifestInfo:
    """Read pyproject.toml (PEP 621 or Poetry) and requirements.txt."""
    info = ManifestInfo(name=path.name)
    seen = set()

    def add(dependency: Optional[Dependency]) -> None:
        if dependency is not None and dependency.name not in seen:
            seen.add(dependency.name)
            info.dependencies.append(dependency)

    pyproject = path / "pyproject.toml"
    if pyproject.exists():
        data = _read_toml(pyproject) or {}

        project = data.get("project", {})
        if isinstance(project, dict):
            info.name = project.get("name", info.name)
            if isinstance(project.get("version"), str):
                info.version = project["version"]
            if isinstance(project.get("requires-python"), str):
                info.metadata.language_version = project["requires-python"]
            for requirement in project.get("dependencies", []) or []:
                if isinstance(requirement, str):
                    add(parse_requirement(requirement))
            optional = project.get("optional-dependencies", {})
            if isinstance(optional, dict):
                for requirements in optional.values():
                    for requirement in requirements or []:
                        if isinstance(requirement, str):
                            add(parse_requirement(requirement, dev_only=True))

        poetry = data.get("tool", {}).get("poetry", {}) if isinstance(data.get("tool"), dict) else {}
        if isinstance(poetry, dict) and poetry:
            info.name = poetry.get("name", info.name)
            if info.version is None and isinstance(poetry.get("version"), str):
                info.version = poetry["version"]
            for dependency in _mapping_dependencies(poetry.get("dependencies"), False, skip=("python",)):
                add(Dependency(name=dependency.name.lower(), version=dependency.version))
            groups = poetry.get("group", {})
            if isinstance(groups, dict):
                for group in groups.values():
                    if isinstance(group, dict):
                        for dependency in _mapping_dependencies(group.get("dependencies"), True):
                            add(Dependency(name=dependency.name.lower(), version=dependency.version, dev_only=True))

        info.metadata.build_command = "python -m build"

    requirements = path / "requirements.txt"
    if requirements.exists():
        content = _read_text(requirements)
        for line in (content or "").splitlines():
            add(parse_requirement(line))

    for entry_point in ("main.py", "manage.py", "app.py"):
        if (path / entry_point).exists():
            info.metadata.entry_point = entry_point
            break

    return info


# ============================================================================
# Go
# ============================================================================


def read_go_mod(path: Path) -> ManifestInfo:
    """Read go.mod: module path, go directive and require entries."""
    info = ManifestInfo(name=path.name)
    content = _read_text(path / "go.mod")
    if content is None:
        return info

    in_require = False
    for raw_line in content.splitlines():
        line = raw_line.split("//", 1)[0].strip()
        if not line:
            continue

        if line.startswith("module "):
            info.name = line[len("module "):].strip()
        elif line.startswith("go "):
            go_version = line[len("go "):].strip()
            info.metadata.language_version = go_version
            info.metadata.extra["go_version"] = go_version
        elif line == "require (":
            in_require = True
        elif line == ")":
            in_require = False
        elif in_require or line.startswith("require "):
            parts = line[len("require "):].split() if line.startswith("require ") else line.split()
            if len(parts) >= 2:
                info.dependencies.append(Dependency(name=parts[0], version=parts[1]))

    if (path / "main.go").exists():
        info.metadata.entry_point = "main.go"
    info.metadata.build_command = "go build"
    return info


# ============================================================================
# Java
# ============================================================================


def read_java(path: Path) -> ManifestInfo:
    """Read pom.xml (Maven) or build.gradle(.kts) (Gradle)."""
    info = ManifestInfo(name=path.name)

    pom = path / "pom.xml"
    if pom.exists():
        root = _read_xml(pom)
        if root is not None:
            info.name = _child_text(root, "artifactId") or info.name
            info.version = _child_text(root, "version")

            for element in root.iter():
                if _local_name(element.tag) != "dependency":
                    continue
                group = _child_text(element, "groupId")
                artifact = _child_text(element, "artifactId")
                if not artifact:
                    continue
                info.dependencies.append(
                    Dependency(
                        name=f"{group}:{artifact}" if group else artifact,
                        version=_child_text(element, "version") or "*",
                        dev_only=_child_text(element, "scope") == "test",
                    )
                )
        info.metadata.build_command = "mvn package"

    for gradle_name in ("build.gradle", "build.gradle.kts"):
        gradle = path / gradle_name
        if not gradle.exists():
            continue
        content = _read_text(gradle) or ""
        for configuration, group, artifact, version in _GRADLE_DEP_RE.findall(content):
            info.dependencies.append(
                Dependency(
                    name=f"{group}:{artifact}",
                    version=version or "*",
                    dev_only=configuration in _GRADLE_TEST_CONFIGURATIONS,
                )
            )
        info.metadata.build_command = "gradle build"
        break

    return info


# ============================================================================
# PHP
# ============================================================================


def detect_php_framework(dependencies: List[Dependency], path: Path) -> Optional[str]:
    """Detect the PHP framework from composer packages and directory layout."""
    names = {dependency.name for dependency in dependencies}

    if "laravel/framework" in names or (path / "artisan").exists():
        return "laravel"
    if "symfony/framework-bundle" in names:
        return "symfony"
    if (path / "wp-config.php").exists() or (path / "wp-content").exists():
        return "wordpress"
    if "codeigniter4/framework" in names:
        return "codeigniter"
    if any(name.startswith("yiisoft/") for name in names):
        return "yii"
    if "cakephp/cakephp" in names:
        return "cakephp"
    if "slim/slim" in names:
        return "slim"
    if "drupal/core" in names:
        return "drupal"
    return None


def _detect_php_frontend(path: Path, metadata: ProjectMetadata) -> None:
    package_json = path / "package.json"
    if not package_json.exists():
        return
    data = _read_json(package_json)
    if data is None:
        return

    dependencies = data.get("dependencies") if isinstance(data.get("dependencies"), dict) else {}
    dev_dependencies = data.get("devDependencies") if isinstance(data.get("devDependencies"), dict) else {}

    for frontend in ("vue", "react"):
        if frontend in dependencies or frontend in dev_dependencies:
            metadata.extra["frontend"] = frontend
    if "vite" in dev_dependencies:
        metadata.extra["bundler"] = "vite"
    if "laravel-mix" in dev_dependencies:
        metadata.extra["bundler"] = "laravel-mix"


def read_composer(path: Path) -> ManifestInfo:
    """Read composer.json require/require-dev and detect the PHP framework."""
    info = ManifestInfo(name=path.name)
    data = _read_json(path / "composer.json")

    if data is not None:
        if isinstance(data.get("name"), str):
            info.name = data["name"]
        if isinstance(data.get("version"), str):
            info.version = data["version"]

        require = data.get("require") if isinstance(data.get("require"), dict) else {}
        platform = [name for name in require if name == "php" or name.startswith("ext-")]
        info.dependencies.extend(_mapping_dependencies(require, dev_only=False, skip=platform))
        info.dependencies.extend(_mapping_dependencies(data.get("require-dev"), dev_only=True))

        if isinstance(require.get("php"), str):
            info.metadata.language_version = require["php"]
            info.metadata.extra["php_version"] = require["php"]

    framework = detect_php_framework(info.dependencies, path)
    if framework:
        info.metadata.extra["framework"] = framework

    _detect_php_frontend(path, info.metadata)

    if framework == "laravel":
        info.metadata.entry_point = "public/index.php"
        info.metadata.build_command = "php artisan serve"
    elif framework == "symfony":
        info.metadata.entry_point = "public/index.php"
        info.metadata.build_command = "symfony server:start"
    else:
        info.metadata.entry_point = "index.php"
        info.metadata.build_command = "php -S localhost:8000"

    return info


def read_unknown(path: Path) -> ManifestInfo:
    return ManifestInfo(name=path.name)


MANIFEST_READERS: Dict[ProjectType, Callable[[Path], ManifestInfo]] = {
    ProjectType.DOTNET: read_dotnet,
    ProjectType.RUST: read_cargo,
    ProjectType.NODE: read_package_json,
    ProjectType.PYTHON: read_python,
    ProjectType.GO: read_go_mod,
    ProjectType.JAVA: read_java,
    ProjectType.PHP: read_composer,
    ProjectType.UNKNOWN: read_unknown,
}


def read_manifest(path: Path, project_type: ProjectType) -> ManifestInfo:
    """Dispatch to the reader for ``project_type``."""
    return MANIFEST_READERS[project_type](Path(path))

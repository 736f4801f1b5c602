"""Tests for ecosystem detection, manifest readers and the project walk."""

import json

import pytest

from context_server.analyzer import ProjectAnalyzer, ProjectDetector
from context_server.analyzer.detector import language_for_file, matching_extension
from context_server.analyzer.manifests import (
    detect_php_framework,
    parse_requirement,
    read_cargo,
    read_composer,
    read_dotnet,
    read_go_mod,
    read_java,
    read_manifest,
    read_package_json,
    read_python,
)
from context_server.config import AnalyzerFeatures
from context_server.core.exceptions import AnalysisError
from context_server.core.models import Dependency, ProjectType


def write(root, relative, content=""):
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


class TestProjectDetector:

    @pytest.mark.parametrize(
        "markers, expected",
        [
            (["App.csproj"], ProjectType.DOTNET),
            (["App.sln"], ProjectType.DOTNET),
            (["Cargo.toml"], ProjectType.RUST),
            (["package.json"], ProjectType.NODE),
            (["pyproject.toml"], ProjectType.PYTHON),
            (["requirements.txt"], ProjectType.PYTHON),
            (["go.mod"], ProjectType.GO),
            (["pom.xml"], ProjectType.JAVA),
            (["build.gradle.kts"], ProjectType.JAVA),
            (["composer.json"], ProjectType.PHP),
            ([], ProjectType.UNKNOWN),
        ],
    )
    def test_markers(self, tmp_path, markers, expected):
        for marker in markers:
            write(tmp_path, marker)

        assert ProjectDetector.detect(tmp_path) == expected

    def test_dotnet_beats_node(self, tmp_path):
        write(tmp_path, "App.csproj")
        write(tmp_path, "package.json", "{}")

        assert ProjectDetector.detect(tmp_path) == ProjectType.DOTNET

    def test_php_beats_node(self, tmp_path):
        write(tmp_path, "composer.json", "{}")
        write(tmp_path, "package.json", "{}")

        assert ProjectDetector.detect(tmp_path) == ProjectType.PHP

    def test_config_file(self):
        assert ProjectDetector.config_file(ProjectType.RUST) == "Cargo.toml"
        assert ProjectDetector.config_file(ProjectType.DOTNET) is None

    def test_source_extensions(self):
        assert "razor" in ProjectDetector.source_extensions(ProjectType.DOTNET)
        assert ProjectDetector.source_extensions(ProjectType.UNKNOWN) == []


class TestFileLanguages:

    def test_compound_extension_wins(self):
        assert matching_extension("welcome.blade.php", ["php", "blade.php"]) == "blade.php"
        assert language_for_file("welcome.blade.php") == "blade"
        assert language_for_file("index.php") == "php"

    def test_no_match(self):
        assert matching_extension("README.md", ["py"]) is None

    @pytest.mark.parametrize(
        "name, language",
        [("Counter.razor", "razor"), ("Program.CS", "csharp"), ("app.tsx", "tsx"), ("lib.rs", "rust"), ("notes.xyz", "xyz")],
    )
    def test_language_for_file(self, name, language):
        assert language_for_file(name) == language


class TestDotnetManifest:

    def test_package_references(self, tmp_path):
        write(tmp_path, "Shop.csproj", """<Project Sdk="Microsoft.NET.Sdk.Web">
  <PropertyGroup>
    <TargetFramework>net8.0</TargetFramework>
    <LangVersion>12</LangVersion>
  </PropertyGroup>
  <ItemGroup>
    <PackageReference Include="Microsoft.EntityFrameworkCore" Version="8.0.1" />
    <PackageReference Include="Serilog">
      <Version>3.1.1</Version>
    </PackageReference>
  </ItemGroup>
</Project>""")
        write(tmp_path, "Program.cs")

        info = read_dotnet(tmp_path)

        assert info.name == "Shop"
        assert info.version is None
        assert [(d.name, d.version) for d in info.dependencies] == [
            ("Microsoft.EntityFrameworkCore", "8.0.1"),
            ("Serilog", "3.1.1"),
        ]
        assert info.metadata.target_framework == "net8.0"
        assert info.metadata.language_version == "12"
        assert info.metadata.entry_point == "Program.cs"
        assert info.metadata.build_command == "dotnet build"

    def test_solution_with_nested_projects(self, tmp_path):
        write(tmp_path, "Shop.sln")
        write(tmp_path, "src/Shop.Web/Shop.Web.csproj", """<Project>
  <ItemGroup><PackageReference Include="Microsoft.AspNetCore.Components.Web" Version="8.0.0" /></ItemGroup>
</Project>""")
        write(tmp_path, "src/Shop.Web/obj/Generated.csproj", "<Project />")

        info = read_dotnet(tmp_path)

        assert info.name == "Shop.Web"
        assert [d.name for d in info.dependencies] == ["Microsoft.AspNetCore.Components.Web"]

    def test_malformed_project_file(self, tmp_path):
        write(tmp_path, "Broken.csproj", "<Project><ItemGroup>")

        info = read_dotnet(tmp_path)

        assert info.name == "Broken"
        assert info.dependencies == []


class TestCargoManifest:

    def test_dependencies(self, tmp_path):
        write(tmp_path, "Cargo.toml", """
[package]
name = "web"
version = "0.3.0"
edition = "2021"

[dependencies]
axum = "0.7"
tokio = { version = "1", features = ["full"] }
shared = { path = "../shared" }

[dev-dependencies]
insta = "1.34"
""")
        write(tmp_path, "src/main.rs")

        info = read_cargo(tmp_path)

        assert info.name == "web"
        assert info.version == "0.3.0"
        assert [(d.name, d.version, d.dev_only) for d in info.dependencies] == [
            ("axum", "0.7", False),
            ("tokio", "1", False),
            ("shared", "*", False),
            ("insta", "1.34", True),
        ]
        assert info.metadata.language_version == "2021"
        assert info.metadata.entry_point == "src/main.rs"

    def test_workspace_dependencies(self, tmp_path):
        write(tmp_path, "Cargo.toml", '[workspace]\nmembers = ["a"]\n\n[workspace.dependencies]\nserde = "1"\n')

        info = read_cargo(tmp_path)

        assert info.name == tmp_path.name
        assert [d.name for d in info.dependencies] == ["serde"]

    def test_malformed_toml(self, tmp_path):
        write(tmp_path, "Cargo.toml", "[package\nname=")

        info = read_cargo(tmp_path)

        assert info.name == tmp_path.name
        assert info.dependencies == []


class TestPackageJson:

    def test_dependencies_and_metadata(self, tmp_path):
        write(tmp_path, "package.json", json.dumps({
            "name": "storefront",
            "version": "2.0.0",
            "main": "server.js",
            "engines": {"node": ">=20"},
            "scripts": {"build": "next build"},
            "dependencies": {"next": "14.1.0", "react": "^18.2.0"},
            "devDependencies": {"typescript": "^5.3.0"},
        }))

        info = read_package_json(tmp_path)

        assert info.name == "storefront"
        assert info.version == "2.0.0"
        assert [(d.name, d.dev_only) for d in info.dependencies] == [
            ("next", False), ("react", False), ("typescript", True),
        ]
        assert info.metadata.entry_point == "server.js"
        assert info.metadata.language_version == ">=20"
        assert info.metadata.build_command == "npm run build"

    def test_malformed_json(self, tmp_path):
        write(tmp_path, "package.json", "{ nope")

        info = read_package_json(tmp_path)

        assert info.name == tmp_path.name
        assert info.dependencies == []


class TestPythonManifest:

    @pytest.mark.parametrize(
        "line, expected",
        [
            ("fastapi==0.110.0", ("fastapi", "0.110.0")),
            ("Django>=4.2,<5", ("django", "4.2")),
            ("uvicorn[standard]>=0.29", ("uvicorn", "0.29")),
            ("requests~=2.31", ("requests", "~=2.31")),
            ("rich", ("rich", "*")),
            ("pytest ; python_version >= '3.8'", ("pytest", "*")),
        ],
    )
    def test_parse_requirement(self, line, expected):
        dependency = parse_requirement(line)

        assert (dependency.name, dependency.version) == expected

    @pytest.mark.parametrize("line", ["", "# comment", "-r base.txt", "--index-url https://x"])
    def test_parse_requirement_skips(self, line):
        assert parse_requirement(line) is None

    def test_pep621(self, tmp_path):
        write(tmp_path, "pyproject.toml", """
[project]
name = "inventory"
version = "1.4.0"
requires-python = ">=3.11"
dependencies = ["fastapi>=0.110", "SQLAlchemy==2.0.25"]

[project.optional-dependencies]
test = ["pytest>=7.0"]
""")
        write(tmp_path, "main.py")

        info = read_python(tmp_path)

        assert info.name == "inventory"
        assert info.version == "1.4.0"
        assert [(d.name, d.version, d.dev_only) for d in info.dependencies] == [
            ("fastapi", "0.110", False),
            ("sqlalchemy", "2.0.25", False),
            ("pytest", "7.0", True),
        ]
        assert info.metadata.language_version == ">=3.11"
        assert info.metadata.entry_point == "main.py"

    def test_poetry(self, tmp_path):
        write(tmp_path, "pyproject.toml", """
[tool.poetry]
name = "blog"
version = "0.1.0"

[tool.poetry.dependencies]
python = "^3.11"
Django = "^5.0"

[tool.poetry.group.dev.dependencies]
pytest = "^8.0"
""")

        info = read_python(tmp_path)

        assert info.name == "blog"
        assert [(d.name, d.dev_only) for d in info.dependencies] == [("django", False), ("pytest", True)]

    def test_requirements_merged_without_duplicates(self, tmp_path):
        write(tmp_path, "pyproject.toml", '[project]\nname = "svc"\ndependencies = ["flask"]\n')
        write(tmp_path, "requirements.txt", "flask==3.0.0\ngunicorn\n")

        info = read_python(tmp_path)

        assert [d.name for d in info.dependencies] == ["flask", "gunicorn"]


class TestGoManifest:

    def test_require_block(self, tmp_path):
        write(tmp_path, "go.mod", """module github.com/acme/api

go 1.22

require (
    github.com/gin-gonic/gin v1.9.1
    golang.org/x/sync v0.6.0 // indirect
)

require github.com/google/uuid v1.6.0
""")
        write(tmp_path, "main.go")

        info = read_go_mod(tmp_path)

        assert info.name == "github.com/acme/api"
        assert info.metadata.language_version == "1.22"
        assert [(d.name, d.version) for d in info.dependencies] == [
            ("github.com/gin-gonic/gin", "v1.9.1"),
            ("golang.org/x/sync", "v0.6.0"),
            ("github.com/google/uuid", "v1.6.0"),
        ]
        assert info.metadata.entry_point == "main.go"


class TestJavaManifest:

    def test_pom(self, tmp_path):
        write(tmp_path, "pom.xml", """<?xml version="1.0"?>
<project xmlns="http://maven.apache.org/POM/4.0.0">
  <artifactId>orders</artifactId>
  <version>3.1.0</version>
  <dependencies>
    <dependency>
      <groupId>org.springframework.boot</groupId>
      <artifactId>spring-boot-starter-web</artifactId>
    </dependency>
    <dependency>
      <groupId>org.junit.jupiter</groupId>
      <artifactId>junit-jupiter</artifactId>
      <version>5.10.0</version>
      <scope>test</scope>
    </dependency>
  </dependencies>
</project>""")

        info = read_java(tmp_path)

        assert info.name == "orders"
        assert info.version == "3.1.0"
        assert [(d.name, d.version, d.dev_only) for d in info.dependencies] == [
            ("org.springframework.boot:spring-boot-starter-web", "*", False),
            ("org.junit.jupiter:junit-jupiter", "5.10.0", True),
        ]
        assert info.metadata.build_command == "mvn package"

    def test_gradle(self, tmp_path):
        write(tmp_path, "build.gradle.kts", """
dependencies {
    implementation("org.springframework.boot:spring-boot-starter-web:3.2.0")
    testImplementation("org.junit.jupiter:junit-jupiter:5.10.0")
}
""")

        info = read_java(tmp_path)

        assert [(d.name, d.version, d.dev_only) for d in info.dependencies] == [
            ("org.springframework.boot:spring-boot-starter-web", "3.2.0", False),
            ("org.junit.jupiter:junit-jupiter", "5.10.0", True),
        ]
        assert info.metadata.build_command == "gradle build"


class TestComposerManifest:

    def test_laravel(self, tmp_path):
        write(tmp_path, "composer.json", json.dumps({
            "name": "acme/shop",
            "require": {"php": "^8.2", "ext-json": "*", "laravel/framework": "^11.0"},
            "require-dev": {"phpunit/phpunit": "^11.0"},
        }))
        write(tmp_path, "package.json", json.dumps({"devDependencies": {"vite": "^5.0", "vue": "^3.4"}}))

        info = read_composer(tmp_path)

        assert info.name == "acme/shop"
        assert [(d.name, d.dev_only) for d in info.dependencies] == [
            ("laravel/framework", False),
            ("phpunit/phpunit", True),
        ]
        assert info.metadata.language_version == "^8.2"
        assert info.metadata.extra["framework"] == "laravel"
        assert info.metadata.extra["frontend"] == "vue"
        assert info.metadata.extra["bundler"] == "vite"
        assert info.metadata.build_command == "php artisan serve"

    def test_wordpress_from_layout(self, tmp_path):
        write(tmp_path, "composer.json", "{}")
        (tmp_path / "wp-content").mkdir()

        info = read_composer(tmp_path)

        assert info.metadata.extra["framework"] == "wordpress"
        assert info.metadata.entry_point == "index.php"

    @pytest.mark.parametrize(
        "package, framework",
        [("symfony/framework-bundle", "symfony"), ("yiisoft/yii2", "yii"), ("slim/slim", "slim"), ("acme/other", None)],
    )
    def test_detect_php_framework(self, tmp_path, package, framework):
        assert detect_php_framework([Dependency(name=package)], tmp_path) == framework


class TestProjectAnalyzer:

    @pytest.fixture
    def analyzer(self):
        return ProjectAnalyzer(AnalyzerFeatures(parse_symbols=False))

    def test_missing_path(self, analyzer, tmp_path):
        with pytest.raises(AnalysisError):
            analyzer.analyze(tmp_path / "missing")

    def test_file_path(self, analyzer, tmp_path):
        with pytest.raises(AnalysisError):
            analyzer.analyze(write(tmp_path, "file.txt"))

    def test_unknown_project(self, analyzer, tmp_path):
        write(tmp_path, "README.md", "hello")

        project = analyzer.analyze(tmp_path)

        assert project.project_type == ProjectType.UNKNOWN
        assert project.name == tmp_path.name
        assert project.files == []

    def test_walk_skips_ignored_and_hidden_dirs(self, analyzer, tmp_path):
        write(tmp_path, "package.json", json.dumps({"name": "web", "dependencies": {"express": "^4.18.0"}}))
        write(tmp_path, "src/index.js")
        write(tmp_path, "src/routes/users.ts")
        write(tmp_path, "node_modules/express/index.js")
        write(tmp_path, ".cache/bundle.js")
        write(tmp_path, "README.md")

        project = analyzer.analyze(tmp_path)

        assert project.project_type == ProjectType.NODE
        assert project.name == "web"
        assert [f.path for f in project.files] == ["src/index.js", "src/routes/users.ts"]
        assert [f.language for f in project.files] == ["javascript", "typescript"]
        assert project.path == str(tmp_path.resolve())

    def test_max_source_files(self, tmp_path):
        write(tmp_path, "go.mod", "module example.com/m\n")
        for i in range(5):
            write(tmp_path, f"f{i}.go", "package main\n")

        analyzer = ProjectAnalyzer(AnalyzerFeatures(parse_symbols=False, max_source_files=3))

        assert len(analyzer.analyze(tmp_path).files) == 3

    def test_oversized_files_skipped(self, tmp_path):
        write(tmp_path, "requirements.txt", "flask\n")
        write(tmp_path, "small.py", "x = 1\n")
        (tmp_path / "huge.py").write_bytes(b"#" * (1024 * 1024 + 1))

        analyzer = ProjectAnalyzer(AnalyzerFeatures(parse_symbols=False, max_file_size_mb=1))

        assert [f.path for f in analyzer.analyze(tmp_path).files] == ["small.py"]

    def test_read_manifest_dispatch(self, tmp_path):
        write(tmp_path, "go.mod", "module example.com/tool\n")

        assert read_manifest(tmp_path, ProjectType.GO).name == "example.com/tool"
        assert read_manifest(tmp_path, ProjectType.UNKNOWN).name == tmp_path.name

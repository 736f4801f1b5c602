"""Project analyzer: turns a directory into a ``Project`` fact structure."""

import os
from pathlib import Path
from typing import List, Optional

from context_server.analyzer.detector import ProjectDetector, language_for_file, matching_extension
from context_server.analyzer.manifests import read_manifest
from context_server.analyzer.source_parser import SourceParser, get_parser
from context_server.config import AnalyzerFeatures
from context_server.core.exceptions import AnalysisError
from context_server.core.models import Project, ProjectType, SourceFile
from context_server.core.tracing import get_logger

logger = get_logger(__name__)


class ProjectAnalyzer:
    """
    Analyzes a project directory.

    Detects the ecosystem, reads its manifest for name, version, dependencies
    and metadata, then walks the source tree extracting symbols. This is a
    blocking call; async callers run it in a worker thread.
    """

    def __init__(
        self,
        features: Optional[AnalyzerFeatures] = None,
        parser: Optional[SourceParser] = None,
    ):
        """
        Initialize the analyzer.

        Args:
            features: Analyzer limits and ignore list (defaults if None)
            parser: Symbol extractor; the shared instance is created lazily
        """
        self.features = features or AnalyzerFeatures()
        self._parser = parser

    @property
    def parser(self) -> SourceParser:
        if self._parser is None:
            self._parser = get_parser()
        return self._parser

    def analyze(self, path) -> Project:
        """
        Analyze the project rooted at ``path``.

        Raises:
            AnalysisError: If the path does not exist or is not a directory
        """
        root = Path(path).expanduser()
        if not root.exists():
            raise AnalysisError(
                f"Project path does not exist: {root}",
                "Pass the absolute path of the project's root directory",
            )
        if not root.is_dir():
            raise AnalysisError(f"Project path is not a directory: {root}")

        root = root.resolve()
        project_type = ProjectDetector.detect(root)
        logger.info(f"Detected project type {project_type.value} for {root}")

        manifest = read_manifest(root, project_type)
        files = self.find_source_files(root, project_type)

        return Project(
            path=str(root),
            name=manifest.name,
            project_type=project_type,
            version=manifest.version,
            dependencies=manifest.dependencies,
            files=files,
            metadata=manifest.metadata,
        )

    def find_source_files(self, root: Path, project_type: ProjectType) -> List[SourceFile]:
        """Walk the tree, skipping ignored and hidden directories, and parse each source file."""
        extensions = ProjectDetector.source_extensions(project_type)
        if not extensions:
            return []

        ignored = set(self.features.ignore_dirs)
        max_bytes = self.features.max_file_size_mb * 1024 * 1024
        files: List[SourceFile] = []

        for dir_path, dir_names, file_names in os.walk(root):
            # Prune in place so os.walk never enters ignored directories
            dir_names[:] = sorted(
                name for name in dir_names
                if name not in ignored and not name.startswith(".")
            )

            for file_name in sorted(file_names):
                if matching_extension(file_name, extensions) is None:
                    continue

                file_path = Path(dir_path) / file_name
                try:
                    size = file_path.stat().st_size
                except OSError as e:
                    logger.warning(f"Cannot stat {file_path}: {e}")
                    continue

                if size > max_bytes:
                    logger.debug(f"Skipping {file_path}: {size} bytes exceeds limit")
                    continue

                if len(files) >= self.features.max_source_files:
                    logger.warning(
                        f"Source file limit ({self.features.max_source_files}) reached in {root}; "
                        f"remaining files are not analyzed"
                    )
                    return files

                language = language_for_file(file_name)
                symbols = self.parser.parse_file(file_path, language) if self.features.parse_symbols else []
                files.append(
                    SourceFile(
                        path=file_path.relative_to(root).as_posix(),
                        language=language,
                        size_bytes=size,
                        symbols=symbols,
                    )
                )

        logger.debug(f"Found {len(files)} source files under {root}")
        return files

"""Project analysis: ecosystem detection, manifests and symbol extraction."""

from context_server.analyzer.detector import ProjectDetector
from context_server.analyzer.project import ProjectAnalyzer

__all__ = ["ProjectAnalyzer", "ProjectDetector"]

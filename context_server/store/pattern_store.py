"""In-memory pattern store with secondary indices, scoring and JSON persistence.

Patterns live in a single list. Two derived indices map category and
framework values to positions in that list. Persistence writes one JSON
file per framework (``<framework>-patterns.json`` holding
``{"patterns": [...]}``) via write-to-temporary-then-rename.

Thread Safety:
    All public methods take the store's re-entrant lock, so mutations are
    serialized against each other and against reads of the indices.
"""

import json
import math
import tempfile
import threading
from collections import defaultdict
from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import ValidationError as PydanticValidationError

from context_server.core.exceptions import (
    DuplicatePatternError,
    PatternNotFoundError,
    StorageError,
    ValidationError,
)
from context_server.core.models import CodePattern, PatternFile, SearchCriteria
from context_server.core.validation import (
    PATTERN_FILE_SUFFIX,
    pattern_file_name,
    resolve_within,
    validate_framework_name,
    validate_pattern_id,
)
from context_server.log_utils import get_logger

logger = get_logger(__name__)

# Scoring weights
USAGE_WEIGHT = 0.05
TITLE_MATCH_BOOST = 0.30
DESCRIPTION_MATCH_BOOST = 0.15
CODE_MATCH_BOOST = 0.05
TAG_WEIGHT = 0.20
RECENCY_BOOST = 0.05
RECENCY_WINDOW = timedelta(days=30)
MAX_SCORE = 1.0


class PatternStore:
    """
    Owns the pattern collection, its category/framework indices and the
    on-disk pattern directory.

    The store starts empty; call load() to read the storage directory.
    An empty store is valid and answers every query with empty results.
    """

    def __init__(self, storage_path: Path):
        """
        Initialize the pattern store.

        Args:
            storage_path: Directory holding one pattern file per framework
        """
        self.storage_path = Path(storage_path).expanduser()
        self._patterns: List[CodePattern] = []
        self._id_index: Dict[str, int] = {}
        self._category_index: Dict[str, Set[int]] = defaultdict(set)
        self._framework_index: Dict[str, Set[int]] = defaultdict(set)
        self._lock = threading.RLock()

    # ========================================================================
    # Persistence
    # ========================================================================

    def load(self) -> int:
        """
        Load every ``<framework>-patterns.json`` file in the storage directory.

        Only the files save() writes are read, and a pattern is only taken
        from the file named after its own framework, so every loaded pattern
        is rewritten in place by the next save. Other JSON files and
        misplaced patterns are skipped with a warning.

        Replaces the in-memory collection and rebuilds both indices. A file
        that cannot be read or parsed is logged and skipped. Patterns whose
        ID was already loaded are skipped with a warning.

        Returns:
            Number of patterns loaded
        """
        loaded: List[CodePattern] = []
        seen_ids: Set[str] = set()
        failed_files = 0

        if not self.storage_path.exists():
            logger.warning(f"Pattern storage path does not exist: {self.storage_path}")
        else:
            for stray in sorted(self.storage_path.glob("*.json")):
                if not stray.name.endswith(PATTERN_FILE_SUFFIX):
                    logger.warning(
                        f"Ignoring {stray}: pattern files must be named "
                        f"'<framework>{PATTERN_FILE_SUFFIX}'"
                    )

            for file_path in sorted(self.storage_path.glob(f"*{PATTERN_FILE_SUFFIX}")):
                try:
                    patterns = self._read_pattern_file(file_path)
                except (OSError, ValueError, PydanticValidationError) as e:
                    failed_files += 1
                    logger.error_ctx(
                        f"Failed to load pattern file {file_path}: {e}",
                        file=str(file_path),
                    )
                    continue

                for pattern in patterns:
                    try:
                        validate_framework_name(pattern.framework)
                        validate_pattern_id(pattern.id)
                    except ValidationError as e:
                        logger.warning(f"Skipping invalid pattern in {file_path}: {e}")
                        continue
                    if pattern_file_name(pattern.framework) != file_path.name:
                        logger.warning_ctx(
                            f"Skipping pattern '{pattern.id}' in {file_path}: "
                            f"framework '{pattern.framework}' belongs in "
                            f"{pattern_file_name(pattern.framework)}",
                            pattern_id=pattern.id,
                            framework=pattern.framework,
                        )
                        continue
                    if pattern.id in seen_ids:
                        logger.warning(
                            f"Duplicate pattern ID '{pattern.id}' in {file_path}, skipping"
                        )
                        continue
                    seen_ids.add(pattern.id)
                    loaded.append(pattern)

        with self._lock:
            self._patterns = loaded
            self._rebuild_indexes()

        logger.info_ctx(
            f"Loaded {len(loaded)} patterns from {self.storage_path}",
            patterns=len(loaded),
            failed_files=failed_files,
        )
        return len(loaded)

    def _read_pattern_file(self, file_path: Path) -> List[CodePattern]:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return PatternFile.model_validate(data).patterns

    def save(self) -> int:
        """
        Persist the whole collection, one file per framework.

        Every framework name is validated and every target path is checked
        to resolve inside the storage directory before anything is written.
        Each file is written to a temporary sibling and renamed into place.

        Returns:
            Number of files written

        Raises:
            ValidationError: If a framework name is unsafe
            StorageError: If the directory or a file cannot be written
        """
        with self._lock:
            by_framework: Dict[str, List[CodePattern]] = defaultdict(list)
            for pattern in self._patterns:
                by_framework[pattern.framework].append(pattern)

            # Validate every target before touching the filesystem
            targets: List[Tuple[Path, List[CodePattern]]] = []
            for framework in sorted(by_framework):
                file_name = pattern_file_name(framework)
                targets.append(
                    (resolve_within(self.storage_path, file_name), by_framework[framework])
                )

            try:
                self.storage_path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(
                    f"Failed to create storage directory {self.storage_path}: {e}"
                ) from e

            for file_path, patterns in targets:
                self._write_atomic(file_path, PatternFile(patterns=patterns))

        logger.info_ctx(
            f"Saved {len(self._patterns)} patterns to {self.storage_path}",
            patterns=len(self._patterns),
            files=len(targets),
        )
        return len(targets)

    def _write_atomic(self, file_path: Path, content: PatternFile) -> None:
        """
        Write via temp file + rename so readers never see a partial file.

        The temporary file gets a fresh random name and is created
        exclusively, so an existing entry (a planted symlink included) is
        never opened for writing.
        """
        temp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=file_path.parent,
                prefix=f".{file_path.name}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                temp_path = Path(f.name)
                f.write(content.model_dump_json(indent=2))
            temp_path.replace(file_path)
        except OSError as e:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise StorageError(
                f"Failed to write pattern file {file_path}: {e}",
                "Check that the pattern directory is writable",
            ) from e

    # ========================================================================
    # Mutation
    # ========================================================================

    def add_pattern(self, pattern: CodePattern) -> CodePattern:
        """
        Validate and insert a pattern. Does not persist; call save().

        Timestamps are stamped by the store.

        Raises:
            ValidationError: If framework or id is invalid
            DuplicatePatternError: If the id is already stored
        """
        validate_framework_name(pattern.framework)
        validate_pattern_id(pattern.id)

        with self._lock:
            if pattern.id in self._id_index:
                raise DuplicatePatternError(pattern.id)

            now = datetime.now(UTC)
            stored = pattern.model_copy(update={"created_at": now, "updated_at": now})

            position = len(self._patterns)
            self._patterns.append(stored)
            self._index_pattern(position, stored)

        logger.info(f"Added pattern '{stored.id}' ({stored.framework}/{stored.category})")
        return stored

    def increment_usage(self, pattern_id: str) -> CodePattern:
        """
        Increment a pattern's usage count and refresh updated_at.

        Raises:
            PatternNotFoundError: If no pattern has this id
        """
        with self._lock:
            position = self._id_index.get(pattern_id)
            if position is None:
                raise PatternNotFoundError(pattern_id)

            pattern = self._patterns[position]
            pattern.usage_count += 1
            pattern.updated_at = max(datetime.now(UTC), pattern.created_at)
            logger.debug_ctx(
                f"Usage of '{pattern_id}' is now {pattern.usage_count}",
                pattern_id=pattern_id,
                usage_count=pattern.usage_count,
            )
            return pattern

    # ========================================================================
    # Indexing
    # ========================================================================

    def _rebuild_indexes(self) -> None:
        self._id_index = {}
        self._category_index = defaultdict(set)
        self._framework_index = defaultdict(set)
        for position, pattern in enumerate(self._patterns):
            self._index_pattern(position, pattern)

    def _index_pattern(self, position: int, pattern: CodePattern) -> None:
        self._id_index[pattern.id] = position
        self._category_index[pattern.category].add(position)
        self._framework_index[pattern.framework].add(position)

    # ========================================================================
    # Search
    # ========================================================================

    def search_patterns(
        self,
        criteria: SearchCriteria,
        now: Optional[datetime] = None,
    ) -> List[Tuple[CodePattern, float]]:
        """
        Score, filter and rank patterns.

        Candidates come from the framework index (or the whole collection),
        intersected with the category index when a category is given.
        Results are ordered by score descending, then usage_count
        descending, then id ascending.

        Args:
            criteria: Search criteria
            now: Reference time for the recency boost (defaults to now)

        Returns:
            List of (pattern, score) tuples; empty when nothing qualifies
        """
        now = now or datetime.now(UTC)

        with self._lock:
            if criteria.framework is not None:
                candidates = set(self._framework_index.get(criteria.framework, ()))
            else:
                candidates = set(range(len(self._patterns)))

            if criteria.category is not None:
                candidates &= self._category_index.get(criteria.category, set())

            scored = []
            for position in candidates:
                pattern = self._patterns[position]
                score = self.score_pattern(pattern, criteria, now)
                if score >= criteria.min_score:
                    scored.append((pattern, score))

        scored.sort(key=lambda item: (-item[1], -item[0].usage_count, item[0].id))
        return scored

    @staticmethod
    def score_pattern(
        pattern: CodePattern,
        criteria: SearchCriteria,
        now: Optional[datetime] = None,
    ) -> float:
        """
        Compute the query-time score for one pattern.

        score = min(1.0, relevance + usage + query + tags + recency)
        """
        now = now or datetime.now(UTC)
        score = pattern.relevance_score

        # Popularity, zero for usage_count <= 1
        score += math.log10(max(pattern.usage_count, 1)) * USAGE_WEIGHT

        if criteria.query:
            query = criteria.query.lower()
            if query in pattern.title.lower():
                score += TITLE_MATCH_BOOST
            if query in pattern.description.lower():
                score += DESCRIPTION_MATCH_BOOST
            if query in pattern.code.lower():
                score += CODE_MATCH_BOOST

        if criteria.tags:
            requested = set(criteria.tags)
            matching = len(requested & set(pattern.tags))
            score += matching / len(requested) * TAG_WEIGHT

        if now - pattern.updated_at < RECENCY_WINDOW:
            score += RECENCY_BOOST

        return min(MAX_SCORE, score)

    def search_by_framework_and_category(
        self, framework: str, category: str
    ) -> List[CodePattern]:
        """Convenience wrapper returning patterns only."""
        criteria = SearchCriteria(framework=framework, category=category)
        return [pattern for pattern, _score in self.search_patterns(criteria)]

    # ========================================================================
    # Reads
    # ========================================================================

    def get_pattern(self, pattern_id: str) -> Optional[CodePattern]:
        """Get a pattern by ID, or None."""
        with self._lock:
            position = self._id_index.get(pattern_id)
            return None if position is None else self._patterns[position]

    def get_all_patterns(self) -> List[CodePattern]:
        """Snapshot of every stored pattern in insertion order."""
        with self._lock:
            return list(self._patterns)

    def categories(self) -> List[str]:
        with self._lock:
            return sorted(self._category_index)

    def frameworks(self) -> List[str]:
        with self._lock:
            return sorted(self._framework_index)

    def category_index(self) -> Dict[str, Set[int]]:
        """Copy of the category index (category -> positions)."""
        with self._lock:
            return {key: set(value) for key, value in self._category_index.items()}

    def framework_index(self) -> Dict[str, Set[int]]:
        """Copy of the framework index (framework -> positions)."""
        with self._lock:
            return {key: set(value) for key, value in self._framework_index.items()}

    def get_statistics(self) -> Dict[str, Any]:
        """
        Aggregate statistics over the collection.

        Returns:
            Dictionary with total_patterns, total_usage, average_relevance,
            categories and frameworks
        """
        with self._lock:
            total = len(self._patterns)
            total_usage = sum(p.usage_count for p in self._patterns)
            average = (
                sum(p.relevance_score for p in self._patterns) / total if total else 0.0
            )
            return {
                "total_patterns": total,
                "total_usage": total_usage,
                "average_relevance": average,
                "categories": sorted(self._category_index),
                "frameworks": sorted(self._framework_index),
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._patterns)

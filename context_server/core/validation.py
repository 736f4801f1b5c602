"""Input validation and path-safety checks for pattern persistence.

Framework names become file names in the pattern storage directory, so they
are validated before any in-memory mutation and again before every write.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from context_server.core.exceptions import PathTraversalError, ValidationError

logger = logging.getLogger(__name__)

MAX_FRAMEWORK_LENGTH = 64
MAX_PATTERN_ID_LENGTH = 128

# Substrings that must never appear in a framework name
FORBIDDEN_FRAMEWORK_SEQUENCES = ["/", "\\", "..", ":", "\x00"]

PATTERN_FILE_SUFFIX = "-patterns.json"


def validate_framework_name(framework: Any) -> str:
    """
    Validate a framework string for use as a file-name component.

    Args:
        framework: Candidate framework value

    Returns:
        The framework unchanged

    Raises:
        ValidationError: If the value is empty, too long, or contains a
            path separator, parent segment, drive designator or NUL byte
    """
    if not isinstance(framework, str) or not framework.strip():
        raise ValidationError("Framework must be a non-empty string")

    if len(framework) > MAX_FRAMEWORK_LENGTH:
        raise ValidationError(
            f"Framework name too long ({len(framework)} > {MAX_FRAMEWORK_LENGTH} characters)"
        )

    for sequence in FORBIDDEN_FRAMEWORK_SEQUENCES:
        if sequence in framework:
            logger.warning(f"Rejected framework name containing {sequence!r}")
            raise ValidationError(
                f"Invalid framework name {framework!r}: must not contain "
                f"path separators, '..', ':' or NUL bytes",
                "Use a simple identifier such as 'blazor-server' or 'fastapi'",
            )

    return framework


def validate_pattern_id(pattern_id: Any) -> str:
    """
    Validate a caller-supplied pattern ID.

    Raises:
        ValidationError: If the ID is empty, too long, or contains a NUL byte
    """
    if not isinstance(pattern_id, str) or not pattern_id.strip():
        raise ValidationError("Pattern ID must be a non-empty string")

    if len(pattern_id) > MAX_PATTERN_ID_LENGTH:
        raise ValidationError(
            f"Pattern ID too long ({len(pattern_id)} > {MAX_PATTERN_ID_LENGTH} characters)"
        )

    if "\x00" in pattern_id:
        raise ValidationError("Pattern ID must not contain NUL bytes")

    return pattern_id


def pattern_file_name(framework: str) -> str:
    """Deterministic file name for a framework's pattern file."""
    return f"{validate_framework_name(framework)}{PATTERN_FILE_SUFFIX}"


def resolve_within(base_dir: Path, file_name: str) -> Path:
    """
    Join ``file_name`` onto ``base_dir`` and verify containment.

    The result is canonicalized and must be a direct child of the
    canonicalized base directory.

    Raises:
        PathTraversalError: If the resolved path lies outside ``base_dir``
    """
    base = Path(base_dir).resolve()
    target = (base / file_name).resolve()

    if target.parent != base:
        raise PathTraversalError(str(target), str(base))

    return target


def require_string(
    arguments: Dict[str, Any], key: str, *aliases: str, allow_blank: bool = False
) -> str:
    """
    Fetch a required string argument, looking up ``aliases`` after ``key``.

    Raises:
        ValidationError: If the argument is missing, not a string, or blank
            (unless ``allow_blank``)
    """
    for name in (key, *aliases):
        value = arguments.get(name)
        if value is not None:
            break
    else:
        raise ValidationError(f"Missing required argument: {key}")

    if not isinstance(value, str):
        raise ValidationError(f"Argument '{key}' must be a string")
    if not allow_blank and not value.strip():
        raise ValidationError(f"Argument '{key}' must be a non-empty string")
    return value


def optional_string(arguments: Dict[str, Any], key: str) -> Optional[str]:
    """Fetch an optional string argument; blank strings become None."""
    value = arguments.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Argument '{key}' must be a string")
    return value if value.strip() else None


def optional_string_list(arguments: Dict[str, Any], key: str) -> List[str]:
    """Fetch an optional list of strings."""
    value = arguments.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"Argument '{key}' must be a list of strings")
    return value


def optional_score(arguments: Dict[str, Any], key: str, default: float) -> float:
    """Fetch an optional score in [0, 1]."""
    value = arguments.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"Argument '{key}' must be a number")
    if not 0.0 <= float(value) <= 1.0:
        raise ValidationError(f"Argument '{key}' must be between 0.0 and 1.0")
    return float(value)

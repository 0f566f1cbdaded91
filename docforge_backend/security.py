from __future__ import annotations

import re
from pathlib import Path

from .errors import ValidationError


_ARTIFACT_ID_RE = re.compile(r"[A-Za-z0-9_][A-Za-z0-9_.-]*")
MAX_ARTIFACT_ID_LENGTH = 128


def normalize_artifact_id(artifact_id: str) -> str:
    """Validate an artifact id against a strict allow-list.

    Ids are used verbatim as file names inside the store root, so anything that
    is not a single path-safe component is rejected instead of being repaired:
    only [A-Za-z0-9_.-], no leading dot, no "..", no separators.
    """
    if not isinstance(artifact_id, str) or not artifact_id:
        raise ValidationError("Invalid artifact id")
    if len(artifact_id) > MAX_ARTIFACT_ID_LENGTH:
        raise ValidationError("Invalid artifact id")
    if not _ARTIFACT_ID_RE.fullmatch(artifact_id):
        raise ValidationError("Invalid artifact id")
    if ".." in artifact_id:
        raise ValidationError("Invalid artifact id")
    return artifact_id


def is_safe_label(label: str) -> bool:
    """Labels become the id prefix, so they follow the same alphabet minus dots."""
    return isinstance(label, str) and bool(re.fullmatch(r"[A-Za-z0-9_-]{1,32}", label))


def safe_join(base_dir: Path, *parts: str) -> Path:
    """Join paths and ensure the result stays within base_dir.

    Second line of defense after normalize_artifact_id.
    """
    base_dir = base_dir.resolve()
    candidate = base_dir
    for part in parts:
        candidate = candidate / part
    resolved = candidate.resolve()
    if resolved == base_dir or base_dir not in resolved.parents:
        raise ValidationError("Path traversal attempt")
    return resolved

from __future__ import annotations


class ValidationError(ValueError):
    """Rejected input: bad content kind, too few merge inputs, unsupported target, malformed text."""


class ArtifactNotFound(FileNotFoundError):
    """Unknown, rejected or already reclaimed artifact id."""

from __future__ import annotations

import enum
import logging
import os
import secrets
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable

from .errors import ArtifactNotFound, ValidationError
from .security import is_safe_label, normalize_artifact_id, safe_join


logger = logging.getLogger(__name__)

_TEMP_PREFIX = ".partial-"


class ContentKind(str, enum.Enum):
    PDF = "pdf"
    PNG = "png"
    JPG = "jpg"
    WEBP = "webp"

    @property
    def extension(self) -> str:
        return f".{self.value}"

    @property
    def media_type(self) -> str:
        return _MEDIA_TYPES[self]

    @classmethod
    def from_extension(cls, ext: str) -> "ContentKind | None":
        ext = ext.lower().lstrip(".")
        if ext == "jpeg":
            ext = "jpg"
        try:
            return cls(ext)
        except ValueError:
            return None


_MEDIA_TYPES = {
    ContentKind.PDF: "application/pdf",
    ContentKind.PNG: "image/png",
    ContentKind.JPG: "image/jpeg",
    ContentKind.WEBP: "image/webp",
}


@dataclass(frozen=True)
class Artifact:
    artifact_id: str
    path: Path
    created_at: float
    size_bytes: int
    content_kind: ContentKind

    def age_at(self, now: float) -> float:
        return now - self.created_at


class ArtifactStore:
    """Flat directory of immutable blobs, one file per artifact.

    Files are written under a dot-prefixed temporary name and renamed into
    place, so every name that passes the id validator is a complete artifact.
    """

    def __init__(self, root: Path, clock: Callable[[], float] = time.time) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self._clock = clock

    def _new_id(self, content_kind: ContentKind, label: str) -> str:
        stamp = int(self._clock() * 1000)
        return f"{label}_{stamp}_{secrets.token_hex(6)}{content_kind.extension}"

    def create(self, content_kind: ContentKind, data: bytes, label: str = "artifact") -> Artifact:
        if not is_safe_label(label):
            raise ValidationError("Invalid artifact label")
        artifact_id = self._new_id(content_kind, label)
        dest = safe_join(self.root, artifact_id)

        fd, tmp_name = tempfile.mkstemp(prefix=_TEMP_PREFIX, dir=self.root)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            created_at = self._clock()
            os.utime(tmp_name, (created_at, created_at))
            os.replace(tmp_name, dest)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

        logger.info("Stored artifact %s (%d bytes)", artifact_id, len(data))
        return Artifact(
            artifact_id=artifact_id,
            path=dest,
            created_at=created_at,
            size_bytes=len(data),
            content_kind=content_kind,
        )

    def _describe(self, artifact_id: str) -> Artifact:
        kind = ContentKind.from_extension(Path(artifact_id).suffix)
        if kind is None:
            raise ArtifactNotFound(artifact_id)
        try:
            path = safe_join(self.root, artifact_id)
        except ValidationError:
            raise ArtifactNotFound(artifact_id) from None
        try:
            st = path.stat()
        except FileNotFoundError:
            raise ArtifactNotFound(artifact_id) from None
        if not path.is_file():
            raise ArtifactNotFound(artifact_id)
        return Artifact(
            artifact_id=artifact_id,
            path=path,
            created_at=st.st_mtime,
            size_bytes=st.st_size,
            content_kind=kind,
        )

    def resolve(self, requested_id: str) -> Artifact:
        """Look up an artifact by id; anything absent or rejected is ArtifactNotFound."""
        try:
            artifact_id = normalize_artifact_id(requested_id)
        except ValidationError:
            logger.debug("Rejected artifact id %r", requested_id)
            raise ArtifactNotFound(str(requested_id)) from None
        return self._describe(artifact_id)

    def open(self, artifact: Artifact) -> BinaryIO:
        # The returned handle stays readable after a concurrent unlink.
        try:
            return open(artifact.path, "rb")
        except FileNotFoundError:
            raise ArtifactNotFound(artifact.artifact_id) from None

    def delete(self, artifact_id: str) -> bool:
        """Remove an artifact. Returns False if it was already gone."""
        try:
            artifact_id = normalize_artifact_id(artifact_id)
            path = safe_join(self.root, artifact_id)
        except ValidationError:
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Deleted artifact %s", artifact_id)
        return True

    def list(self) -> list[Artifact]:
        artifacts: list[Artifact] = []
        for child in self.root.iterdir():
            try:
                artifact_id = normalize_artifact_id(child.name)
            except ValidationError:
                # In-flight temp files and foreign entries.
                continue
            try:
                artifacts.append(self._describe(artifact_id))
            except ArtifactNotFound:
                continue
        return artifacts

    def reclaim_partials(self, older_than: float) -> int:
        """Remove temp files left by writes that never reached the rename."""
        now = self._clock()
        removed = 0
        for child in self.root.glob(_TEMP_PREFIX + "*"):
            try:
                if now - child.stat().st_mtime < older_than:
                    continue
                child.unlink()
            except FileNotFoundError:
                continue
            removed += 1
            logger.info("Reclaimed abandoned temp file %s", child.name)
        return removed

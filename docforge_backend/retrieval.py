from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, BinaryIO

import anyio
from starlette.responses import StreamingResponse
from starlette.types import Send

from .config import DOWNLOAD_CHUNK_BYTES, DOWNLOAD_GRACE_SECONDS, TRANSFER_TIMEOUT_SECONDS
from .scheduler import DeferredDeletionScheduler
from .store import Artifact, ArtifactStore


logger = logging.getLogger(__name__)


@dataclass
class ArtifactDownload:
    artifact: Artifact
    handle: BinaryIO
    completed: bool = False

    def close(self) -> None:
        self.handle.close()


class RetrievalGateway:
    """Streams artifacts and arms deferred deletion after a complete transfer.

    The file is opened once, up front, and read through that descriptor, so a
    sweep that unlinks the name mid-transfer does not cut the download short.
    """

    def __init__(
        self,
        store: ArtifactStore,
        deferred: DeferredDeletionScheduler,
        grace_seconds: float = DOWNLOAD_GRACE_SECONDS,
        chunk_size: int = DOWNLOAD_CHUNK_BYTES,
        transfer_timeout: float = TRANSFER_TIMEOUT_SECONDS,
    ) -> None:
        self.store = store
        self.deferred = deferred
        self.grace_seconds = grace_seconds
        self.chunk_size = chunk_size
        self.transfer_timeout = transfer_timeout

    def open(self, artifact_id: str) -> ArtifactDownload:
        artifact = self.store.resolve(artifact_id)
        return ArtifactDownload(artifact=artifact, handle=self.store.open(artifact))

    async def iter_chunks(self, download: ArtifactDownload) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await asyncio.to_thread(download.handle.read, self.chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            download.close()

    def complete(self, download: ArtifactDownload) -> bool:
        download.completed = True
        logger.info("Served artifact %s", download.artifact.artifact_id)
        return self.deferred.arm_once(download.artifact.artifact_id, self.grace_seconds)

    def response(self, download: ArtifactDownload) -> "ArtifactStreamResponse":
        return ArtifactStreamResponse(self, download)

    def get(self, artifact_id: str) -> "ArtifactStreamResponse":
        """Resolve and open artifact_id; raises ArtifactNotFound."""
        return self.response(self.open(artifact_id))


class ArtifactStreamResponse(StreamingResponse):
    def __init__(self, gateway: RetrievalGateway, download: ArtifactDownload) -> None:
        artifact = download.artifact
        headers = {
            "Content-Disposition": f'attachment; filename="{artifact.artifact_id}"',
            "Content-Length": str(artifact.size_bytes),
            "Cache-Control": "no-store",
            "X-Content-Type-Options": "nosniff",
        }
        super().__init__(
            gateway.iter_chunks(download),
            media_type=artifact.content_kind.media_type,
            headers=headers,
        )
        self.gateway = gateway
        self.download = download

    async def stream_response(self, send: Send) -> None:
        # Disconnects cancel or fail this coroutine before complete() runs.
        try:
            with anyio.fail_after(self.gateway.transfer_timeout):
                await super().stream_response(send)
        except TimeoutError:
            logger.warning("Transfer of %s timed out", self.download.artifact.artifact_id)
            raise
        finally:
            self.download.close()
        self.gateway.complete(self.download)

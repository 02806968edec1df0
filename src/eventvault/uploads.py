"""
Upload queue — concurrent, independently progressing file uploads.

Each selected file becomes one UploadTask that moves through:

    queued -> uploading (0-85%) -> finalizing (85-98%) -> complete (100%)
                    \\__________________\\______________-> error

Files run as separate asyncio tasks. A failure marks only its own
task; siblings in the same batch keep going. Completed tasks linger
for a short display window and are then evicted; failed tasks stay
until dismissed or retried.

The task collection is only ever updated by identity-keyed merges
(``_merge``), so completions landing in any order never overwrite
each other's fields. It is independent of the collection view: a
reload of the listing never clears or derives upload state.
"""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Callable, Iterable, Optional, Union

from .config import EventVaultConfig
from .errors import TransientNetwork
from .interfaces import BlobStore, RelationalStore
from .models import (
    AnonymousActor,
    AuthenticatedActor,
    MediaAsset,
    MediaType,
    UploadFile,
    UploadStatus,
    UploadTask,
)

logger = logging.getLogger("eventvault.uploads")

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp", "heic", "avif"}
VIDEO_EXTENSIONS = {"mp4", "webm", "mov", "ogg", "m4v", "3gp", "mkv"}

TaskListener = Callable[[UploadTask], None]
ActorLike = Union[AuthenticatedActor, AnonymousActor]


def classify_media(file_name: str, content_type: Optional[str]) -> MediaType:
    """Classify a file as image, video or plain file."""
    content_type = (content_type or "").lower()
    ext = PurePosixPath(file_name.lower()).suffix.lstrip(".")
    if content_type.startswith("image/") or ext in IMAGE_EXTENSIONS:
        return MediaType.IMAGE
    if content_type.startswith("video/") or ext in VIDEO_EXTENSIONS:
        return MediaType.VIDEO
    return MediaType.FILE


def storage_path(vault_id: str, file_name: str) -> str:
    """Unique object path for a file inside a vault."""
    safe_name = re.sub(r"[/\\]+", "_", file_name).strip() or "file"
    return f"{vault_id}/{secrets.token_hex(6)}-{safe_name}"


@dataclass
class _Job:
    vault_id: str
    folder_id: Optional[str]
    actor: ActorLike
    file: UploadFile


class UploadQueue:
    """Active upload tasks and the coroutines driving them.

    The queue is owned by the session, not by a vault view, so
    uploads keep running after the user navigates away.

    Args:
        store: Relational store for metadata registration.
        blobs: Blob store for the file bytes.
        config: Timings and progress bands.
    """

    def __init__(
        self,
        store: RelationalStore,
        blobs: BlobStore,
        config: Optional[EventVaultConfig] = None,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._config = config or EventVaultConfig()
        self._tasks: dict[str, UploadTask] = {}
        self._jobs: dict[str, _Job] = {}
        self._running: set[asyncio.Task] = set()
        self._evictions: dict[str, asyncio.TimerHandle] = {}
        self._listeners: list[TaskListener] = []
        self._remove_listeners: list[TaskListener] = []

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------

    @property
    def tasks(self) -> list[UploadTask]:
        return list(self._tasks.values())

    def get(self, task_id: str) -> Optional[UploadTask]:
        return self._tasks.get(task_id)

    def for_vault(self, vault_id: str) -> list[UploadTask]:
        return [t for t in self._tasks.values() if t.vault_id == vault_id]

    def on_change(self, listener: TaskListener) -> None:
        """Register a listener called with every updated task."""
        self._listeners.append(listener)

    def on_remove(self, listener: TaskListener) -> None:
        """Register a listener called with each task as it leaves the queue."""
        self._remove_listeners.append(listener)

    async def enqueue_upload(
        self,
        vault_id: str,
        files: Iterable[UploadFile],
        folder_id: Optional[str],
        actor: ActorLike,
    ) -> list[UploadTask]:
        """Create one task per file and start them all.

        Returns immediately with the queued tasks; progress arrives
        through listeners and ``tasks``. Use ``wait()`` to block until
        every upload has reached a terminal state.
        """
        created: list[UploadTask] = []
        for upload in files:
            task = UploadTask(file_name=upload.name, vault_id=vault_id, folder_id=folder_id)
            self._tasks[task.id] = task
            self._jobs[task.id] = _Job(vault_id, folder_id, actor, upload)
            self._notify(task)
            created.append(task)

        for task in created:
            self._start(task.id)

        if created:
            logger.info("Queued %d upload(s) for vault %s", len(created), vault_id)
        return created

    async def retry(self, task_id: str) -> UploadTask:
        """Re-run a failed task as a new attempt.

        Raises:
            KeyError: If the task is unknown.
            ValueError: If the task has not failed.
        """
        task = self._tasks.get(task_id)
        if task is None or task_id not in self._jobs:
            raise KeyError(task_id)
        if task.status != UploadStatus.ERROR:
            raise ValueError(f"Task {task_id} is {task.status.value}, not error")

        fresh = task.model_copy(update={
            "status": UploadStatus.QUEUED,
            "progress": 0,
            "error": None,
            "attempts": task.attempts + 1,
        })
        self._tasks[task_id] = fresh
        self._notify(fresh)
        self._start(task_id)
        logger.info("Retrying upload %s (%s), attempt %d", task_id, task.file_name, fresh.attempts)
        return fresh

    def dismiss(self, task_id: str) -> bool:
        """Remove a finished task. In-flight tasks cannot be dismissed."""
        task = self._tasks.get(task_id)
        if task is None or not task.status.is_terminal:
            return False
        self._evict(task_id)
        return True

    async def wait(self) -> None:
        """Wait until no upload is in flight."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    def summary(self) -> dict[str, Any]:
        """Counts for the page-independent upload indicator."""
        tasks = list(self._tasks.values())
        return {
            "total_count": len(tasks),
            "completed_count": sum(1 for t in tasks if t.status == UploadStatus.COMPLETE),
            "failed_count": sum(1 for t in tasks if t.status == UploadStatus.ERROR),
            "active_count": sum(1 for t in tasks if not t.status.is_terminal),
        }

    # -------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------

    def _start(self, task_id: str) -> None:
        runner = asyncio.get_running_loop().create_task(self._run(task_id))
        self._running.add(runner)
        runner.add_done_callback(self._running.discard)

    async def _run(self, task_id: str) -> None:
        job = self._jobs[task_id]
        retries = 0
        while True:
            try:
                await self._attempt(task_id, job)
                return
            except asyncio.CancelledError:
                self._fail(task_id, "Upload cancelled")
                raise
            except TransientNetwork as exc:
                if retries < self._config.upload_retry_attempts:
                    delay = self._config.upload_retry_backoff * (2 ** retries)
                    retries += 1
                    logger.warning(
                        "Upload %s hit a transient error, retry %d in %.2fs: %s",
                        job.file.name, retries, delay, exc,
                    )
                    await asyncio.sleep(delay)
                    continue
                self._fail(task_id, str(exc) or "Network error")
                return
            except Exception as exc:
                self._fail(task_id, str(exc) or type(exc).__name__)
                return

    async def _attempt(self, task_id: str, job: _Job) -> None:
        band_end = self._config.upload_band_end
        finalize_end = max(band_end, self._config.finalize_band_end)
        upload = job.file

        self._advance(task_id, 0, UploadStatus.UPLOADING)

        def on_progress(sent: int, total: int) -> None:
            fraction = 1.0 if total <= 0 else sent / total
            self._advance(task_id, int(fraction * band_end))

        path = storage_path(job.vault_id, upload.name)
        content_type = upload.resolved_content_type
        url = await self._blobs.upload(path, upload.data, content_type, on_progress)

        self._advance(task_id, band_end, UploadStatus.FINALIZING)

        asset = MediaAsset(
            vault_id=job.vault_id,
            folder_id=job.folder_id,
            uploader_id=job.actor.actor_id,
            url=url,
            storage_path=path,
            file_name=upload.name,
            type=classify_media(upload.name, content_type),
            size_bytes=upload.size,
        )
        try:
            await self._store.insert_asset(asset)
        except Exception:
            await self._discard_blob(path)
            raise

        self._advance(task_id, finalize_end)
        await asyncio.sleep(self._config.stabilization_delay)

        self._advance(task_id, 100, UploadStatus.COMPLETE)
        self._schedule_eviction(task_id)
        logger.info("Uploaded %s to vault %s", upload.name, job.vault_id)

    async def _discard_blob(self, path: str) -> None:
        try:
            await self._blobs.remove([path])
        except Exception as exc:
            logger.warning("Could not remove orphaned blob %s: %s", path, exc)

    def _fail(self, task_id: str, message: str) -> None:
        task = self._tasks.get(task_id)
        if task is None or task.status.is_terminal:
            return
        self._merge(task_id, status=UploadStatus.ERROR, error=message)
        logger.error("Upload %s failed: %s", task.file_name, message)

    # -------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------

    def _advance(
        self,
        task_id: str,
        progress: int,
        status: Optional[UploadStatus] = None,
    ) -> None:
        """Move a task forward. Lower progress and earlier statuses are ignored."""
        task = self._tasks.get(task_id)
        if task is None or task.status.is_terminal:
            return
        fields: dict[str, Any] = {}
        progress = max(0, min(100, progress))
        if progress > task.progress:
            fields["progress"] = progress
        if status is not None and status.rank > task.status.rank:
            fields["status"] = status
        if fields:
            self._merge(task_id, **fields)

    def _merge(self, task_id: str, **fields: Any) -> Optional[UploadTask]:
        current = self._tasks.get(task_id)
        if current is None:
            return None
        updated = current.model_copy(update=fields)
        self._tasks[task_id] = updated
        self._notify(updated)
        return updated

    def _schedule_eviction(self, task_id: str) -> None:
        loop = asyncio.get_running_loop()
        self._evictions[task_id] = loop.call_later(
            self._config.completion_display_seconds, self._evict_if_complete, task_id
        )

    def _evict_if_complete(self, task_id: str) -> None:
        task = self._tasks.get(task_id)
        if task is not None and task.status == UploadStatus.COMPLETE:
            self._evict(task_id)

    def _evict(self, task_id: str) -> None:
        handle = self._evictions.pop(task_id, None)
        if handle is not None:
            handle.cancel()
        task = self._tasks.pop(task_id, None)
        self._jobs.pop(task_id, None)
        if task is None:
            return
        logger.debug("Evicted upload task %s", task_id)
        self._notify(task, self._remove_listeners)

    def _notify(self, task: UploadTask, listeners: Optional[list[TaskListener]] = None) -> None:
        for listener in list(self._listeners if listeners is None else listeners):
            try:
                listener(task)
            except Exception as exc:
                logger.error("Upload listener failed: %s", exc)

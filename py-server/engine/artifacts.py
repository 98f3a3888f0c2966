"""
Temp artifact lifecycle

ArtifactScope tracks every file a single request writes into the artifact
directory and deletes them when the request ends. ArtifactReaper is the
fallback: a background task that removes anything older than the retention
window.
"""

import asyncio
import logging
import os
import time
import uuid
from pathlib import Path
from typing import List, Optional

import psutil

logger = logging.getLogger(__name__)


def unique_name(prefix: str, suffix: str) -> str:
    """`prefix-<epoch ms>-<random hex>suffix`"""
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{suffix}"


class ArtifactScope:
    """
    Context manager owning the files of one pipeline invocation.

    On a clean exit everything registered is deleted except the declared
    outputs; if the block raises, the declared outputs go too.

    Example:
        >>> with ArtifactScope('/tmp/uploads') as scope:
        ...     out = scope.new_path('merged', '.pdf')
        ...     scope.declare_output(out)
    """

    def __init__(self, artifact_dir: str, owner: Optional[str] = None):
        self.artifact_dir = artifact_dir
        self.owner = owner or "pipeline"
        self._registered: List[str] = []
        self._outputs: List[str] = []
        self._start_time: Optional[float] = None
        self._start_memory: Optional[float] = None

    def __enter__(self) -> 'ArtifactScope':
        self._start_time = time.time()
        self._start_memory = psutil.Process().memory_info().rss / (1024 * 1024)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release_all(keep_outputs=exc_type is None)

        if self._start_time:
            processing_time = time.time() - self._start_time
            current_memory = psutil.Process().memory_info().rss / (1024 * 1024)
            memory_delta = current_memory - self._start_memory if self._start_memory else 0
            logger.debug(
                f"{self.owner}: finished in {processing_time:.2f}s, "
                f"memory usage: {memory_delta:+.1f}MB"
            )
        return False

    def new_path(self, prefix: str, suffix: str) -> str:
        """Allocate and register a unique path inside the artifact directory."""
        path = os.path.join(self.artifact_dir, unique_name(prefix, suffix))
        self.register(path)
        return path

    def register(self, path: str) -> str:
        """Register a file for cleanup"""
        if path not in self._registered:
            self._registered.append(path)
        return path

    def declare_output(self, path: str) -> str:
        """Mark a registered file as a result that survives a successful exit."""
        self.register(path)
        if path not in self._outputs:
            self._outputs.append(path)
        return path

    @property
    def outputs(self) -> List[str]:
        return list(self._outputs)

    @property
    def registered(self) -> List[str]:
        return list(self._registered)

    def release_all(self, keep_outputs: bool = False) -> int:
        """
        Delete registered files.

        Args:
            keep_outputs: Keep files passed to declare_output()

        Returns:
            Number of files deleted
        """
        kept = set(self._outputs) if keep_outputs else set()
        removed = 0
        for path in self._registered:
            if path in kept:
                continue
            try:
                os.unlink(path)
                removed += 1
                logger.debug(f"Cleaned up temporary file: {path}")
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Failed to clean up temporary file {path}: {e}")

        self._registered = [p for p in self._registered if p in kept]
        if not keep_outputs:
            self._outputs = []
        return removed


class ArtifactReaper:
    """
    Periodically deletes files older than the retention window.

    Owned by the runtime context: start() schedules the loop on the running
    event loop, stop() cancels it.
    """

    def __init__(self, artifact_dir: str, retention_seconds: float, interval_seconds: float):
        self.artifact_dir = artifact_dir
        self.retention_seconds = retention_seconds
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    def sweep(self, now: Optional[float] = None) -> int:
        """
        Delete regular files whose mtime is older than the retention window.

        Returns:
            Number of files removed
        """
        now = time.time() if now is None else now
        cutoff = now - self.retention_seconds
        removed = 0

        try:
            entries = list(os.scandir(self.artifact_dir))
        except FileNotFoundError:
            return 0

        for entry in entries:
            try:
                if not entry.is_file(follow_symlinks=False):
                    continue
                if entry.stat(follow_symlinks=False).st_mtime >= cutoff:
                    continue
                os.unlink(entry.path)
                removed += 1
                logger.debug(f"Reaped expired artifact: {entry.name}")
            except FileNotFoundError:
                # Removed by its owning request in the meantime
                continue
            except OSError as e:
                logger.warning(f"Failed to reap {entry.path}: {e}")

        if removed:
            logger.info(f"Reaper removed {removed} expired file(s) from {Path(self.artifact_dir).name}")
        return removed

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.to_thread(self.sweep)
            except Exception:
                logger.exception("Artifact sweep failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(
            f"Artifact reaper started: retention {self.retention_seconds / 3600:g}h, "
            f"interval {self.interval_seconds:g}s"
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
        logger.info("Artifact reaper stopped")

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()


__all__ = ['ArtifactScope', 'ArtifactReaper', 'unique_name']

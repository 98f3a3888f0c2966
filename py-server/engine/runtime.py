"""
Runtime context shared by all requests: configuration, the artifact
directory, and the reaper's lifecycle.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from engine.artifacts import ArtifactReaper, ArtifactScope
from engine.config import ServiceConfig

logger = logging.getLogger(__name__)


class RuntimeContext:
    """Created once per application and stored on `app.state.runtime`"""

    def __init__(self, config: Optional[ServiceConfig] = None):
        self.config = config or ServiceConfig.default()
        if not self.config.validate():
            raise ValueError(f"Invalid service configuration: {self.config!r}")

        self.artifact_dir = os.path.abspath(self.config.upload_dir)
        self.reaper = ArtifactReaper(
            self.artifact_dir,
            retention_seconds=self.config.retention_seconds,
            interval_seconds=self.config.sweep_interval_seconds,
        )

    def ensure_artifact_dir(self) -> None:
        Path(self.artifact_dir).mkdir(parents=True, exist_ok=True)

    async def start(self) -> None:
        self.ensure_artifact_dir()
        self.reaper.start()
        logger.info(f"Runtime started with {self.config!r}")

    async def stop(self) -> None:
        await self.reaper.stop()

    def scope(self, owner: Optional[str] = None) -> ArtifactScope:
        """New artifact scope rooted in the artifact directory"""
        self.ensure_artifact_dir()
        return ArtifactScope(self.artifact_dir, owner=owner)

    def download_url(self, path: str) -> str:
        return f"{self.config.download_prefix.rstrip('/')}/{os.path.basename(path)}"


__all__ = ['RuntimeContext']

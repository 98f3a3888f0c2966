"""
PDF Toolkit Engine

Transform pipeline, document handles, artifact lifecycle and runtime
configuration for the PDF toolkit server.
"""

__version__ = "1.0.0"

from engine.artifacts import ArtifactReaper, ArtifactScope
from engine.base_transform import BaseTransform, FileConverter, TransformRegistry, TransformResult
from engine.config import ServiceConfig
from engine.document_handle import DocumentHandle, PageInfo
from engine.pipeline import DEFAULT_REGISTRY, execute, run, validate
from engine.runtime import RuntimeContext

__all__ = [
    'ArtifactReaper',
    'ArtifactScope',
    'BaseTransform',
    'FileConverter',
    'TransformRegistry',
    'TransformResult',
    'ServiceConfig',
    'DocumentHandle',
    'PageInfo',
    'DEFAULT_REGISTRY',
    'execute',
    'run',
    'validate',
    'RuntimeContext',
]

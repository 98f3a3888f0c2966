"""
Base transform protocol and registry.

Defines the interface every operation implements so the pipeline can
dispatch on a descriptor's `operation` tag without knowing the algorithm.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING
import logging

from models.transform_types import TransformDescriptor

if TYPE_CHECKING:
    from engine.artifacts import ArtifactScope
    from engine.document_handle import DocumentHandle

logger = logging.getLogger(__name__)


@dataclass
class OutputDocument:
    """
    One result produced by a transform.

    Document transforms return an open `document` for the pipeline to save;
    converters write the file themselves and return its `path`.
    """
    name: str
    document: Optional['DocumentHandle'] = None
    path: Optional[str] = None
    suffix: str = ".pdf"
    page_count: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TransformResult:
    """Outputs plus the metadata merged into the response body"""
    message: str
    outputs: List[OutputDocument] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    save_options: Dict[str, Any] = field(default_factory=dict)


class BaseTransform(ABC):
    """
    Abstract base class for document transforms.

    Subclasses set `operation` to the descriptor tag they handle and
    implement apply(). Inputs arrive already open; outputs that are new
    documents are owned by the result until the pipeline saves and closes
    them.
    """

    operation: str = ""
    opens_documents: bool = True
    # Report outputs as a `files` list even when there is only one
    lists_outputs: bool = False

    @abstractmethod
    def apply(self, inputs: List['DocumentHandle'], descriptor: TransformDescriptor) -> TransformResult:
        """Run the operation over open input documents."""

    def finalize(self, result: TransformResult, saved_sizes: List[int]) -> None:
        """
        Hook called after outputs are written.

        Args:
            result: The result returned by apply()
            saved_sizes: Size in bytes of each written output, in output order
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.operation})"


class FileConverter(BaseTransform):
    """
    Base class for path-in/path-out conversions.

    Converters read their inputs with format-specific libraries and write
    outputs at paths allocated from the artifact scope, so they share the
    pipeline's cleanup guarantees.
    """

    opens_documents = False

    def apply(self, inputs, descriptor):
        raise TypeError(f"{self.__class__.__name__} converts files, use convert()")

    @abstractmethod
    def convert(
        self,
        input_paths: List[str],
        descriptor: TransformDescriptor,
        artifacts: 'ArtifactScope',
    ) -> TransformResult:
        """Convert input files, writing outputs via artifacts.new_path()."""


class TransformRegistry:
    """
    Registry mapping operation tags to transform instances.

    Used by the pipeline to dispatch a descriptor to its algorithm.
    """

    def __init__(self):
        self._transforms: Dict[str, BaseTransform] = {}

    def register(self, transform: BaseTransform, name: Optional[str] = None) -> None:
        """
        Register a transform under `name` (defaults to its operation tag).
        """
        key = name or transform.operation
        if not key:
            raise ValueError(f"{transform!r} has no operation name")
        if key in self._transforms:
            logger.warning(f"Transform '{key}' already registered, replacing")

        self._transforms[key] = transform
        logger.debug(f"Registered transform: {key}")

    def get(self, name: str) -> Optional[BaseTransform]:
        return self._transforms.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._transforms

    @property
    def transform_names(self) -> List[str]:
        """Get list of registered operation names."""
        return list(self._transforms.keys())

    def __repr__(self) -> str:
        return f"TransformRegistry({len(self._transforms)} transforms: {self.transform_names})"


__all__ = [
    'OutputDocument',
    'TransformResult',
    'BaseTransform',
    'FileConverter',
    'TransformRegistry',
]

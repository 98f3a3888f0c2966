"""
Transform Pipeline

Validates a descriptor against its inputs, dispatches it to the registered
transform, saves the outputs into the artifact directory and builds the
response body. Every invocation runs inside an ArtifactScope, so inputs
and intermediates are deleted on every exit path and outputs survive only
on success.

Usage:
    >>> from engine.pipeline import run
    >>> from models.transform_types import MergeDescriptor
    >>>
    >>> response = run(['a.pdf', 'b.pdf'], MergeDescriptor(), runtime)
    >>> response.downloadUrl
    '/uploads/merged-1700000000000-1a2b3c4d.pdf'
"""

import logging
import os
from contextlib import ExitStack
from typing import List, Optional

import pikepdf

from engine.artifacts import ArtifactScope
from engine.base_transform import BaseTransform, TransformRegistry, TransformResult
from engine.config import ServiceConfig
from engine.converters import (
    ExcelToPdfConverter,
    HtmlToPdfConverter,
    ImageToPdfConverter,
    ImageToTextConverter,
    PdfToJpgConverter,
    PdfToWordConverter,
    WordToPdfConverter,
)
from engine.document_handle import DocumentHandle
from engine.overlay_transforms import PageNumbersTransform, RedactTransform, WatermarkTransform
from engine.page_transforms import (
    CompressTransform,
    ExtractPagesTransform,
    MergeTransform,
    RemovePagesTransform,
    RotateTransform,
    SplitTransform,
)
from engine.runtime import RuntimeContext
from engine.security_transforms import CompareTransform, ProtectTransform, SignTransform, UnlockTransform
from models.transform_types import OutputFile, TransformDescriptor, TransformResponse
from utils.validation import PdfProcessingError, PdfValidationError

logger = logging.getLogger(__name__)


def build_default_registry() -> TransformRegistry:
    registry = TransformRegistry()
    for transform in (
        MergeTransform(),
        SplitTransform(),
        RemovePagesTransform(),
        ExtractPagesTransform(),
        RotateTransform(),
        WatermarkTransform(),
        PageNumbersTransform(),
        CompressTransform(),
        ProtectTransform(),
        UnlockTransform(),
        SignTransform(),
        RedactTransform(),
        CompareTransform(),
        ImageToPdfConverter(),
        PdfToJpgConverter(),
        ImageToTextConverter(),
        PdfToWordConverter(),
        WordToPdfConverter(),
        ExcelToPdfConverter(),
        HtmlToPdfConverter(),
    ):
        registry.register(transform)
    return registry


DEFAULT_REGISTRY = build_default_registry()


def validate(descriptor: TransformDescriptor, input_count: int, config: Optional[ServiceConfig] = None) -> None:
    """
    Reject a request before any document is loaded.

    Raises:
        PdfValidationError: INSUFFICIENT_INPUTS, TOO_MANY_INPUTS, or whatever
            the descriptor's own parameter checks raise
    """
    if input_count < descriptor.min_inputs:
        noun = "file" if descriptor.min_inputs == 1 else "files"
        raise PdfValidationError(
            f"{descriptor.operation} requires at least {descriptor.min_inputs} {noun}, got {input_count}",
            code="INSUFFICIENT_INPUTS",
            details={'required': descriptor.min_inputs, 'received': input_count},
        )

    max_inputs = descriptor.max_inputs
    if descriptor.operation == "merge" and config is not None:
        max_inputs = config.max_merge_files
    if max_inputs is not None and input_count > max_inputs:
        raise PdfValidationError(
            f"{descriptor.operation} accepts at most {max_inputs} file(s), got {input_count}",
            code="TOO_MANY_INPUTS",
            details={'maximum': max_inputs, 'received': input_count},
        )

    descriptor.validate_parameters()


def _lookup(descriptor: TransformDescriptor, registry: Optional[TransformRegistry]) -> BaseTransform:
    registry = registry or DEFAULT_REGISTRY
    transform = registry.get(descriptor.operation)
    if transform is None:
        raise PdfValidationError(f"Unknown operation '{descriptor.operation}'", code="UNKNOWN_OPERATION")
    return transform


def execute(
    inputs: List[DocumentHandle],
    descriptor: TransformDescriptor,
    registry: Optional[TransformRegistry] = None,
) -> TransformResult:
    """Apply a document transform to already-open inputs"""
    transform = _lookup(descriptor, registry)
    if not transform.opens_documents:
        raise TypeError(f"{transform!r} converts files and cannot run on open documents")
    try:
        return transform.apply(inputs, descriptor)
    except pikepdf.PdfError as e:
        raise PdfProcessingError(f"Failed to process PDF: {e}")


def _save_outputs(result: TransformResult, inputs: List[DocumentHandle], artifacts: ArtifactScope) -> None:
    try:
        for output in result.outputs:
            path = artifacts.new_path(output.name, output.suffix)
            output.document.save(path, **result.save_options)
            output.path = artifacts.declare_output(path)
    except pikepdf.PdfError as e:
        raise PdfProcessingError(f"Failed to write PDF: {e}")
    finally:
        for output in result.outputs:
            if output.document is not None and output.document not in inputs:
                output.document.close()


def _run_in_scope(
    input_paths: List[str],
    descriptor: TransformDescriptor,
    runtime: RuntimeContext,
    registry: Optional[TransformRegistry],
    artifacts: ArtifactScope,
) -> TransformResponse:
    for path in input_paths:
        artifacts.register(path)

    validate(descriptor, len(input_paths), runtime.config)
    transform = _lookup(descriptor, registry)

    if transform.opens_documents:
        with ExitStack() as stack:
            inputs = [
                stack.enter_context(DocumentHandle(path, password=descriptor.open_password))
                for path in input_paths
            ]
            result = execute(inputs, descriptor, registry)
            _save_outputs(result, inputs, artifacts)
    else:
        result = transform.convert(input_paths, descriptor, artifacts)
        for output in result.outputs:
            artifacts.declare_output(output.path)

    saved_sizes = [os.path.getsize(output.path) for output in result.outputs]
    transform.finalize(result, saved_sizes)
    return build_response(result, saved_sizes, runtime, transform.lists_outputs)


def run(
    input_paths: List[str],
    descriptor: TransformDescriptor,
    runtime: RuntimeContext,
    registry: Optional[TransformRegistry] = None,
    artifacts: Optional[ArtifactScope] = None,
) -> TransformResponse:
    """
    Execute one invocation end to end.

    Args:
        input_paths: Uploaded files, already inside the artifact directory
        descriptor: Operation and its parameters
        runtime: Shared runtime context
        registry: Transform registry (defaults to every built-in operation)
        artifacts: Scope owned by the caller; a new one is opened if omitted

    Returns:
        Response body for the caller

    Raises:
        PdfValidationError: Bad parameters or inputs
        PdfProcessingError: An input could not be parsed or written
    """
    if artifacts is not None:
        return _run_in_scope(input_paths, descriptor, runtime, registry, artifacts)

    with runtime.scope(owner=descriptor.operation) as scope:
        return _run_in_scope(input_paths, descriptor, runtime, registry, scope)


def build_response(
    result: TransformResult,
    saved_sizes: List[int],
    runtime: RuntimeContext,
    lists_outputs: bool = False,
) -> TransformResponse:
    files = [
        OutputFile(
            filename=os.path.basename(output.path),
            downloadUrl=runtime.download_url(output.path),
            size=size,
            pageCount=output.page_count,
            **output.extra,
        )
        for output, size in zip(result.outputs, saved_sizes)
    ]

    body = dict(result.metadata)
    if len(files) == 1 and not lists_outputs:
        body['downloadUrl'] = files[0].downloadUrl
        body['filename'] = files[0].filename
    elif files:
        body['files'] = files

    return TransformResponse(message=result.message, **body)


__all__ = [
    'DEFAULT_REGISTRY',
    'build_default_registry',
    'validate',
    'execute',
    'run',
    'build_response',
]

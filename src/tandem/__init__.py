"""Tandem: a resilient client for the OpenAI responses API.

Public API:
    - ResponsesClient / create_client(): create and stream responses with retry
    - ResponseRequest, InputItem: request description
    - ConversationStateManager: response chaining and turn accounting
    - Config: configuration dataclass
"""

from __future__ import annotations

import logging

from tandem.client import (
    ResponsesClient,
    aggregate_output_text,
    collect_stream,
    create_client,
)
from tandem.config import Config
from tandem.conversation import (
    ContextOptimizer,
    ConversationStateManager,
    HeuristicContextOptimizer,
    InMemoryPersistenceProvider,
    JSONFilePersistenceProvider,
    PersistenceProvider,
)
from tandem.errors import (
    ConfigurationError,
    ConversationNotFoundError,
    InvalidRequestError,
    MidStreamFailure,
    OptimizerUnavailableError,
    TandemError,
    UpstreamError,
    UpstreamTerminalError,
    UpstreamUnavailableError,
)
from tandem.extraction import ExtractorRegistry, default_registry, parse
from tandem.models import (
    Annotation,
    Chunk,
    CompletedResponse,
    ContextMetadata,
    ConversationState,
    InputItem,
    OptimizationInput,
    OptimizationResult,
    ResponseRequest,
    ToolDeclaration,
    ToolResult,
)
from tandem.redaction import redact
from tandem.request import build_multimodal_inputs, build_payload
from tandem.retry import RetryPolicy
from tandem.streaming import normalize

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("tandem-responses")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("tandem").addHandler(logging.NullHandler())

__all__ = [
    "Annotation",
    "Chunk",
    "CompletedResponse",
    "Config",
    "ConfigurationError",
    "ContextMetadata",
    "ContextOptimizer",
    "ConversationNotFoundError",
    "ConversationState",
    "ConversationStateManager",
    "ExtractorRegistry",
    "HeuristicContextOptimizer",
    "InMemoryPersistenceProvider",
    "InputItem",
    "InvalidRequestError",
    "JSONFilePersistenceProvider",
    "MidStreamFailure",
    "OptimizationInput",
    "OptimizationResult",
    "OptimizerUnavailableError",
    "PersistenceProvider",
    "ResponseRequest",
    "ResponsesClient",
    "RetryPolicy",
    "TandemError",
    "ToolDeclaration",
    "ToolResult",
    "UpstreamError",
    "UpstreamTerminalError",
    "UpstreamUnavailableError",
    "aggregate_output_text",
    "build_multimodal_inputs",
    "build_payload",
    "collect_stream",
    "create_client",
    "default_registry",
    "normalize",
    "parse",
    "redact",
]

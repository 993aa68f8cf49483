"""Model transport, resilient invocation and structured output extraction."""

from .client import LLMSettings, create_chat_model
from .errors import (
    CapacityExceeded,
    InvocationError,
    MalformedOutput,
    TransientCapacityError,
    TransportError,
)
from .invocation import InvocationClient, InvocationRequest, RetryPolicy, create_invocation_client
from .structured import extract_structured
from .transport import LangChainTransport, ModelTransport

__all__ = [
    "LLMSettings",
    "create_chat_model",
    "CapacityExceeded",
    "InvocationError",
    "MalformedOutput",
    "TransientCapacityError",
    "TransportError",
    "InvocationClient",
    "InvocationRequest",
    "RetryPolicy",
    "create_invocation_client",
    "extract_structured",
    "LangChainTransport",
    "ModelTransport",
]

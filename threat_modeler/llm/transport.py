"""Transport abstraction over the generative model.

A transport performs one model call and classifies its own failures:
capacity problems (throttling, overload) are raised as
TransientCapacityError so the invocation client may retry them; everything
else becomes TransportError. Retry policy never inspects transport-specific
error names.
"""

from typing import Any, Protocol

import structlog
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage

from threat_modeler.models import ImagePayload

from .errors import TransientCapacityError, TransportError

logger = structlog.get_logger(__name__)

# HTTP statuses meaning "try again later"
TRANSIENT_STATUS_CODES = frozenset({429, 503, 529})

# Provider error names meaning the same thing (Bedrock, OpenAI, Anthropic SDKs)
TRANSIENT_ERROR_NAMES = frozenset({
    "ThrottlingException",
    "TooManyRequestsException",
    "ProvisionedThroughputExceededException",
    "ServiceUnavailableException",
    "RateLimitError",
    "OverloadedError",
})


class ModelTransport(Protocol):
    """One round-trip to the generative model."""

    async def send(self, prompt: str, image: ImagePayload | None = None) -> str:
        """Send a prompt (and optional image) and return the reply text.

        Raises:
            TransientCapacityError: The model is over capacity; retrying may help.
            TransportError: Any other failure.
        """
        ...


def is_transient_capacity_error(exc: BaseException) -> bool:
    """Decide whether a raw client exception signals a capacity problem."""
    if type(exc).__name__ in TRANSIENT_ERROR_NAMES:
        return True

    status_code = getattr(exc, "status_code", None)
    response = getattr(exc, "response", None)
    if status_code is None and response is not None:
        if isinstance(response, dict):
            # botocore ClientError keeps the error code in the response dict
            code = response.get("Error", {}).get("Code")
            if code in TRANSIENT_ERROR_NAMES:
                return True
            status_code = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        else:
            status_code = getattr(response, "status_code", None)

    return status_code in TRANSIENT_STATUS_CODES


def build_message(prompt: str, image: ImagePayload | None = None) -> HumanMessage:
    """Build a multimodal user message, image first, then text."""
    if image is None:
        return HumanMessage(content=prompt)

    return HumanMessage(content=[
        {"type": "image_url", "image_url": {"url": image.data_url}},
        {"type": "text", "text": prompt},
    ])


def message_text(message: BaseMessage) -> str:
    """Flatten a chat reply into plain text."""
    content: Any = message.content
    if isinstance(content, str):
        return content

    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class LangChainTransport:
    """Transport backed by a LangChain chat model."""

    def __init__(self, chat_model: BaseChatModel):
        self._chat_model = chat_model

    async def send(self, prompt: str, image: ImagePayload | None = None) -> str:
        message = build_message(prompt, image)

        logger.debug(
            "transport_send",
            prompt_length=len(prompt),
            has_image=image is not None,
        )

        try:
            response = await self._chat_model.ainvoke([message])
        except Exception as e:
            if is_transient_capacity_error(e):
                raise TransientCapacityError(f"{type(e).__name__}: {e}") from e
            raise TransportError(f"{type(e).__name__}: {e}") from e

        text = message_text(response)
        logger.debug("transport_response", response_length=len(text))
        return text

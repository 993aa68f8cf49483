"""Resilient model invocation: retry with exponential backoff, then decode."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from threat_modeler.config.settings import Settings, get_settings
from threat_modeler.models import ImagePayload

from .client import LLMSettings, create_chat_model
from .errors import CapacityExceeded, TransientCapacityError, TransportError
from .structured import extract_structured
from .transport import LangChainTransport, ModelTransport

logger = structlog.get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for transient capacity errors.

    The wait before retry k (1-based) is base_delay * multiplier ** (k - 1),
    so max_attempts attempts wait max_attempts - 1 times in total.
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")
        if self.multiplier < 1:
            raise ValueError("multiplier must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
            multiplier=settings.retry_multiplier,
        )


@dataclass(frozen=True)
class InvocationRequest:
    """A rendered prompt, an optional image and the expected output shape."""

    prompt: str
    image: ImagePayload | None = None
    expect_structured: bool = False


def _log_retry(retry_state: RetryCallState) -> None:
    """Log a scheduled retry; runs before each backoff sleep."""
    error = retry_state.outcome.exception() if retry_state.outcome else None
    wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        "invocation_retry_scheduled",
        error_class=type(error).__name__ if error else None,
        error=str(error) if error else None,
        attempt=retry_state.attempt_number,
        wait_seconds=wait,
    )


class InvocationClient:
    """Calls the model through a transport with retry and output decoding."""

    def __init__(
        self,
        transport: ModelTransport,
        policy: RetryPolicy | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.transport = transport
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def invoke(self, request: InvocationRequest) -> str | dict:
        """Invoke the model.

        Args:
            request: Prompt, optional image and whether structured output is expected.

        Returns:
            The reply text verbatim, or the extracted JSON object when
            request.expect_structured is set.

        Raises:
            TransportError: Non-retryable transport failure (no retry).
            CapacityExceeded: Transient capacity failures on every attempt.
            MalformedOutput: Structured output could not be extracted.
        """
        text = await self._send_with_retry(request)

        if not request.expect_structured:
            return text

        return extract_structured(text)

    async def _send_with_retry(self, request: InvocationRequest) -> str:
        retrying = AsyncRetrying(
            sleep=self._sleep,
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=wait_exponential(
                multiplier=self.policy.base_delay,
                exp_base=self.policy.multiplier,
                min=0,
            ),
            retry=retry_if_exception_type(TransientCapacityError),
            before_sleep=_log_retry,
        )

        text = ""
        attempt_number = 0
        try:
            async for attempt in retrying:
                attempt_number = attempt.retry_state.attempt_number
                with attempt:
                    text = await self.transport.send(request.prompt, request.image)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            logger.error(
                "invocation_capacity_exceeded",
                error_class=type(last_error).__name__,
                attempts=self.policy.max_attempts,
            )
            raise CapacityExceeded(
                f"Model still over capacity after {self.policy.max_attempts} attempts: {last_error}",
                attempts=self.policy.max_attempts,
            ) from last_error
        except TransportError as e:
            logger.error("invocation_failed", error_class=type(e).__name__, error=str(e), attempt=attempt_number)
            raise

        logger.debug("invocation_complete", response_length=len(text))
        return text


def create_invocation_client(
    settings: Settings | None = None,
    llm_settings: LLMSettings | None = None,
) -> InvocationClient:
    """Create an invocation client backed by the configured chat model.

    Args:
        settings: Optional application settings (retry policy).
        llm_settings: Optional LLM settings (model, endpoint).

    Returns:
        Configured InvocationClient.
    """
    settings = settings or get_settings()
    transport = LangChainTransport(create_chat_model(llm_settings))
    return InvocationClient(transport, policy=RetryPolicy.from_settings(settings))

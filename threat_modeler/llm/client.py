"""Ollama chat model client configuration."""

from functools import lru_cache

from langchain_ollama import ChatOllama
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """LLM configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )

    ollama_base_url: str = "http://localhost:11434"
    # Must be a vision-capable model for diagram input
    model_name: str = "llama3.2-vision:latest"
    temperature: float = 0.0
    request_timeout: int = 300
    num_ctx: int = 8192
    num_predict: int = 4096  # Max tokens to generate


@lru_cache
def get_llm_settings() -> LLMSettings:
    """Get cached LLM settings."""
    return LLMSettings()


def create_chat_model(settings: LLMSettings | None = None) -> ChatOllama:
    """Create configured Ollama chat model.

    A chat model is used rather than a completion model so that an image can
    travel in the same message as the prompt.

    Args:
        settings: Optional custom settings. Uses defaults if not provided.

    Returns:
        Configured ChatOllama instance.
    """
    settings = settings or get_llm_settings()

    return ChatOllama(
        model=settings.model_name,
        base_url=settings.ollama_base_url,
        temperature=settings.temperature,
        num_ctx=settings.num_ctx,
        num_predict=settings.num_predict,
        client_kwargs={"timeout": settings.request_timeout},
    )

"""Generative model collaborator: OpenAI (default) or a local Ollama server."""

from server.services.llm.provider import (
    FakeProvider,
    ImageInput,
    LLMError,
    LLMProvider,
    OllamaProvider,
    OpenAIProvider,
    build_provider,
)

__all__ = [
    "FakeProvider",
    "ImageInput",
    "LLMError",
    "LLMProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "build_provider",
]

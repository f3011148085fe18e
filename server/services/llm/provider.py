"""Generative model provider interface. OpenAI primary; Ollama optional."""

from __future__ import annotations

import base64
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import httpx
import openai
from openai import AsyncOpenAI

logger = logging.getLogger("quizling.llm")


@dataclass
class LLMError(Exception):
    """Structured error from the model service. Never expose raw tracebacks."""
    kind: str  # timeout | unavailable | provider_error | empty_response | not_configured
    message: str
    details: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


@dataclass
class ImageInput:
    """Raw image bytes to embed in a prompt."""
    content: bytes
    mime_type: str

    def to_base64(self) -> str:
        return base64.b64encode(self.content).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


class LLMProvider(ABC):
    """Abstract provider: submit(prompt) -> completion text."""

    name: str = "base"

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        json_mode: bool = False,
        image: Optional[ImageInput] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
    ) -> str:
        """Return the completion text or raise LLMError."""
        ...

    @abstractmethod
    async def test_connection(self) -> tuple[bool, str]:
        """Test if provider is available. Returns (ok, message)."""
        ...


class OpenAIProvider(LLMProvider):
    """OpenAI Chat Completions provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4.1-mini",
        temperature: float = 0.3,
        timeout_s: int = 120,
    ):
        self.model = model
        self.temperature = temperature
        self.timeout_s = timeout_s
        self.name = "openai"
        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout_s)

    async def complete(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        json_mode: bool = False,
        image: Optional[ImageInput] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
    ) -> str:
        messages: List[Dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        if image is not None:
            messages.append({
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image.to_data_url()}},
                ],
            })
        else:
            messages.append({"role": "user", "content": prompt})

        kwargs: Dict[str, Any] = {
            "model": model or self.model,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.APITimeoutError as e:
            raise LLMError(kind="timeout", message="Model request timed out", details={"error": str(e)})
        except openai.APIConnectionError as e:
            raise LLMError(kind="unavailable", message="Cannot connect to OpenAI", details={"error": str(e)})
        except openai.APIStatusError as e:
            raise LLMError(
                kind="provider_error",
                message=f"OpenAI returned {e.status_code}",
                details={"status": e.status_code, "error": str(e)[:200]},
            )
        except openai.OpenAIError as e:
            logger.exception("OpenAI request failed")
            raise LLMError(kind="provider_error", message="Model request failed", details={"error": str(e)})

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise LLMError(kind="empty_response", message="No content returned from OpenAI")
        return text

    async def test_connection(self) -> tuple[bool, str]:
        try:
            await self._client.models.retrieve(self.model)
            return True, "OpenAI available"
        except openai.AuthenticationError:
            return False, "OpenAI rejected the API key"
        except openai.OpenAIError as e:
            return False, str(e)


class OllamaProvider(LLMProvider):
    """Ollama HTTP API provider."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "qwen2.5:7b-instruct",
        temperature: float = 0.3,
        timeout_s: int = 120,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.timeout_s = timeout_s
        self.name = "ollama"

    async def complete(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        json_mode: bool = False,
        image: Optional[ImageInput] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
    ) -> str:
        # OpenAI model names do not apply here; always use the local model.
        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self.temperature if temperature is None else temperature,
            },
        }
        if system:
            payload["system"] = system
        if max_tokens:
            payload["options"]["num_predict"] = max_tokens
        if json_mode:
            payload["format"] = "json"
        if image is not None:
            payload["images"] = [image.to_base64()]
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                resp = await client.post(f"{self.base_url}/api/generate", json=payload)
        except httpx.TimeoutException as e:
            raise LLMError(kind="timeout", message="Model request timed out", details={"error": str(e)})
        except httpx.ConnectError as e:
            raise LLMError(kind="unavailable", message="Cannot connect to Ollama", details={"error": str(e)})
        except httpx.HTTPError as e:
            logger.exception("Ollama request failed")
            raise LLMError(kind="provider_error", message="Model request failed", details={"error": str(e)})
        if resp.status_code != 200:
            raise LLMError(
                kind="provider_error",
                message=f"Ollama returned {resp.status_code}",
                details={"status": resp.status_code, "body": resp.text[:200]},
            )
        try:
            data = resp.json()
        except json.JSONDecodeError as e:
            raise LLMError(kind="provider_error", message="Invalid response from model", details={"error": str(e)})
        text = data.get("response", "")
        if not text:
            raise LLMError(kind="empty_response", message="Empty response from model")
        return text

    async def test_connection(self) -> tuple[bool, str]:
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                resp = await client.get(f"{self.base_url}/api/tags")
            if resp.status_code == 200:
                return True, "Ollama available"
            return False, f"Ollama returned {resp.status_code}"
        except httpx.ConnectError:
            return False, "Ollama not detected. Install and run: ollama serve"
        except httpx.HTTPError as e:
            return False, str(e)


FakeResponse = Union[str, BaseException, Callable[[str], str]]


class FakeProvider(LLMProvider):
    """
    Test double: replays canned responses in order.

    Each entry is returned as-is (str), raised (exception), or called with
    the prompt (callable). The last entry repeats once the list runs out.
    """

    def __init__(self, responses: Optional[Sequence[FakeResponse]] = None, error: Optional[BaseException] = None):
        self.responses = list(responses or [])
        self.error = error
        self.calls: List[Dict[str, Any]] = []
        self.name = "fake"

    async def complete(self, prompt: str, **kwargs) -> str:
        self.calls.append({"prompt": prompt, **kwargs})
        if self.error is not None:
            raise self.error
        if not self.responses:
            return '{"qa_pairs": []}'
        idx = min(len(self.calls) - 1, len(self.responses) - 1)
        item = self.responses[idx]
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(prompt)
        return item

    async def test_connection(self) -> tuple[bool, str]:
        if isinstance(self.error, LLMError) and self.error.kind == "unavailable":
            return False, "Fake unavailable"
        return True, "Fake OK"


def build_provider(settings) -> Optional[LLMProvider]:
    """Construct the configured provider. Returns None when no credential is set."""
    provider_name = getattr(settings, "llm_provider", "openai")
    if provider_name == "ollama":
        return OllamaProvider(
            base_url=getattr(settings, "ollama_base_url", "http://localhost:11434"),
            model=getattr(settings, "ollama_model", "qwen2.5:7b-instruct"),
            temperature=getattr(settings, "llm_temperature", 0.3),
            timeout_s=getattr(settings, "llm_timeout_s", 120),
        )
    api_key = getattr(settings, "openai_api_key", None)
    if not api_key:
        return None
    return OpenAIProvider(
        api_key=api_key,
        model=getattr(settings, "llm_model", "gpt-4.1-mini"),
        temperature=getattr(settings, "llm_temperature", 0.3),
        timeout_s=getattr(settings, "llm_timeout_s", 120),
    )

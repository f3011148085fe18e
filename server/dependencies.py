"""FastAPI dependency factories."""

from functools import lru_cache
from typing import Optional

from fastapi import Depends

from server.config import Settings
from server.services.document_processing import DocumentProcessor, build_document_processor
from server.services.llm.provider import LLMProvider, build_provider

# Process-wide clients (keyed by settings identity for override support)
_provider: Optional[LLMProvider] = None
_processor: Optional[DocumentProcessor] = None
_clients_settings_id: object | None = None


@lru_cache()
def get_settings() -> Settings:
    """Singleton Settings -- override via app.dependency_overrides in tests."""
    return Settings()


def _ensure_clients(settings: Settings) -> None:
    global _provider, _processor, _clients_settings_id
    # Rebuild if settings were overridden (e.g. in tests)
    if _clients_settings_id is not settings:
        _provider = build_provider(settings)
        _processor = build_document_processor(settings)
        _clients_settings_id = settings


def get_llm_provider(settings: Settings = Depends(get_settings)) -> Optional[LLMProvider]:
    """Configured model provider, or None when no credential is set."""
    _ensure_clients(settings)
    return _provider


def get_document_processor(settings: Settings = Depends(get_settings)) -> Optional[DocumentProcessor]:
    """Document AI processor, or None when not configured."""
    _ensure_clients(settings)
    return _processor

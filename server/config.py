"""Configuration for the Quizling API server."""

import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger("quizling")


@dataclass
class Settings:
    """
    Credentials and tuning knobs for the extraction service.

    Every field is overridable at construction for testing.
    Unset fields are filled from the environment in __post_init__.
    """
    # Generative model
    openai_api_key: Optional[str] = None
    llm_provider: str = "openai"
    llm_model: str = "gpt-4.1-mini"
    vision_model: str = "gpt-4o"
    llm_temperature: float = 0.3
    llm_max_tokens: int = 2000
    llm_timeout_s: int = 120
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "qwen2.5:7b-instruct"

    # Chat assistant
    chat_model: str = "gpt-4.1-mini"
    chat_temperature: float = 0.7
    chat_max_tokens: int = 10000
    chat_history_turns: int = 6

    # Google Document AI (optional OCR / page structure)
    gcp_project_id: Optional[str] = None
    gcp_location: Optional[str] = None
    docai_processor_id: Optional[str] = None
    google_credentials_b64: Optional[str] = None

    # Uploads and chunking
    max_upload_size_mb: float = 4.5
    pages_per_chunk: int = 5
    overlap_pages: int = 1

    def __post_init__(self):
        if self.openai_api_key is None:
            self.openai_api_key = os.environ.get("OPENAI_API_KEY") or None
        if os.environ.get("LLM_PROVIDER"):
            self.llm_provider = os.environ["LLM_PROVIDER"].lower().strip()
        if os.environ.get("OPENAI_MODEL"):
            self.llm_model = os.environ["OPENAI_MODEL"]
        if os.environ.get("OPENAI_MODEL_NAME"):
            self.vision_model = os.environ["OPENAI_MODEL_NAME"]
        if os.environ.get("CHAT_MODEL"):
            self.chat_model = os.environ["CHAT_MODEL"]
        if os.environ.get("OLLAMA_BASE_URL"):
            self.ollama_base_url = os.environ["OLLAMA_BASE_URL"]
        if os.environ.get("OLLAMA_MODEL"):
            self.ollama_model = os.environ["OLLAMA_MODEL"]

        env_temp = os.environ.get("LLM_TEMPERATURE")
        if env_temp is not None:
            try:
                self.llm_temperature = float(env_temp)
            except ValueError:
                pass
        try:
            if v := os.environ.get("LLM_TIMEOUT_S"):
                self.llm_timeout_s = int(v)
        except ValueError:
            pass
        try:
            if v := os.environ.get("MAX_UPLOAD_SIZE_MB"):
                self.max_upload_size_mb = float(v)
        except ValueError:
            pass

        if self.gcp_project_id is None:
            self.gcp_project_id = os.environ.get("GOOGLE_CLOUD_PROJECT_ID") or None
        if self.gcp_location is None:
            self.gcp_location = os.environ.get("GOOGLE_CLOUD_LOCATION", "us")
        if self.docai_processor_id is None:
            self.docai_processor_id = os.environ.get("GOOGLE_DOCUMENT_AI_PROCESSOR_ID") or None
        if self.google_credentials_b64 is None:
            self.google_credentials_b64 = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS_B64") or None

    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_size_mb * 1024 * 1024)

    @property
    def has_model_credential(self) -> bool:
        """Ollama runs locally and needs no key."""
        if self.llm_provider == "ollama":
            return True
        return bool(self.openai_api_key)

    @property
    def document_ai_configured(self) -> bool:
        return bool(self.gcp_project_id and self.docai_processor_id)

    def capabilities(self) -> Dict[str, bool]:
        return {
            "pdf_qa_extraction": self.has_model_credential,
            "document_ai_ocr": self.document_ai_configured,
            "vision": self.has_model_credential and self.llm_provider == "openai",
        }

    def validate(self) -> Tuple[List[str], List[str]]:
        """Return (errors, warnings) describing missing configuration."""
        errors: List[str] = []
        warnings: List[str] = []
        if not self.has_model_credential:
            errors.append("OPENAI_API_KEY is required for Q&A extraction functionality")
        if not self.gcp_project_id:
            warnings.append("GOOGLE_CLOUD_PROJECT_ID is not set - Document AI features will be disabled")
        if not self.docai_processor_id:
            warnings.append("GOOGLE_DOCUMENT_AI_PROCESSOR_ID is not set - Document AI features will be disabled")
        return errors, warnings

    def log_config_report(self) -> None:
        errors, warnings = self.validate()
        for w in warnings:
            logger.warning("Config: %s", w)
        for e in errors:
            logger.error("Config: %s", e)

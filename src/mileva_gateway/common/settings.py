"""Runtime configuration, read once from the environment at startup."""
from __future__ import annotations
import os
from dataclasses import dataclass, field

from mileva_gateway.common.model_map import ModelTable, load_model_table

OLLAMA_API_URL = "http://localhost:11434"
GEMINI_API_URL = "https://generativelanguage.googleapis.com"


@dataclass(frozen=True)
class Settings:
    port: int = 3000
    api_key: str | None = None
    gemini_api_key: str | None = None
    ollama_base_url: str = OLLAMA_API_URL
    gemini_base_url: str = GEMINI_API_URL
    log_level: str = "INFO"
    models: ModelTable = field(default_factory=ModelTable)

    @classmethod
    def from_env(cls) -> "Settings":
        models_file = os.getenv("MODELS_FILE")
        models = load_model_table(models_file) if models_file else ModelTable()
        return cls(
            port=int(os.getenv("PORT", "3000")),
            api_key=os.getenv("API_KEY") or None,
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            ollama_base_url=os.getenv("OLLAMA_API_URL", OLLAMA_API_URL).rstrip("/"),
            gemini_base_url=os.getenv("GEMINI_API_URL", GEMINI_API_URL).rstrip("/"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            models=models,
        )

from __future__ import annotations

from pathlib import Path

import pytest

from mileva_gateway.common.model_map import (
    DEFAULT_ALIASES,
    FALLBACK_TIMEOUT_MS,
    ModelTable,
    load_model_table,
)
from mileva_gateway.common.settings import Settings

REPO_ROOT = Path(__file__).resolve().parents[1]


def test_every_alias_maps_to_its_target() -> None:
    table = ModelTable()
    for alias, model in DEFAULT_ALIASES.items():
        assert table.resolve(alias) == model


@pytest.mark.parametrize("alias", ["claude-3", "", None, "LLAMA3.2:1B", "gpt-5"])
def test_unknown_alias_maps_to_default(alias: str | None) -> None:
    table = ModelTable()
    assert table.resolve(alias) == table.default_model


def test_local_model_ids_resolve_to_themselves() -> None:
    assert ModelTable().resolve("llama3.2:3b") == "llama3.2:3b"


def test_timeouts_follow_native_routes() -> None:
    table = ModelTable()
    assert table.timeout_ms("llama3.2:1b") == 60_000
    assert table.timeout_ms("llama3.2:3b") == 120_000
    assert table.timeout_ms("mistral:7b") == FALLBACK_TIMEOUT_MS


def test_example_yaml_matches_defaults() -> None:
    table = load_model_table(str(REPO_ROOT / "configs" / "models.example.yaml"))
    assert table == ModelTable()


def test_partial_yaml_keeps_other_defaults(tmp_path: Path) -> None:
    path = tmp_path / "models.yaml"
    path.write_text(
        "default_model: 'qwen2:7b'\n"
        "aliases:\n"
        "  gpt-4: 'qwen2:7b'\n",
        encoding="utf-8",
    )
    table = load_model_table(str(path))
    assert table.resolve("gpt-4") == "qwen2:7b"
    assert table.resolve("gpt-3.5-turbo") == "qwen2:7b"
    assert table.routes == ModelTable().routes


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("API_KEY", "k")
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("OLLAMA_API_URL", "http://gpu-box:11434/")
    monkeypatch.delenv("MODELS_FILE", raising=False)
    settings = Settings.from_env()
    assert settings.port == 8080
    assert settings.api_key == "k"
    assert settings.gemini_api_key is None
    assert settings.ollama_base_url == "http://gpu-box:11434"

"""Model alias table and per-model timeout policy.

Aliases resolve best-effort: anything not in the table maps to the default
model instead of failing.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any

import yaml

LOGGER = logging.getLogger("mileva.gateway.models")

DIAGNOSTIC_TIMEOUT_MS = 30_000
FALLBACK_TIMEOUT_MS = 180_000
CLOUD_TIMEOUT_MS = 120_000


@dataclass(frozen=True)
class ModelRoute:
    """One exposed generation route: ``POST /api/<alias>``."""

    alias: str
    model: str
    timeout_ms: int


DEFAULT_MODEL = "llama3.2:1b"

DEFAULT_ROUTES = (
    ModelRoute("llama32-1b", "llama3.2:1b", 60_000),
    ModelRoute("llama32-3b", "llama3.2:3b", 120_000),
    ModelRoute("llama31-8b", "llama3.1:8b", 180_000),
)

DEFAULT_ALIASES = {
    "gpt-3.5-turbo": "llama3.2:1b",
    "gpt-3.5-turbo-instruct": "llama3.2:1b",
    "gpt-4o-mini": "llama3.2:1b",
    "gpt-4": "llama3.2:3b",
    "gpt-4-turbo": "llama3.2:3b",
    "gpt-4o": "llama3.2:3b",
}

DEFAULT_CLOUD_ROUTES = (
    ModelRoute("gemini-flash", "gemini-1.5-flash", CLOUD_TIMEOUT_MS),
    ModelRoute("gemini-pro", "gemini-1.5-pro", CLOUD_TIMEOUT_MS),
)


@dataclass(frozen=True)
class ModelTable:
    routes: tuple[ModelRoute, ...] = DEFAULT_ROUTES
    aliases: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ALIASES))
    default_model: str = DEFAULT_MODEL
    cloud_routes: tuple[ModelRoute, ...] = DEFAULT_CLOUD_ROUTES

    def resolve(self, alias: str | None) -> str:
        """Map an externally visible model name to a local model id."""
        if alias in self.aliases:
            return self.aliases[alias]
        if alias in self.local_models():
            return alias
        LOGGER.info("Unknown model alias %r, using default %s", alias, self.default_model)
        return self.default_model

    def timeout_ms(self, model: str) -> int:
        """Budget of the native route serving ``model``."""
        for route in self.routes:
            if route.model == model:
                return route.timeout_ms
        return FALLBACK_TIMEOUT_MS

    def local_models(self) -> list[str]:
        seen: list[str] = []
        for model in [r.model for r in self.routes] + list(self.aliases.values()) + [self.default_model]:
            if model not in seen:
                seen.append(model)
        return seen

    def public_ids(self) -> list[str]:
        """Every id ``/v1/models`` advertises: aliases first, then local models."""
        return list(self.aliases) + [m for m in self.local_models() if m not in self.aliases]


def _parse_routes(items: list[dict[str, Any]], default_timeout: int) -> tuple[ModelRoute, ...]:
    return tuple(
        ModelRoute(
            alias=str(item["alias"]),
            model=str(item["model"]),
            timeout_ms=int(item.get("timeout_ms", default_timeout)),
        )
        for item in items
    )


def load_model_table(path: str) -> ModelTable:
    """
    Load a model table from YAML.

    Missing sections keep their built-in defaults.

    Args:
        path: YAML file with ``default_model``, ``routes``, ``aliases``
            and ``cloud_routes`` keys.
    """
    with open(path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}

    routes = DEFAULT_ROUTES
    if "routes" in cfg:
        routes = _parse_routes(cfg["routes"] or [], FALLBACK_TIMEOUT_MS)
    cloud_routes = DEFAULT_CLOUD_ROUTES
    if "cloud_routes" in cfg:
        cloud_routes = _parse_routes(cfg["cloud_routes"] or [], CLOUD_TIMEOUT_MS)
    aliases = dict(DEFAULT_ALIASES)
    if "aliases" in cfg:
        aliases = {str(k): str(v) for k, v in (cfg["aliases"] or {}).items()}

    return ModelTable(
        routes=routes,
        aliases=aliases,
        default_model=str(cfg.get("default_model", DEFAULT_MODEL)),
        cloud_routes=cloud_routes,
    )

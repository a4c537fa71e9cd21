"""Backend catalog loader (``backends.yaml``)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from taskflow.models.registry import DEFAULT_COST_PER_TOKEN, BackendSpec

from .settings import OrchestratorSettings

LOGGER = logging.getLogger(__name__)


class BackendConfig:
    """Backend catalog plus routing choices.

    Environment settings that were set explicitly win over the file; file
    values win over built-in defaults.
    """

    def __init__(self, settings: OrchestratorSettings, config_path: Optional[Path] = None):
        self.settings = settings
        self.config_path = config_path if config_path is not None else (
            Path(settings.backends_file) if settings.backends_file else None
        )
        self.config = self._load_config()

    def _load_config(self) -> dict:
        if self.config_path is None or not self.config_path.exists():
            if self.config_path is not None:
                LOGGER.info(f"Backends config not found: {self.config_path}, using environment settings")
            return self._default_config()

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            LOGGER.error(f"Failed to load backends config: {e}, using environment settings")
            return self._default_config()

        if not config.get("backends"):
            LOGGER.warning(f"No backends listed in {self.config_path}, using environment settings")
            return self._default_config()

        LOGGER.info(f"Loaded backends configuration from {self.config_path}")
        return config

    def _default_config(self) -> dict:
        return {
            "backends": [
                {
                    "id": self.settings.primary_backend,
                    "model": self.settings.model_id,
                    "base_url": self.settings.model_base_url,
                    "api_key": self.settings.model_api_key,
                }
            ]
        }

    def _choice(self, field: str, key: str, default: Any) -> Any:
        if field in self.settings.model_fields_set:
            return getattr(self.settings, field)
        return self.config.get(key, default)

    def specs(self) -> List[BackendSpec]:
        specs = []
        for entry in self.config.get("backends", []):
            specs.append(
                BackendSpec(
                    backend_id=str(entry["id"]),
                    model_id=str(entry.get("model") or entry["id"]),
                    cost_per_token=float(entry.get("cost_per_token", DEFAULT_COST_PER_TOKEN)),
                    base_url=entry.get("base_url"),
                    api_key_env=entry.get("api_key_env"),
                    temperature=float(entry.get("temperature", 0.2)),
                )
            )
        return specs

    def inline_api_keys(self) -> Dict[str, str]:
        """Keys given directly in the catalog (used by the env-derived default)."""
        return {
            str(entry["id"]): entry["api_key"]
            for entry in self.config.get("backends", [])
            if entry.get("api_key")
        }

    @property
    def primary(self) -> str:
        ids = [spec.backend_id for spec in self.specs()]
        primary = self._choice("primary_backend", "primary", ids[0] if ids else self.settings.primary_backend)
        return str(primary)

    @property
    def fallbacks(self) -> List[str]:
        return [str(item) for item in self._choice("fallback_backends", "fallback", []) or []]

    @property
    def strategy(self) -> str:
        return str(self._choice("strategy", "strategy", self.settings.strategy))


__all__ = ["BackendConfig"]

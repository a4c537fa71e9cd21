"""Turn backend specs into ChatOpenAI-backed gateways."""

from __future__ import annotations

import logging
import os
from typing import Dict, Iterable, Optional

from langchain_openai import ChatOpenAI

from taskflow.models.gateway import LangChainGateway
from taskflow.models.registry import BackendRegistry, BackendSpec

LOGGER = logging.getLogger(__name__)


def _env(*names: str) -> Optional[str]:
    for name in names:
        if name and os.getenv(name):
            return os.getenv(name)
    return None


def _api_key_for(spec: BackendSpec, inline_keys: Dict[str, str]) -> Optional[str]:
    env_prefix = spec.backend_id.upper().replace("-", "_")
    return inline_keys.get(spec.backend_id) or _env(
        spec.api_key_env or "",
        f"{env_prefix}_API_KEY",
        "MODEL_API_KEY",
        "OPENAI_API_KEY",
    )


def _chat_kwargs(spec: BackendSpec, api_key: Optional[str]) -> Dict[str, object]:
    if not api_key:
        raise RuntimeError(f"Missing API key for backend '{spec.backend_id}', configure it in .env")
    kwargs: Dict[str, object] = {
        "model": spec.model_id,
        "api_key": api_key,
        "temperature": spec.temperature,
    }
    if spec.base_url:
        kwargs["base_url"] = spec.base_url
    return kwargs


def build_backend_registry(
    specs: Iterable[BackendSpec],
    inline_keys: Optional[Dict[str, str]] = None,
) -> BackendRegistry:
    """Register a LangChainGateway for every spec that has credentials."""
    registry = BackendRegistry()
    for spec in specs:
        try:
            client = ChatOpenAI(**_chat_kwargs(spec, _api_key_for(spec, inline_keys or {})))
        except RuntimeError as e:
            LOGGER.warning(f"Skipping backend: {e}")
            continue
        registry.register(spec, LangChainGateway(spec.backend_id, client, model_name=spec.model_id))
        LOGGER.info(f"Registered backend {spec.backend_id} ({spec.model_id})")
    return registry


__all__ = ["build_backend_registry"]

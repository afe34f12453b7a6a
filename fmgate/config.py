# SPDX-License-Identifier: Apache-2.0
"""
Server configuration.

The model table (model name -> engine instance) is built once at startup
and never mutated afterwards; request handlers receive it through
``ServerConfig`` rather than a module-level global.

Model table file format (YAML)::

    models:
      base:
        engine: echo
      permissive:
        engine: echo
        guardrails: permissive
      my-model:
        engine: my_package.engines:MyEngine
        some_option: 42
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from .engine import BaseEngine, load_engine

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "base"

# Models that are always served
DEFAULT_MODEL_SPECS: dict[str, dict[str, Any]] = {
    "base": {"engine": "echo", "guardrails": "default"},
    "permissive": {"engine": "echo", "guardrails": "permissive"},
}


@dataclass(frozen=True)
class ServerConfig:
    """Immutable, process-wide server settings."""

    models: Mapping[str, BaseEngine]
    default_model: str = DEFAULT_MODEL
    timeout: float = 300.0  # seconds, non-streaming requests
    stream_poll_interval: float = 0.5  # seconds between disconnect checks

    def __post_init__(self) -> None:
        if not isinstance(self.models, MappingProxyType):
            object.__setattr__(self, "models", MappingProxyType(dict(self.models)))
        if self.default_model not in self.models:
            raise ValueError(f"Default model {self.default_model!r} is not configured")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")

    @property
    def model_names(self) -> list[str]:
        return list(self.models)

    def get_engine(self, name: str) -> BaseEngine | None:
        return self.models.get(name)


def read_model_specs(path: str | Path) -> dict[str, dict[str, Any]]:
    """
    Read model specs from a YAML file, merged over the defaults.

    Raises:
        ValueError: If the file does not have the expected shape.
    """
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in model config {path}: {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"Model config {path} must be a mapping")

    models = raw.get("models") or {}
    if not isinstance(models, dict):
        raise ValueError(f"`models` in {path} must be a mapping of name -> spec")

    specs = {name: dict(spec) for name, spec in DEFAULT_MODEL_SPECS.items()}
    for name, spec in models.items():
        if spec is None:
            spec = {}
        if not isinstance(spec, dict):
            raise ValueError(f"Spec for model {name!r} in {path} must be a mapping")
        specs[str(name)] = dict(spec)
    return specs


def load_model_table(
    specs: Mapping[str, dict[str, Any]] | None = None,
) -> dict[str, BaseEngine]:
    """Instantiate one engine per model spec."""
    specs = specs if specs is not None else DEFAULT_MODEL_SPECS
    return {name: load_engine(name, spec) for name, spec in specs.items()}


def build_server_config(
    models_config: str | Path | None = None,
    timeout: float = 300.0,
    stream_poll_interval: float = 0.5,
) -> ServerConfig:
    """Build the startup configuration, optionally from a model table file."""
    specs = read_model_specs(models_config) if models_config else dict(DEFAULT_MODEL_SPECS)
    models = load_model_table(specs)
    logger.info(f"Serving models: {', '.join(models)}")
    return ServerConfig(
        models=models,
        timeout=timeout,
        stream_poll_interval=stream_poll_interval,
    )

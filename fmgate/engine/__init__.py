# SPDX-License-Identifier: Apache-2.0
"""
Generation engines and the registry used to construct them from config.

Engines are referred to by a short kind (``echo``) registered with
``register_engine``, or by a ``"package.module:ClassName"`` import path.
"""

import importlib
import logging
from collections.abc import Callable
from typing import Any

from .base import (
    BaseEngine,
    EngineResult,
    ExceededContextWindowSize,
    GenerationError,
    GenerationOptions,
    GuardrailViolation,
    SamplingMode,
    ToolInvocation,
    ToolSpec,
)
from .content import ContentDecodingError, GeneratedContent
from .schema import GenerationGuide, GenerationSchema, SchemaProperty

logger = logging.getLogger(__name__)

_ENGINE_REGISTRY: dict[str, type[BaseEngine]] = {}


def register_engine(kind: str) -> Callable[[type[BaseEngine]], type[BaseEngine]]:
    """Class decorator registering an engine under ``kind``."""

    def _register(cls: type[BaseEngine]) -> type[BaseEngine]:
        if kind in _ENGINE_REGISTRY:
            raise KeyError(f"Engine kind {kind!r} is already registered")
        _ENGINE_REGISTRY[kind] = cls
        return cls

    return _register


def list_engines() -> list[str]:
    return sorted(_ENGINE_REGISTRY)


def get_engine_class(kind: str) -> type[BaseEngine]:
    """Resolve an engine kind or ``module:Class`` import path to a class."""
    if kind in _ENGINE_REGISTRY:
        return _ENGINE_REGISTRY[kind]

    if ":" not in kind:
        raise KeyError(
            f"Unknown engine {kind!r}. Registered engines: {', '.join(list_engines())}"
        )

    module_name, _, attr = kind.partition(":")
    module = importlib.import_module(module_name)
    cls = getattr(module, attr, None)
    if not isinstance(cls, type) or not issubclass(cls, BaseEngine):
        raise KeyError(f"{kind!r} does not name a BaseEngine subclass")
    return cls


def load_engine(name: str, spec: dict[str, Any]) -> BaseEngine:
    """
    Instantiate an engine from a config entry.

    Args:
        name: Model name the engine is served under.
        spec: Mapping with an ``engine`` key (kind or import path); all
            other keys are passed to the engine constructor.
    """
    spec = dict(spec)
    kind = spec.pop("engine", "echo")
    cls = get_engine_class(kind)
    engine = cls(name=name, **spec)
    logger.info(f"Loaded engine {engine!r} for model {name!r}")
    return engine


# Built-in engines register themselves on import
from . import echo  # noqa: E402,F401

__all__ = [
    "BaseEngine",
    "ContentDecodingError",
    "EngineResult",
    "ExceededContextWindowSize",
    "GeneratedContent",
    "GenerationError",
    "GenerationGuide",
    "GenerationOptions",
    "GenerationSchema",
    "GuardrailViolation",
    "SamplingMode",
    "SchemaProperty",
    "ToolInvocation",
    "ToolSpec",
    "get_engine_class",
    "list_engines",
    "load_engine",
    "register_engine",
]

# SPDX-License-Identifier: Apache-2.0
"""
Structured content produced by an engine under a GenerationSchema.

GeneratedContent is opaque to callers: values are read back only through
typed extraction (``value(str)``, ``value(list[int], for_property="ids")``),
which raises ContentDecodingError when the stored value is not of the
requested type. Partial content (from a streaming snapshot) simply lacks
the properties the engine has not produced yet.
"""

import json
import typing
from typing import Any

_SCALAR_TYPES = (str, int, float, bool)


class ContentDecodingError(ValueError):
    """Raised when generated content cannot be read as the requested type."""


class GeneratedContent:
    """Opaque engine output with typed accessors."""

    __slots__ = ("_raw",)

    def __init__(self, raw: Any):
        if isinstance(raw, GeneratedContent):
            raw = raw._raw
        self._raw = raw

    @classmethod
    def from_json(cls, text: str) -> "GeneratedContent":
        return cls(json.loads(text))

    def value(self, type_: Any, for_property: str | None = None) -> Any:
        """
        Extract the content (or one of its properties) as ``type_``.

        Args:
            type_: str, int, float, bool, GeneratedContent or list[T]
                where T is any of those.
            for_property: Read this property of an object instead of the
                content itself.

        Raises:
            ContentDecodingError: If the property is missing or the value
                is not convertible to ``type_``.
        """
        raw = self._raw
        if for_property is not None:
            if not isinstance(raw, dict):
                raise ContentDecodingError(
                    f"Cannot read property {for_property!r} of non-object content"
                )
            if for_property not in raw:
                raise ContentDecodingError(f"Missing property {for_property!r}")
            raw = raw[for_property]
        return _convert(raw, type_)

    def elements(self, for_property: str | None = None) -> list["GeneratedContent"]:
        """Return the items of array content, each wrapped as content."""
        raw = self._raw
        if for_property is not None:
            if not isinstance(raw, dict) or for_property not in raw:
                raise ContentDecodingError(f"Missing property {for_property!r}")
            raw = raw[for_property]
        if not isinstance(raw, list):
            raise ContentDecodingError(f"Expected array, got {type(raw).__name__}")
        return [GeneratedContent(element) for element in raw]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GeneratedContent):
            return NotImplemented
        return self._raw == other._raw

    def __repr__(self) -> str:
        return f"GeneratedContent({self._raw!r})"


def _convert(raw: Any, type_: Any) -> Any:
    if typing.get_origin(type_) is list:
        (element_type,) = typing.get_args(type_)
        if not isinstance(raw, list):
            raise ContentDecodingError(f"Expected array, got {type(raw).__name__}")
        return [_convert(element, element_type) for element in raw]

    if type_ is GeneratedContent:
        if not isinstance(raw, dict):
            raise ContentDecodingError(f"Expected object, got {type(raw).__name__}")
        return GeneratedContent(raw)

    if type_ not in _SCALAR_TYPES:
        raise TypeError(f"Unsupported content type: {type_!r}")

    # bool is a subclass of int; keep the kinds apart
    if type_ is bool:
        if isinstance(raw, bool):
            return raw
    elif isinstance(raw, bool):
        pass
    elif type_ is int:
        if isinstance(raw, int):
            return raw
    elif type_ is float:
        if isinstance(raw, (int, float)):
            return float(raw)
    elif type_ is str:
        if isinstance(raw, str):
            return raw
    raise ContentDecodingError(
        f"Expected {type_.__name__}, got {type(raw).__name__}"
    )

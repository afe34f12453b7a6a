# SPDX-License-Identifier: Apache-2.0
"""
Client-side check of a running gateway's model table.

``fetch_catalog`` reads ``GET /api/v1/models`` and verifies what fmgate
promises about it: a ``list`` envelope of ``model`` entries with unique
ids that include the always-served models (``base`` and ``permissive``).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import requests
from pydantic import ValidationError

from .api.models import ModelsResponse
from .config import DEFAULT_MODEL_SPECS

MODELS_PATH = "/api/v1/models"

# Served by every gateway regardless of its model table file
DEFAULT_MODEL_IDS: tuple[str, ...] = tuple(DEFAULT_MODEL_SPECS)


class ModelsContractError(RuntimeError):
    """The models endpoint is unreachable or its answer breaks the contract."""


@dataclass(frozen=True)
class ModelCatalog:
    """Model ids served by one gateway, in server order."""

    ids: tuple[str, ...]

    def __contains__(self, model_id: object) -> bool:
        return model_id in self.ids

    def missing(self, required: Iterable[str] = DEFAULT_MODEL_IDS) -> list[str]:
        return [model_id for model_id in required if model_id not in self.ids]


def models_endpoint(base_url: str) -> str:
    """Accept a server root, an ``/api/v1`` prefix or the endpoint itself."""
    url = base_url.rstrip("/")
    if url.endswith(MODELS_PATH):
        return url
    if url.endswith("/api/v1"):
        url = url[: -len("/api/v1")]
    return f"{url}{MODELS_PATH}"


def read_catalog(payload: Any) -> ModelCatalog:
    """
    Build a catalog from a decoded models response.

    Raises:
        ModelsContractError: On a wrong envelope, an entry that is not a
            ``model``, or a model id listed twice.
    """
    if not isinstance(payload, dict):
        raise ModelsContractError("models response is not a JSON object")
    try:
        listing = ModelsResponse.model_validate(payload)
    except ValidationError as exc:
        raise ModelsContractError(f"malformed models response: {exc}") from exc

    if listing.object != "list":
        raise ModelsContractError(f"expected object 'list', got {listing.object!r}")

    ids: list[str] = []
    for position, entry in enumerate(listing.data):
        if entry.object != "model":
            raise ModelsContractError(
                f"entry {position} ({entry.id!r}) has object {entry.object!r}, expected 'model'"
            )
        if entry.id in ids:
            raise ModelsContractError(f"model id {entry.id!r} is listed more than once")
        ids.append(entry.id)
    return ModelCatalog(ids=tuple(ids))


def fetch_catalog(
    base_url: str,
    timeout: float = 5.0,
    required: Iterable[str] = DEFAULT_MODEL_IDS,
) -> ModelCatalog:
    """
    Fetch the model table of a running gateway.

    Raises:
        ModelsContractError: If the request fails, the answer is malformed,
            or any of ``required`` is not served.
    """
    url = models_endpoint(base_url)
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as exc:
        raise ModelsContractError(f"GET {url} failed: {exc}") from exc

    if response.status_code != 200:
        raise ModelsContractError(f"GET {url} answered {response.status_code}: {response.text}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise ModelsContractError(f"GET {url} did not return JSON") from exc

    catalog = read_catalog(payload)
    missing = catalog.missing(required)
    if missing:
        raise ModelsContractError(f"{url} does not serve required models: {', '.join(missing)}")
    return catalog

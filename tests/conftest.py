# SPDX-License-Identifier: Apache-2.0
"""Shared fixtures: a scripted engine and server configuration."""

import asyncio

import pytest

from fmgate.config import ServerConfig
from fmgate.engine import BaseEngine, EngineResult


class ScriptedEngine(BaseEngine):
    """
    Engine returning preconfigured results.

    ``result`` is returned by ``respond``; ``snapshots`` are yielded by
    ``stream_response``. ``error`` is raised by ``respond``, or by the
    stream after ``fail_after`` snapshots. Every call is recorded.
    """

    def __init__(
        self,
        name: str = "scripted",
        result: EngineResult | None = None,
        snapshots: list[EngineResult] | None = None,
        error: BaseException | None = None,
        fail_after: int = 0,
        delay: float = 0.0,
    ):
        super().__init__(name=name)
        self.result = result or EngineResult(text="ok")
        self.snapshots = snapshots or []
        self.error = error
        self.fail_after = fail_after
        self.delay = delay
        self.calls: list[dict] = []
        self.stream_closed = False

    async def respond(self, prompt, **kwargs):
        self.calls.append({"prompt": prompt, **kwargs})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result

    async def stream_response(self, prompt, **kwargs):
        self.calls.append({"prompt": prompt, **kwargs})
        try:
            for i, snapshot in enumerate(self.snapshots):
                if self.error is not None and i == self.fail_after:
                    raise self.error
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield snapshot
            if self.error is not None and self.fail_after >= len(self.snapshots):
                raise self.error
        finally:
            self.stream_closed = True


@pytest.fixture
def scripted_engine():
    return ScriptedEngine()


@pytest.fixture
def server_config(scripted_engine):
    return ServerConfig(
        models={"base": scripted_engine, "permissive": ScriptedEngine(name="permissive")},
        timeout=5.0,
        stream_poll_interval=0.05,
    )


@pytest.fixture
def make_engine():
    """Factory for ScriptedEngine instances."""
    return ScriptedEngine

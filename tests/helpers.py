"""Shared test doubles and builders."""

import asyncio
import json

from taletree.llm import GenerationError
from taletree.models import SceneData, Session


class StubNarrator:
    """Returns canned scenes (or raises canned errors) in order.

    Each call records a deep copy of the session it was given together with
    the choice, so tests can assert on what the controller sent.
    """

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls: list[tuple[Session, str | None]] = []

    def queue(self, *responses) -> None:
        self.responses.extend(responses)

    async def generate(self, session: Session, choice: str | None) -> SceneData:
        self.calls.append((session.model_copy(deep=True), choice))
        if not self.responses:
            raise AssertionError("StubNarrator ran out of responses")
        response = self.responses.pop(0)
        if isinstance(response, GenerationError):
            raise response
        return response


class GatedNarrator:
    """Blocks every generate() call until release() is called."""

    def __init__(self, result=None) -> None:
        self.result = result or scene(title="Gated")
        self.gate = asyncio.Event()
        self.calls = 0

    def release(self) -> None:
        self.gate.set()

    async def generate(self, session, choice):
        self.calls += 1
        await self.gate.wait()
        return self.result


def scene(story: str = "The corridor hums.", options=("Go left", "Go right"), title=None) -> SceneData:
    return SceneData(story=story, options=list(options), title=title)


def envelope(text: str) -> str:
    """Wrap generated text in a generateContent response body."""
    return json.dumps({"candidates": [{"content": {"parts": [{"text": text}]}}]})

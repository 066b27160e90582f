"""Narrative client — HTTP connection to the text-generation backend.

The controller injects a narrator matching the protocol:

    async def generate(self, session: Session, choice: str | None) -> SceneData: ...

`choice` is the option the user just picked, or None for the opening scene.

GeminiNarrator is the production implementation. It builds the prompt,
posts it to a Gemini-style `generateContent` endpoint and turns the reply
into a SceneData. Tests use StubNarrator (defined in the test helpers)
instead.

Every failure is raised as a GenerationError carrying one of the kinds in
GenerationErrorKind. Nothing is retried.
"""

from __future__ import annotations

import json
import logging
import re
from enum import Enum
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from taletree.models import SceneData, Session
from taletree.prompts import build_prompt

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol — every narrator implementation must match this signature
# ---------------------------------------------------------------------------

class Narrator(Protocol):
    async def generate(self, session: Session, choice: str | None) -> SceneData: ...


# ---------------------------------------------------------------------------
# GenerationError — raised for all transport and protocol failures
# ---------------------------------------------------------------------------

class GenerationErrorKind(str, Enum):
    TRANSPORT = "transport"   # non-2xx, connection refused, timeout
    EMPTY = "empty"           # blank response body
    PROTOCOL = "protocol"     # envelope lacks generated text
    MALFORMED = "malformed"   # generated text is not the expected JSON


class GenerationError(RuntimeError):
    """Raised when a scene cannot be generated. str(e) is user-presentable."""

    def __init__(self, kind: GenerationErrorKind, detail: str) -> None:
        super().__init__(detail)
        self.kind = kind
        self.detail = detail


# ---------------------------------------------------------------------------
# Response normalisation
# ---------------------------------------------------------------------------

_LEADING_FENCE = re.compile(r"^\s*```[\w-]*[ \t]*\n?")
_TRAILING_FENCE = re.compile(r"\n?[ \t]*```\s*$")


def strip_code_fences(text: str) -> str:
    """Remove one optional leading and one trailing markdown fence, then trim.

    '```json\\n{"a": 1}\\n```' → '{"a": 1}'
    '{"a": 1}'                 → '{"a": 1}'
    """
    text = _LEADING_FENCE.sub("", text, count=1)
    text = _TRAILING_FENCE.sub("", text, count=1)
    return text.strip()


def extract_text(envelope: Any) -> str:
    """Pull candidates[0].content.parts[0].text out of a response envelope."""
    try:
        text = envelope["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise GenerationError(
            GenerationErrorKind.PROTOCOL, "Failed to generate content"
        ) from e
    if not isinstance(text, str):
        raise GenerationError(GenerationErrorKind.PROTOCOL, "Failed to generate content")
    return text


def parse_scene(text: str) -> SceneData:
    """Parse the cleaned model output as a {title?, story, options} object."""
    try:
        return SceneData.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValidationError) as e:
        raise GenerationError(
            GenerationErrorKind.MALFORMED, "Received malformed data."
        ) from e


# ---------------------------------------------------------------------------
# GeminiNarrator — connects to a real backend
# ---------------------------------------------------------------------------

class GeminiNarrator:
    """Async HTTP client for the Gemini `generateContent` endpoint.

    Request:  POST {base_url}/v1beta/models/{model}:generateContent?key=...
              {"contents": [{"parts": [{"text": prompt}]}],
               "generationConfig": {"responseMimeType": "application/json"}}
    Response: {"candidates": [{"content": {"parts": [{"text": "..."}]}}]}

    Args:
        api_key:  Backend credential. Empty means every call fails.
        model:    Model name used in the URL path.
        base_url: Backend origin, e.g. "https://generativelanguage.googleapis.com".
        timeout:  HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://generativelanguage.googleapis.com",
        timeout: float = 120.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @property
    def url(self) -> str:
        return f"{self._base_url}/v1beta/models/{self._model}:generateContent"

    def _build_body(self, prompt: str) -> dict:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }

    async def _post(self, prompt: str) -> httpx.Response:
        if not self._api_key:
            raise GenerationError(
                GenerationErrorKind.TRANSPORT, "API Error: no API key configured"
            )
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.post(
                    self.url,
                    params={"key": self._api_key},
                    json=self._build_body(prompt),
                    headers={"Content-Type": "application/json"},
                )
        except httpx.ConnectError as e:
            raise GenerationError(
                GenerationErrorKind.TRANSPORT,
                f"Cannot connect to generation backend at {self._base_url}",
            ) from e
        except httpx.TimeoutException as e:
            raise GenerationError(
                GenerationErrorKind.TRANSPORT,
                f"Generation backend timed out after {self._timeout}s",
            ) from e

    async def generate(self, session: Session, choice: str | None) -> SceneData:
        prompt = build_prompt(session, choice)
        logger.debug(
            "generate chapter=%d scene=%d prompt_len=%d",
            session.progress.chapter, session.progress.scene, len(prompt),
        )

        resp = await self._post(prompt)
        body = resp.text
        if not 200 <= resp.status_code < 300:
            raise GenerationError(
                GenerationErrorKind.TRANSPORT,
                f"API Error {resp.status_code}: {body[:100]}",
            )
        if not body or not body.strip():
            raise GenerationError(GenerationErrorKind.EMPTY, "Empty response")

        try:
            envelope = json.loads(body)
        except json.JSONDecodeError as e:
            raise GenerationError(
                GenerationErrorKind.PROTOCOL, "Failed to generate content"
            ) from e

        scene = parse_scene(strip_code_fences(extract_text(envelope)))
        logger.debug("generate story_len=%d options=%d", len(scene.story), len(scene.options))
        return scene

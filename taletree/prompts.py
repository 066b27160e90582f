"""Handlebars prompt templates for the narrative backend."""

from collections.abc import Callable
from typing import Any

import pybars

from taletree.models import CHAR_TARGET, CONTEXT_WINDOW, MAX_CHAPTERS, SCENES_PER_CHAPTER, Session

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}} — iterate over the last N items."""
    result = []
    for item in list(items)[-int(count):]:
        result.extend(options["fn"](item))
    return result


_HELPERS: dict[str, Callable] = {
    "last": _helper_last,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Templates ────────────────────────────────────────────

OPENING_TEMPLATE = """You are an interactive storyteller.
Genre: {{{genre}}}.
Task: Write the opening scene (Chapter 1, Scene 1) of a story.
Length: Approximately {{char_target}} characters.
Format: Valid JSON.
Structure:
{
  "title": "A short, creative title for this story",
  "story": "The narrative text...",
  "options": ["Choice A text", "Choice B text"]
}
Make the story engaging, descriptive, and immersive."""

CONTINUATION_TEMPLATE = """Continue the story.
Genre: {{{genre}}}.
Current Progress: Chapter {{chapter}}, Scene {{scene}}.
Previous Context Summary: {{#last history context_window}}{{{text}}} {{/last}}...
The user just chose: "{{{choice}}}".

{{#if finale}}Write the GRAND FINALE (Chapter {{max_chapters}}, Scene {{scenes_per_chapter}}). Wrap up the story based on choices. Length: {{char_target}} chars. Provide NO options, pass an empty array.{{else}}Write the next scene. Length: {{char_target}} chars. Provide 2 distinct choices for the protagonist.{{/if}}

Output STRICT JSON:
{
  "story": "The narrative text...",
  "options": {{#if finale}}[]{{else}}["Choice A", "Choice B"]{{/if}}
}"""


def build_context(session: Session, choice: str | None) -> dict[str, Any]:
    """Assemble the template context for the next scene of a session."""
    return {
        "genre": session.genre.label if session.genre else "",
        "chapter": session.progress.chapter,
        "scene": session.progress.scene,
        "finale": session.progress.is_finale,
        "history": [entry.model_dump() for entry in session.history],
        "context_window": CONTEXT_WINDOW,
        "choice": choice or "",
        "char_target": CHAR_TARGET,
        "max_chapters": MAX_CHAPTERS,
        "scenes_per_chapter": SCENES_PER_CHAPTER,
    }


def build_prompt(session: Session, choice: str | None) -> str:
    """Opening prompt for an empty transcript, continuation prompt otherwise."""
    template = OPENING_TEMPLATE if not session.history else CONTINUATION_TEMPLATE
    return render_prompt(template, build_context(session, choice))

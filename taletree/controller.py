"""Session controller — the story state machine.

Phases and the only legal moves between them:

    loading_save → welcome | playing      bootstrap()
    welcome      → generating             select_genre()
    generating   → playing | error        scene arrived / generation failed
    playing      → generating             choose_option()
    playing      → welcome                confirm_quit()
    error        → welcome                restart()
    generating   → welcome                confirm_quit() while a scene is pending

Every entry into `playing` or `error` writes a snapshot. At most one
generation is in flight: select_genre() and choose_option() are only legal
outside `generating`. Each generation carries an id; a result that arrives
after the session was reset is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from taletree.llm import GenerationError, Narrator
from taletree.models import (
    Genre,
    HistoryEntry,
    SceneData,
    Session,
    SessionPhase,
    Snapshot,
    loading_messages_for,
)
from taletree.storage import SessionStore

logger = logging.getLogger(__name__)

LOADING_ROTATE_INTERVAL = 2.0

_TRANSITIONS: dict[SessionPhase, set[SessionPhase]] = {
    SessionPhase.LOADING_SAVE: {SessionPhase.WELCOME, SessionPhase.PLAYING},
    SessionPhase.WELCOME: {SessionPhase.GENERATING},
    SessionPhase.GENERATING: {SessionPhase.PLAYING, SessionPhase.ERROR, SessionPhase.WELCOME},
    SessionPhase.PLAYING: {SessionPhase.GENERATING, SessionPhase.WELCOME},
    SessionPhase.ERROR: {SessionPhase.WELCOME},
}

_PERSISTED = {SessionPhase.PLAYING, SessionPhase.ERROR}


class InvalidTransition(RuntimeError):
    """Raised when an operation is invoked in a phase that does not allow it."""


Listener = Callable[["SessionController"], None]


class SessionController:
    """Owns the Session and drives it through its phases.

    Args:
        narrator:        Produces the next scene for a session.
        store:           Where snapshots are saved and restored.
        rotate_interval: Seconds between loading-message changes.
    """

    def __init__(
        self,
        narrator: Narrator,
        store: SessionStore,
        rotate_interval: float = LOADING_ROTATE_INTERVAL,
    ) -> None:
        self._narrator = narrator
        self._store = store
        self._rotate_interval = rotate_interval

        self.phase = SessionPhase.LOADING_SAVE
        self.session = Session()
        self.options_revealed = False
        self.quit_confirm_pending = False
        self.last_error: str | None = None
        self.loading_message = ""
        self.generation = 0

        self._pending: asyncio.Task | None = None
        self._loading_task: asyncio.Task | None = None
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener` after every state change. Returns an unsubscribe."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    @property
    def is_ending(self) -> bool:
        current = self.session.current
        return current is not None and not current.options

    @property
    def available_options(self) -> list[str]:
        """Choices the presentation layer may offer right now."""
        if self.phase is not SessionPhase.PLAYING or not self.options_revealed:
            return []
        return list(self.session.current.options) if self.session.current else []

    def state(self) -> dict[str, Any]:
        """A plain-data view of everything a presentation layer renders."""
        session = self.session
        return {
            "phase": self.phase.value,
            "genre": session.genre.model_dump() if session.genre else None,
            "title": session.title,
            "chapter": session.progress.chapter,
            "scene": session.progress.scene,
            "history": [entry.model_dump() for entry in session.history],
            "story": session.current.story if session.current else None,
            "options": self.available_options,
            "options_revealed": self.options_revealed,
            "is_ending": self.is_ending,
            "quit_confirm_pending": self.quit_confirm_pending,
            "last_error": self.last_error,
            "loading_message": self.loading_message,
        }

    # ------------------------------------------------------------------
    # Phase changes
    # ------------------------------------------------------------------

    def _require(self, *phases: SessionPhase) -> None:
        if self.phase not in phases:
            allowed = ", ".join(p.value for p in phases)
            raise InvalidTransition(f"Not allowed while {self.phase.value} (needs {allowed})")

    def _transition(self, phase: SessionPhase) -> None:
        if phase not in _TRANSITIONS[self.phase]:
            raise InvalidTransition(f"Cannot go from {self.phase.value} to {phase.value}")
        previous, self.phase = self.phase, phase
        logger.info("phase %s → %s", previous.value, phase.value)

        if previous is SessionPhase.GENERATING:
            self._stop_loading()
        if phase is SessionPhase.GENERATING:
            self._start_loading()
        if phase in _PERSISTED:
            try:
                self._store.save(Snapshot.from_session(phase, self.session))
            except OSError:
                logger.exception("Could not save session")
        self._notify()

    def bootstrap(self) -> None:
        """Restore an in-progress session from storage, else go to welcome.

        Runs once; later calls do nothing.
        """
        if self.phase is not SessionPhase.LOADING_SAVE:
            return
        snapshot = self._store.load()
        if snapshot is None or not snapshot.resumable:
            # corrupt, finished or aborted sessions are never resumed
            self._store.clear()
            self._transition(SessionPhase.WELCOME)
            return

        self.session = snapshot.to_session()
        self.options_revealed = True
        logger.info(
            "resumed %r at chapter %d scene %d",
            self.session.title, self.session.progress.chapter, self.session.progress.scene,
        )
        self._transition(SessionPhase.PLAYING)

    def select_genre(self, genre: Genre) -> asyncio.Task:
        """Start a new story in `genre`. Returns the pending generation task."""
        self._require(SessionPhase.WELCOME)
        self.session = Session(genre=genre)
        self.last_error = None
        self.options_revealed = False
        self.quit_confirm_pending = False
        self._transition(SessionPhase.GENERATING)
        return self._spawn(None)

    def choose_option(self, option: str) -> asyncio.Task:
        """Commit to one of the revealed options and generate the next scene."""
        self._require(SessionPhase.PLAYING)
        if not self.options_revealed:
            raise InvalidTransition("Options have not been revealed yet")
        current = self.session.current
        if current is None or not current.options:
            raise InvalidTransition("The story has ended; there is nothing to choose")
        if option not in current.options:
            raise ValueError(f"Unknown option: {option!r}")

        self.session.progress = self.session.progress.next()
        self.session.history.append(HistoryEntry(role="user", text=option))
        self.options_revealed = False
        self.quit_confirm_pending = False
        self._transition(SessionPhase.GENERATING)
        return self._spawn(option)

    def _spawn(self, option: str | None) -> asyncio.Task:
        self.generation += 1
        self._pending = asyncio.get_running_loop().create_task(
            self._advance(option, self.generation)
        )
        return self._pending

    async def _advance(self, option: str | None, generation: int) -> None:
        try:
            scene = await self._narrator.generate(self.session, option)
        except GenerationError as e:
            if generation != self.generation:
                return
            logger.warning("generation failed kind=%s: %s", e.kind.value, e.detail)
            self._fail(str(e))
            return
        except Exception as e:
            if generation != self.generation:
                return
            logger.exception("unexpected generation failure")
            self._fail(f"Unexpected error: {e}")
            return

        if generation != self.generation:
            logger.debug("dropping stale scene for generation %d", generation)
            return
        self._accept(scene)

    def _accept(self, scene: SceneData) -> None:
        session = self.session
        if session.progress.is_finale and scene.options:
            logger.warning("backend offered options at the finale; dropping them")
            scene = scene.model_copy(update={"options": []})
        elif not scene.options:
            logger.warning(
                "backend ended the story early at chapter %d scene %d",
                session.progress.chapter, session.progress.scene,
            )

        if not session.history and scene.title:
            session.title = scene.title
        session.history.append(HistoryEntry(role="model", text=scene.story))
        session.current = scene
        self.options_revealed = False
        self._pending = None
        self._transition(SessionPhase.PLAYING)

    def _fail(self, message: str) -> None:
        self.last_error = message
        self._pending = None
        self._transition(SessionPhase.ERROR)

    # ------------------------------------------------------------------
    # Reveal gate
    # ------------------------------------------------------------------

    def reveal_options(self) -> None:
        """Expose the current choices (or the end affordance)."""
        if self.phase is not SessionPhase.PLAYING or self.options_revealed:
            return
        self.options_revealed = True
        self._notify()

    # ------------------------------------------------------------------
    # Quit / restart
    # ------------------------------------------------------------------

    def request_quit(self) -> None:
        self._require(SessionPhase.PLAYING, SessionPhase.GENERATING, SessionPhase.ERROR)
        self.quit_confirm_pending = True
        self._notify()

    def cancel_quit(self) -> None:
        self.quit_confirm_pending = False
        self._notify()

    def confirm_quit(self) -> None:
        """Drop the session and its snapshot and return to welcome."""
        self._require(SessionPhase.PLAYING, SessionPhase.GENERATING, SessionPhase.ERROR)
        self._store.clear()
        self.generation += 1
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self.session = Session()
        self.options_revealed = False
        self.quit_confirm_pending = False
        self.last_error = None
        self._transition(SessionPhase.WELCOME)

    def restart(self) -> None:
        """Recover from the error screen. Same as quitting."""
        self.confirm_quit()

    # ------------------------------------------------------------------
    # Loading-message rotation
    # ------------------------------------------------------------------

    def _start_loading(self) -> None:
        self._stop_loading()
        messages = loading_messages_for(self.session.genre)
        self.loading_message = messages[0]
        self._loading_task = asyncio.get_running_loop().create_task(
            self._rotate_loading(messages)
        )

    def _stop_loading(self) -> None:
        if self._loading_task is not None:
            self._loading_task.cancel()
            self._loading_task = None
        self.loading_message = ""

    async def _rotate_loading(self, messages: list[str]) -> None:
        index = 0
        while True:
            await asyncio.sleep(self._rotate_interval)
            index = (index + 1) % len(messages)
            self.loading_message = messages[index]
            self._notify()

    async def aclose(self) -> None:
        """Cancel background work. Call on shutdown."""
        self._stop_loading()
        if self._pending is not None:
            self._pending.cancel()
            try:
                await self._pending
            except asyncio.CancelledError:
                pass
            self._pending = None

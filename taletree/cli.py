"""Terminal player.

Renders the controller's state as plain text: a genre menu, each scene
revealed character by character (Enter skips), numbered choices, and a
confirmed quit. All story logic stays in SessionController.
"""

from __future__ import annotations

import asyncio
import sys
from typing import TextIO

from taletree.controller import SessionController
from taletree.models import GENRES, MAX_CHAPTERS, SCENES_PER_CHAPTER, SceneData, SessionPhase, find_genre
from taletree.reveal import REVEAL_INTERVAL, TextReveal


class LineReader:
    """Reads stdin lines in a worker thread.

    A read that is still pending when the caller stops waiting (because the
    reveal finished first) is kept and handed to the next readline().
    """

    def __init__(self, stream: TextIO = sys.stdin) -> None:
        self._stream = stream
        self._pending: asyncio.Future | None = None

    def pending(self) -> asyncio.Future:
        if self._pending is None:
            self._pending = asyncio.ensure_future(asyncio.to_thread(self._stream.readline))
        return self._pending

    async def readline(self) -> str | None:
        """Next line without its newline, or None at end of input."""
        line = await self.pending()
        self._pending = None
        if not line:
            return None
        return line.rstrip("\n")


class TerminalPlayer:
    def __init__(
        self,
        controller: SessionController,
        reader: LineReader | None = None,
        out: TextIO = sys.stdout,
        interval: float = REVEAL_INTERVAL,
    ) -> None:
        self.controller = controller
        self.reader = reader or LineReader()
        self.out = out
        self.interval = interval
        self._shown: SceneData | None = None
        self._loading_shown = ""

    def _write(self, text: str) -> None:
        self.out.write(text)
        self.out.flush()

    def _on_change(self, controller: SessionController) -> None:
        message = controller.loading_message
        if controller.phase is not SessionPhase.GENERATING:
            self._loading_shown = ""
        elif message and message != self._loading_shown:
            self._loading_shown = message
            self._write(f"  {message}\n")

    async def run(self) -> None:
        unsubscribe = self.controller.subscribe(self._on_change)
        try:
            self.controller.bootstrap()
            while await self._step():
                pass
        finally:
            unsubscribe()
            await self.controller.aclose()

    async def _step(self) -> bool:
        """Handle one screen. Returns False when the player leaves."""
        phase = self.controller.phase
        if phase is SessionPhase.WELCOME:
            return await self._welcome()
        if phase is SessionPhase.PLAYING:
            return await self._playing()
        if phase is SessionPhase.ERROR:
            self._write(f"\nSomething went wrong: {self.controller.last_error}\n")
            self._write("Press Enter to start over. ")
            if await self.reader.readline() is None:
                return False
            self.controller.restart()
            return True
        raise RuntimeError(f"Unexpected phase {phase.value}")

    async def _welcome(self) -> bool:
        self._write("\nChoose a genre:\n")
        for i, genre in enumerate(GENRES, 1):
            self._write(f"  {i}. {genre.label}\n")
        self._write("  q. Quit\n> ")
        line = await self.reader.readline()
        if line is None or line.strip().lower() == "q":
            return False
        choice = line.strip()
        genre = GENRES[int(choice) - 1] if choice.isdigit() and 0 < int(choice) <= len(GENRES) else find_genre(choice)
        if genre is None:
            self._write("Unknown genre.\n")
            return True
        self._shown = None
        await self.controller.select_genre(genre)
        return True

    async def _playing(self) -> bool:
        controller = self.controller
        current = controller.session.current
        if current is not self._shown:
            await self._reveal(current)
            self._shown = current

        if controller.is_ending:
            self._write("\n*** THE END ***\nPress Enter to start a new story. ")
            if await self.reader.readline() is None:
                return False
            controller.confirm_quit()
            return True

        options = controller.available_options
        self._write("\n")
        for i, option in enumerate(options, 1):
            self._write(f"  {i}. {option}\n")
        self._write("  q. Quit\n> ")
        line = await self.reader.readline()
        if line is None:
            return False
        line = line.strip().lower()
        if line == "q":
            return await self._confirm_quit()
        if line.isdigit() and 0 < int(line) <= len(options):
            await controller.choose_option(options[int(line) - 1])
        return True

    async def _confirm_quit(self) -> bool:
        self.controller.request_quit()
        self._write("Abandon this story? Your progress will be lost. [y/N] ")
        line = await self.reader.readline()
        if line is None:
            return False
        if line.strip().lower() == "y":
            self.controller.confirm_quit()
        else:
            self.controller.cancel_quit()
        return True

    async def _reveal(self, scene: SceneData) -> None:
        session = self.controller.session
        self._write(
            f"\n== {session.title or 'Untitled'} | Chapter {session.progress.chapter}/{MAX_CHAPTERS}, "
            f"Scene {session.progress.scene}/{SCENES_PER_CHAPTER} ==\n\n"
        )
        written = 0

        def on_update(prefix: str) -> None:
            nonlocal written
            self._write(prefix[written:])
            written = len(prefix)

        reveal = TextReveal(
            interval=self.interval,
            on_update=on_update,
            on_complete=self.controller.reveal_options,
        )
        reveal.start(scene.story, already_revealed=self.controller.options_revealed)
        if reveal.done:
            self._write("\n")
            return
        finished = asyncio.ensure_future(reveal.wait())
        try:
            done, _ = await asyncio.wait(
                {finished, self.reader.pending()}, return_when=asyncio.FIRST_COMPLETED
            )
            if finished not in done:
                await self.reader.readline()
                reveal.skip()
        finally:
            finished.cancel()
            reveal.close()
        self._write("\n")


async def play(controller: SessionController) -> None:
    await TerminalPlayer(controller).run()

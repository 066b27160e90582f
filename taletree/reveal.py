"""Incremental text reveal.

TextReveal discloses a target string one character at a time on a frame
loop, then signals completion exactly once per target. The running loop is
held in a single task handle: starting a new target, skipping, or closing
always cancels it first.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

REVEAL_INTERVAL = 0.030
FRAME = 1 / 60


class TextReveal:
    """Frame-paced character reveal with cancellable skip.

    Args:
        interval:    Minimum seconds between two revealed characters.
        frame:       Seconds between scheduler ticks.
        on_update:   Called with the new prefix every time it grows.
        on_complete: Called once the full target is shown.
        clock:       Monotonic time source; injectable for tests.
    """

    def __init__(
        self,
        interval: float = REVEAL_INTERVAL,
        frame: float = FRAME,
        on_update: Callable[[str], None] | None = None,
        on_complete: Callable[[], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval = interval
        self.frame = frame
        self.on_update = on_update
        self.on_complete = on_complete
        self._clock = clock

        self.text = ""
        self.revealed = ""
        self.reveal_id = 0
        self._completed_id = -1
        self._task: asyncio.Task | None = None
        self._done = asyncio.Event()

    @property
    def done(self) -> bool:
        return self._completed_id == self.reveal_id

    @property
    def typing(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, text: str, already_revealed: bool = False) -> None:
        """Begin revealing `text`, superseding whatever was running.

        With already_revealed the full text is shown and completion fires
        immediately, without any partial prefix.
        """
        self._cancel()
        self.reveal_id += 1
        self.text = text
        self._done = asyncio.Event()

        if already_revealed or not text:
            self._set_revealed(text)
            self._complete(self.reveal_id)
            return

        self._set_revealed("")
        self._task = asyncio.get_running_loop().create_task(self._run(self.reveal_id))

    def skip(self) -> None:
        """Show the full target now. Completion still fires at most once."""
        self._cancel()
        if self.revealed != self.text:
            self._set_revealed(self.text)
        self._complete(self.reveal_id)

    def close(self) -> None:
        """Teardown: stop the loop without signalling completion."""
        self._cancel()
        self._done.set()

    async def wait(self) -> None:
        """Return once the current target is complete or the engine closed."""
        await self._done.wait()

    # ------------------------------------------------------------------

    async def _run(self, reveal_id: int) -> None:
        last = self._clock()
        while len(self.revealed) < len(self.text):
            await asyncio.sleep(self.frame)
            now = self._clock()
            if now - last >= self.interval:
                self._set_revealed(self.text[: len(self.revealed) + 1])
                last = now
        self._task = None
        self._complete(reveal_id)

    def _cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def _set_revealed(self, prefix: str) -> None:
        self.revealed = prefix
        if self.on_update:
            self.on_update(prefix)

    def _complete(self, reveal_id: int) -> None:
        if reveal_id != self.reveal_id or self._completed_id == reveal_id:
            return
        self._completed_id = reveal_id
        self._done.set()
        logger.debug("reveal complete id=%d len=%d", reveal_id, len(self.text))
        if self.on_complete:
            self.on_complete()

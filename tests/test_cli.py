"""Tests for the terminal player, driven by scripted stdin."""

import io

from taletree.cli import LineReader, TerminalPlayer
from taletree.controller import SessionController
from taletree.llm import GenerationError, GenerationErrorKind
from taletree.models import HistoryEntry, Progress, Session, SessionPhase, Snapshot, find_genre
from tests.helpers import scene


async def _play(narrator, store, script: str) -> str:
    out = io.StringIO()
    controller = SessionController(narrator, store, rotate_interval=0)
    player = TerminalPlayer(controller, reader=LineReader(io.StringIO(script)), out=out, interval=0)
    await player.run()
    return out.getvalue()


async def test_play_two_scenes_then_quit(narrator, store):
    narrator.queue(
        scene("The hallway breathes.", title="Night Terrors"),
        scene("A door slams.", options=("Hide", "Scream")),
    )
    # genre 3, skip, option 1, skip, quit + confirm, leave
    output = await _play(narrator, store, "3\n\n1\n\nq\ny\nq\n")

    assert "Night Terrors" in output
    assert "The hallway breathes." in output
    assert "A door slams." in output
    assert "Checking under the bed..." in output
    assert "1. Hide" in output
    assert len(narrator.calls) == 2
    assert narrator.calls[1][1] == "Go left"
    assert store.load() is None


async def test_resumed_finale_shows_the_end(narrator, store):
    session = Session(
        genre=find_genre("fantasy"),
        title="Ember Crown",
        history=[HistoryEntry(role="model", text="Nearly there.")],
        current=scene("Nearly there."),
        progress=Progress(chapter=5, scene=4),
    )
    store.save(Snapshot.from_session(SessionPhase.PLAYING, session))
    narrator.queue(scene("And so it ended.", options=("More?", "Again?")))

    output = await _play(narrator, store, "1\n\n\nq\n")

    assert "Nearly there." in output
    assert "Chapter 5/5, Scene 5/5" in output
    assert "And so it ended." in output
    assert "THE END" in output
    assert "More?" not in output
    assert store.load() is None


async def test_error_then_restart(narrator, store):
    narrator.queue(GenerationError(GenerationErrorKind.TRANSPORT, "API Error 500: down"))
    output = await _play(narrator, store, "1\n\nq\n")
    assert "Something went wrong: API Error 500: down" in output
    assert output.count("Choose a genre:") == 2


async def test_unknown_genre_reprompts(narrator, store):
    output = await _play(narrator, store, "western\nq\n")
    assert "Unknown genre." in output
    assert narrator.calls == []


async def test_end_of_input_exits(narrator, store):
    output = await _play(narrator, store, "")
    assert "Choose a genre:" in output

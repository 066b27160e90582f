"""Tests for taletree.models."""

import pytest
from pydantic import ValidationError

from taletree.models import (
    GENRES,
    MAX_CHAPTERS,
    SCENES_PER_CHAPTER,
    HistoryEntry,
    Progress,
    SceneData,
    Session,
    SessionPhase,
    Snapshot,
    find_genre,
    loading_messages_for,
)


class TestProgress:
    def test_defaults_to_first_scene(self) -> None:
        p = Progress()
        assert (p.chapter, p.scene) == (1, 1)

    def test_next_increments_scene_within_chapter(self) -> None:
        for chapter in range(1, MAX_CHAPTERS + 1):
            for scene in range(1, SCENES_PER_CHAPTER):
                nxt = Progress(chapter=chapter, scene=scene).next()
                assert (nxt.chapter, nxt.scene) == (chapter, scene + 1)

    def test_next_rolls_over_to_new_chapter(self) -> None:
        for chapter in range(1, MAX_CHAPTERS):
            nxt = Progress(chapter=chapter, scene=SCENES_PER_CHAPTER).next()
            assert (nxt.chapter, nxt.scene) == (chapter + 1, 1)

    def test_finale_is_last_scene_of_last_chapter(self) -> None:
        assert Progress(chapter=MAX_CHAPTERS, scene=SCENES_PER_CHAPTER).is_finale
        assert not Progress(chapter=MAX_CHAPTERS, scene=SCENES_PER_CHAPTER - 1).is_finale
        assert not Progress(chapter=MAX_CHAPTERS - 1, scene=SCENES_PER_CHAPTER).is_finale

    def test_nothing_follows_the_finale(self) -> None:
        with pytest.raises(ValueError):
            Progress(chapter=MAX_CHAPTERS, scene=SCENES_PER_CHAPTER).next()

    def test_walk_reaches_finale_in_exact_number_of_steps(self) -> None:
        p = Progress()
        steps = 0
        while not p.is_finale:
            p = p.next()
            steps += 1
        assert steps == MAX_CHAPTERS * SCENES_PER_CHAPTER - 1

    def test_out_of_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Progress(chapter=MAX_CHAPTERS + 1, scene=1)
        with pytest.raises(ValidationError):
            Progress(chapter=1, scene=SCENES_PER_CHAPTER + 1)
        with pytest.raises(ValidationError):
            Progress(chapter=0, scene=1)


class TestGenres:
    def test_four_fixed_genres(self) -> None:
        assert [g.id for g in GENRES] == ["scifi", "fantasy", "horror", "mystery"]

    def test_find_by_id_or_label(self) -> None:
        assert find_genre("horror").label == "Horror"
        assert find_genre("Sci-Fi").id == "scifi"
        assert find_genre("  MYSTERY ").id == "mystery"

    def test_unknown_genre(self) -> None:
        assert find_genre("western") is None

    def test_genres_are_immutable(self) -> None:
        with pytest.raises(ValidationError):
            GENRES[0].label = "Space"

    def test_loading_messages_per_genre(self) -> None:
        assert loading_messages_for(find_genre("horror"))[0] == "Checking under the bed..."
        assert loading_messages_for(None) == ["Loading next chapter...", "Writing your destiny...", "Thinking..."]


class TestHistoryEntry:
    def test_invalid_role_rejected(self) -> None:
        with pytest.raises(ValidationError):
            HistoryEntry(role="narrator", text="x")

    def test_entries_are_immutable(self) -> None:
        entry = HistoryEntry(role="user", text="Open the door")
        with pytest.raises(ValidationError):
            entry.text = "Run"


class TestSceneData:
    def test_title_optional(self) -> None:
        s = SceneData.model_validate({"story": "Fog.", "options": ["A", "B"]})
        assert s.title is None

    def test_options_default_empty(self) -> None:
        assert SceneData(story="The end.").options == []

    def test_story_required(self) -> None:
        with pytest.raises(ValidationError):
            SceneData.model_validate({"options": []})


class TestSnapshot:
    def _session(self) -> Session:
        return Session(
            genre=find_genre("fantasy"),
            title="The Ember Crown",
            history=[HistoryEntry(role="model", text="Once.")],
            current=SceneData(story="Once.", options=["A", "B"], title="The Ember Crown"),
            progress=Progress(chapter=2, scene=3),
        )

    def test_from_session_uses_stored_key_names(self) -> None:
        snap = Snapshot.from_session(SessionPhase.PLAYING, self._session())
        data = snap.model_dump()
        assert data["gameState"] == "playing"
        assert data["storyTitle"] == "The Ember Crown"
        assert data["chapter"] == 2
        assert data["scene"] == 3
        assert data["currentData"]["options"] == ["A", "B"]

    def test_to_session_roundtrip(self) -> None:
        session = self._session()
        restored = Snapshot.from_session(SessionPhase.PLAYING, session).to_session()
        assert restored == session

    def test_resumable_only_when_playing_with_scene(self) -> None:
        session = self._session()
        assert Snapshot.from_session(SessionPhase.PLAYING, session).resumable
        assert not Snapshot.from_session(SessionPhase.ERROR, session).resumable
        session.current = None
        assert not Snapshot.from_session(SessionPhase.PLAYING, session).resumable

    def test_foreign_game_state_parses_but_is_not_resumable(self) -> None:
        snap = Snapshot.model_validate({"gameState": "welcome", "currentData": {"story": "x", "options": []}})
        assert not snap.resumable

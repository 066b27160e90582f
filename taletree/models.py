"""Core domain models.

The controller, client and storage layers all operate on these types.
Pydantic is used for validation and serialisation at every data boundary.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

MAX_CHAPTERS = 5
SCENES_PER_CHAPTER = 5
CHAR_TARGET = 700
CONTEXT_WINDOW = 3
STORAGE_KEY = "story_app_save_v1"


class Genre(BaseModel):
    """A selectable story genre. The set is fixed in GENRES."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    theme: str

    @model_validator(mode="before")
    @classmethod
    def _fill_theme(cls, data: Any) -> Any:
        # older saves stored only id/label plus styling classes
        if isinstance(data, dict) and "theme" not in data:
            known = next((g for g in GENRES if g.id == data.get("id")), None)
            data = {**data, "theme": known.theme if known else ""}
        return data


GENRES: tuple[Genre, ...] = (
    Genre(id="scifi", label="Sci-Fi", theme="cyan"),
    Genre(id="fantasy", label="Fantasy", theme="amber"),
    Genre(id="horror", label="Horror", theme="red"),
    Genre(id="mystery", label="Mystery", theme="violet"),
)

LOADING_MESSAGES: dict[str, list[str]] = {
    "scifi": [
        "Initializing neural link...",
        "Decrypting narrative stream...",
        "Rendering cyber-structures...",
        "Compiling future timelines...",
        "Syncing with the mainframe...",
    ],
    "fantasy": [
        "Consulting the ancient scrolls...",
        "Summoning the narrative spirits...",
        "Polishing the crystal ball...",
        "Weaving the threads of fate...",
        "Brewing potions of imagination...",
    ],
    "horror": [
        "Checking under the bed...",
        "Listening to the whispers...",
        "Something is approaching...",
        "Manifesting your fears...",
        "Don't look behind you...",
    ],
    "mystery": [
        "Gathering clues...",
        "Dusting for fingerprints...",
        "Connecting the dots...",
        "Questioning the witnesses...",
        "Following the trail...",
    ],
    "default": [
        "Loading next chapter...",
        "Writing your destiny...",
        "Thinking...",
    ],
}


def find_genre(key: str) -> Genre | None:
    """Look up a genre by id or label, ignoring case.

    "horror" → Horror, "Sci-Fi" → Sci-Fi, "western" → None
    """
    needle = key.strip().lower()
    for genre in GENRES:
        if needle in (genre.id, genre.label.lower()):
            return genre
    return None


def loading_messages_for(genre: Genre | None) -> list[str]:
    if genre is None:
        return LOADING_MESSAGES["default"]
    return LOADING_MESSAGES.get(genre.id, LOADING_MESSAGES["default"])


class Progress(BaseModel):
    """Position in the story. (MAX_CHAPTERS, SCENES_PER_CHAPTER) is the finale."""

    model_config = ConfigDict(frozen=True)

    chapter: int = Field(default=1, ge=1, le=MAX_CHAPTERS)
    scene: int = Field(default=1, ge=1, le=SCENES_PER_CHAPTER)

    @property
    def is_finale(self) -> bool:
        return self.chapter == MAX_CHAPTERS and self.scene == SCENES_PER_CHAPTER

    def next(self) -> Progress:
        """Return the following scene, rolling over into the next chapter."""
        if self.is_finale:
            raise ValueError("No scene follows the finale")
        if self.scene >= SCENES_PER_CHAPTER:
            return Progress(chapter=self.chapter + 1, scene=1)
        return Progress(chapter=self.chapter, scene=self.scene + 1)


class HistoryEntry(BaseModel):
    """One transcript entry: a user choice or a block of model prose."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "model"]
    text: str


class SceneData(BaseModel):
    """The latest backend response. options is empty only at an ending."""

    story: str
    options: list[str] = Field(default_factory=list)
    title: str | None = None


class SessionPhase(str, Enum):
    LOADING_SAVE = "loading_save"
    WELCOME = "welcome"
    GENERATING = "generating"
    PLAYING = "playing"
    ERROR = "error"


class Session(BaseModel):
    """The aggregate story state owned by the controller."""

    genre: Genre | None = None
    title: str = ""
    history: list[HistoryEntry] = Field(default_factory=list)
    current: SceneData | None = None
    progress: Progress = Field(default_factory=Progress)


class Snapshot(BaseModel):
    """Serialized session as written to durable storage.

    Field names follow the stored key names so that saves written by older
    front ends stay readable. Their genre objects carry no theme; Genre
    fills it in from GENRES.
    """

    gameState: str  # "playing" | "error"; anything else is never resumed
    genre: Genre | None = None
    storyTitle: str = ""
    history: list[HistoryEntry] = Field(default_factory=list)
    currentData: SceneData | None = None
    chapter: int = Field(default=1, ge=1, le=MAX_CHAPTERS)
    scene: int = Field(default=1, ge=1, le=SCENES_PER_CHAPTER)

    @classmethod
    def from_session(cls, phase: SessionPhase, session: Session) -> Snapshot:
        return cls(
            gameState=phase.value,
            genre=session.genre,
            storyTitle=session.title,
            history=list(session.history),
            currentData=session.current,
            chapter=session.progress.chapter,
            scene=session.progress.scene,
        )

    @property
    def resumable(self) -> bool:
        return self.gameState == "playing" and self.currentData is not None

    def to_session(self) -> Session:
        return Session(
            genre=self.genre,
            title=self.storyTitle,
            history=list(self.history),
            current=self.currentData,
            progress=Progress(chapter=self.chapter, scene=self.scene),
        )

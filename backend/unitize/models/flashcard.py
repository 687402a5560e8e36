from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class CardDifficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class DeckCreate(BaseModel):
    user_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    course_id: str | None = None
    topic_id: str | None = None
    is_public: bool = False


class DeckUpdate(BaseModel):
    user_id: str = Field(min_length=1)
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    course_id: str | None = None
    topic_id: str | None = None
    is_public: bool | None = None


class Deck(BaseModel):
    id: str
    user_id: str
    name: str
    description: str
    course_id: str | None
    topic_id: str | None
    is_public: bool
    card_count: int = 0
    created_at: str
    updated_at: str


class DeckList(BaseModel):
    items: list[Deck]
    total: int


class FlashcardCreate(BaseModel):
    user_id: str = Field(min_length=1)
    deck_id: str
    front: str = Field(min_length=1)
    back: str = Field(min_length=1)
    hint: str | None = None
    tags: list[str] = []
    course_id: str | None = None
    topic_id: str | None = None
    difficulty: CardDifficulty = CardDifficulty.MEDIUM


class Flashcard(BaseModel):
    id: str
    deck_id: str
    front: str
    back: str
    hint: str | None
    tags: list[str]
    course_id: str | None
    topic_id: str | None
    difficulty: CardDifficulty
    review_count: int       # every graded review
    correct_count: int      # good or easy
    incorrect_count: int    # again or hard
    created_at: str
    updated_at: str


class FlashcardUpdate(BaseModel):
    user_id: str = Field(min_length=1)
    front: str | None = None
    back: str | None = None
    hint: str | None = None
    tags: list[str] | None = None
    difficulty: CardDifficulty | None = None


class DeckWithCards(BaseModel):
    deck: Deck
    cards: list[Flashcard]

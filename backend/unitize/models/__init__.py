from unitize.models.catalog import (
    CatalogDocument,
    Course,
    CourseList,
    CourseSummary,
    QuestionHit,
    QuestionHitList,
    Question,
    Topic,
    Unit,
)
from unitize.models.flashcard import (
    CardDifficulty,
    Deck,
    DeckCreate,
    DeckList,
    DeckUpdate,
    DeckWithCards,
    Flashcard,
    FlashcardCreate,
    FlashcardUpdate,
)
from unitize.models.review import (
    Grade,
    IntervalPreview,
    ItemKind,
    RegisterRequest,
    ReviewRequest,
    ReviewStats,
    ScheduleState,
    ScheduleStateList,
)

__all__ = [
    "CardDifficulty",
    "CatalogDocument",
    "Course",
    "CourseList",
    "CourseSummary",
    "Deck",
    "DeckCreate",
    "DeckList",
    "DeckUpdate",
    "DeckWithCards",
    "Flashcard",
    "FlashcardCreate",
    "FlashcardUpdate",
    "Grade",
    "IntervalPreview",
    "ItemKind",
    "Question",
    "QuestionHit",
    "QuestionHitList",
    "RegisterRequest",
    "ReviewRequest",
    "ReviewStats",
    "ScheduleState",
    "ScheduleStateList",
    "Topic",
    "Unit",
]

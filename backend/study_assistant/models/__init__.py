from study_assistant.models.base import Base
from study_assistant.models.costs import AICost
from study_assistant.models.documents import (
    Document,
    Flashcard,
    Folder,
    GenerationJob,
    Note,
    QuizQuestion,
    Summary,
)
from study_assistant.models.performance import (
    FlashcardPerformance,
    QuizPerformance,
    StudySession,
    WrongAnswer,
)
from study_assistant.models.users import EmailVerification, User

__all__ = [
    "AICost",
    "Base",
    "Document",
    "EmailVerification",
    "Flashcard",
    "FlashcardPerformance",
    "Folder",
    "GenerationJob",
    "Note",
    "QuizPerformance",
    "QuizQuestion",
    "StudySession",
    "Summary",
    "User",
    "WrongAnswer",
]

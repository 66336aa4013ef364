from reader_api.models.user import User
from reader_api.models.book import Book, Page, Question
from reader_api.models.progress import Progress
from reader_api.models.story_checkpoint import StoryCheckpoint
from reader_api.models.reading_session import ReadingSession
from reader_api.models.quiz_attempt import QuizAttempt
from reader_api.models.badge import Badge, BookBadge, EarnedBadge

__all__ = [
    "User",
    "Book",
    "Page",
    "Question",
    "Progress",
    "StoryCheckpoint",
    "ReadingSession",
    "QuizAttempt",
    "Badge",
    "BookBadge",
    "EarnedBadge",
]

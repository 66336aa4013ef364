from reader_api.db.base_class import Base  # noqa: F401

# Import all the models here so that Base has them registered
# This file should NOT be imported by models.
from reader_api.models.user import User  # noqa: F401
from reader_api.models.book import Book, Page, Question  # noqa: F401
from reader_api.models.progress import Progress  # noqa: F401
from reader_api.models.story_checkpoint import StoryCheckpoint  # noqa: F401
from reader_api.models.reading_session import ReadingSession  # noqa: F401
from reader_api.models.quiz_attempt import QuizAttempt  # noqa: F401
from reader_api.models.badge import Badge, BookBadge, EarnedBadge  # noqa: F401

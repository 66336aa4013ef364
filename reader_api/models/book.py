from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, JSON, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reader_api.db.base_class import Base


class Book(Base):
    __tablename__ = "books"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="storybook")  # storybook|educational
    subject: Mapped[str | None] = mapped_column(String(64), nullable=True)
    grade: Mapped[str | None] = mapped_column(String(4), nullable=True)

    # immutable once pages/progress reference it
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    cover_image: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    quiz_mode: Mapped[str] = mapped_column(String(16), nullable=False, default="retry")  # retry|straight
    added_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    pages = relationship("Page", back_populates="book", order_by="Page.page_number")


# legacy rows created before slugs existed are matched on this key
Index(
    "uniq_books_title_grade_subject_ci",
    func.lower(Book.title),
    func.coalesce(Book.grade, ""),
    func.coalesce(Book.subject, ""),
    unique=True,
)


class Page(Base):
    __tablename__ = "pages"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    audio_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    book = relationship("Book", back_populates="pages")
    questions = relationship("Question", back_populates="page", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("book_id", "page_number", name="uq_pages_book_page_number"),
    )


class Question(Base):
    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    page_id: Mapped[int] = mapped_column(ForeignKey("pages.id", ondelete="CASCADE"), nullable=False, index=True)

    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    answer_type: Mapped[str] = mapped_column(String(32), nullable=False, default="text")  # text|multiple_choice
    correct_answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    options: Mapped[list | None] = mapped_column(JSON, nullable=True)

    page = relationship("Page", back_populates="questions")

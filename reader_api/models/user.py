from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from reader_api.db.base_class import Base

ROLES = ("admin", "teacher", "student")
STAFF_ROLES = ("admin", "teacher")


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    first_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(128), nullable=True)

    role: Mapped[str] = mapped_column(String(16), nullable=False, default="student")  # admin|teacher|student
    grade_level: Mapped[str | None] = mapped_column(String(4), nullable=True)  # K|1..6
    approval_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending|approved|rejected
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

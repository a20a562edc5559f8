from __future__ import annotations

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from attendbot.db.base import Base


class Course(Base):
    __tablename__ = "courses"

    # number the user types to pick the course
    ordinal: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # class_id on the attendance provider side
    external_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

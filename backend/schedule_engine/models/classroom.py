from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from schedule_engine.db.base import Base


class ClassroomType(str, Enum):
    auditorium = "auditorium"
    lecture_hall = "lecture_hall"
    computer_lab = "computer_lab"
    laboratory = "laboratory"
    seminar_room = "seminar_room"
    gymnasium = "gymnasium"
    workshop = "workshop"


class Classroom(Base):
    __tablename__ = "classrooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    type: Mapped[ClassroomType] = mapped_column(
        SAEnum(ClassroomType, name="classroom_type"), nullable=False, default=ClassroomType.auditorium
    )
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

from datetime import datetime

from sqlalchemy import Column, DateTime, Enum as SAEnum, ForeignKey, Integer, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from schedule_engine.db.base import Base
from schedule_engine.models.classroom import ClassroomType
from schedule_engine.models.group import Group
from schedule_engine.models.teacher import Teacher

study_plan_groups = Table(
    "study_plan_groups",
    Base.metadata,
    Column("study_plan_id", ForeignKey("study_plans.id", ondelete="CASCADE"), primary_key=True),
    Column("group_id", ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
)


class StudyPlan(Base):
    __tablename__ = "study_plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), index=True, nullable=False)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id"), nullable=False, index=True)
    hours_per_week: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    room_type: Mapped[ClassroomType | None] = mapped_column(
        SAEnum(ClassroomType, name="classroom_type"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    teacher: Mapped[Teacher] = relationship(lazy="joined")
    groups: Mapped[list[Group]] = relationship(secondary=study_plan_groups, lazy="selectin")

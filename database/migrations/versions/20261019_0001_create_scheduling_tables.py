"""create scheduling tables

Revision ID: 20261019_0001
Revises: None
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


classroom_type_enum = sa.Enum(
    "auditorium",
    "lecture_hall",
    "computer_lab",
    "laboratory",
    "seminar_room",
    "gymnasium",
    "workshop",
    name="classroom_type",
)
recurrence_enum = sa.Enum("weekly", "biweekly", "once", name="schedule_recurrence")
status_enum = sa.Enum("upcoming", "completed", "cancelled", name="schedule_status")


def upgrade() -> None:
    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("student_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_groups_name", "groups", ["name"], unique=True)

    op.create_table(
        "teachers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_teachers_name", "teachers", ["name"])
    op.create_index("ix_teachers_email", "teachers", ["email"], unique=True)

    op.create_table(
        "classrooms",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", classroom_type_enum, nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_classrooms_name", "classrooms", ["name"], unique=True)

    op.create_table(
        "study_plans",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("teacher_id", sa.Integer(), sa.ForeignKey("teachers.id"), nullable=False),
        sa.Column("hours_per_week", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("room_type", classroom_type_enum, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_study_plans_name", "study_plans", ["name"])
    op.create_index("ix_study_plans_teacher_id", "study_plans", ["teacher_id"])

    op.create_table(
        "study_plan_groups",
        sa.Column(
            "study_plan_id", sa.Integer(), sa.ForeignKey("study_plans.id", ondelete="CASCADE"), primary_key=True
        ),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "schedules",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("study_plan_id", sa.Integer(), sa.ForeignKey("study_plans.id"), nullable=False),
        sa.Column("subject_name", sa.String(length=200), nullable=False),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id"), nullable=False),
        sa.Column("teacher_id", sa.Integer(), sa.ForeignKey("teachers.id"), nullable=False),
        sa.Column("classroom_id", sa.Integer(), sa.ForeignKey("classrooms.id"), nullable=True),
        sa.Column("date", sa.Date(), nullable=True),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("recurrence", recurrence_enum, nullable=False),
        sa.Column("status", status_enum, nullable=True),
        sa.Column("anchor_date", sa.Date(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("period_preset", sa.String(length=40), nullable=True),
        sa.Column("excluded_dates", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("is_ai_generated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("ai_confidence", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    for column in ("study_plan_id", "group_id", "teacher_id", "classroom_id", "day_of_week", "deleted_at"):
        op.create_index(f"ix_schedules_{column}", "schedules", [column])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False, server_default="schedule"),
        sa.Column("entity_id", sa.String(length=36), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_entity_id", "activity_logs", ["entity_id"])


def downgrade() -> None:
    op.drop_index("ix_activity_logs_entity_id", table_name="activity_logs")
    op.drop_index("ix_activity_logs_action", table_name="activity_logs")
    op.drop_table("activity_logs")
    for column in ("study_plan_id", "group_id", "teacher_id", "classroom_id", "day_of_week", "deleted_at"):
        op.drop_index(f"ix_schedules_{column}", table_name="schedules")
    op.drop_table("schedules")
    op.drop_table("study_plan_groups")
    op.drop_index("ix_study_plans_teacher_id", table_name="study_plans")
    op.drop_index("ix_study_plans_name", table_name="study_plans")
    op.drop_table("study_plans")
    op.drop_index("ix_classrooms_name", table_name="classrooms")
    op.drop_table("classrooms")
    op.drop_index("ix_teachers_email", table_name="teachers")
    op.drop_index("ix_teachers_name", table_name="teachers")
    op.drop_table("teachers")
    op.drop_index("ix_groups_name", table_name="groups")
    op.drop_table("groups")
    bind = op.get_bind()
    status_enum.drop(bind, checkfirst=True)
    recurrence_enum.drop(bind, checkfirst=True)
    classroom_type_enum.drop(bind, checkfirst=True)

from schedule_engine.models.activity_log import ActivityLog  # noqa: F401
from schedule_engine.models.classroom import Classroom, ClassroomType  # noqa: F401
from schedule_engine.models.group import Group  # noqa: F401
from schedule_engine.models.schedule import OccurrenceStatus, Recurrence, ScheduleRecord  # noqa: F401
from schedule_engine.models.study_plan import StudyPlan, study_plan_groups  # noqa: F401
from schedule_engine.models.teacher import Teacher  # noqa: F401

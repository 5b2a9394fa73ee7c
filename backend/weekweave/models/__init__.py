from weekweave.models.activity_log import ActivityLog  # noqa: F401
from weekweave.models.attendance import ABSENCE_STATUSES, AttendanceStatus, TeacherAttendance  # noqa: F401
from weekweave.models.directory import SchoolClass, Subject, Teacher  # noqa: F401
from weekweave.models.notification import Notification, NotificationType  # noqa: F401
from weekweave.models.scope_lock import ClassWriteHold, TimetableScope, TimetableScopeLock  # noqa: F401
from weekweave.models.structure import TimetableStructure  # noqa: F401
from weekweave.models.substitution import Substitution, SubstitutionStatus  # noqa: F401
from weekweave.models.timetable_change import (  # noqa: F401
    ChangeSource,
    ChangeState,
    ChangeType,
    TimetableChange,
)
from weekweave.models.timetable_entry import DayOfWeek, TimetableEntry  # noqa: F401
from weekweave.models.weekly_edit import WeeklyEdit  # noqa: F401

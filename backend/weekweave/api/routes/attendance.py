from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from weekweave.api.deps import get_current_user, get_db, require_admin
from weekweave.schemas.attendance import AbsenceAlertOut, AttendanceMark, AttendanceOut
from weekweave.schemas.auth import CurrentUser
from weekweave.schemas.timetable import BaseEntryOut
from weekweave.services.attendance import absence_alerts, affected_class_ids, get_attendance, mark_attendance
from weekweave.services.calendar import today, week_start
from weekweave.services.notifications import publish_scope_invalidation

router = APIRouter()


@router.get("/attendance", response_model=list[AttendanceOut])
def read_attendance(
    on_date: date | None = Query(default=None, alias="date"),
    teacher_id: str | None = Query(default=None, max_length=36),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[AttendanceOut]:
    return get_attendance(db, on_date or today(), teacher_id=teacher_id)


@router.post("/attendance", response_model=list[AttendanceOut])
def record_attendance(
    payload: AttendanceMark,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[AttendanceOut]:
    records = mark_attendance(db, payload, actor_id=current_user.id)
    class_ids = sorted(affected_class_ids(db, payload.teacher_id))
    db.commit()

    weeks = sorted({week_start(record.attendance_date) for record in records})
    for class_id in class_ids:
        for monday in weeks:
            publish_scope_invalidation(class_id, monday, reason="attendance")
    for record in records:
        db.refresh(record)
    return records


@router.get("/attendance/alerts", response_model=list[AbsenceAlertOut])
def read_absence_alerts(
    on_date: date | None = Query(default=None, alias="date"),
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[AbsenceAlertOut]:
    return [
        AbsenceAlertOut(
            teacher_id=alert.teacher.id,
            teacher_name=alert.teacher.name,
            status=alert.status,
            affected_entries=[BaseEntryOut.model_validate(entry) for entry in alert.affected_entries],
            uncovered_entry_ids=alert.uncovered_entry_ids,
        )
        for alert in absence_alerts(db, on_date or today())
    ]

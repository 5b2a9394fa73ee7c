from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from weekweave.api.deps import get_current_user, get_db, require_admin
from weekweave.core.config import get_settings
from weekweave.schemas.auth import CurrentUser
from weekweave.schemas.structure import StructureIn, StructureOut
from weekweave.services.audit import log_activity
from weekweave.services.structure import get_structure, save_structure, structure_to_out

router = APIRouter()


@router.get("/structure", response_model=StructureOut)
def read_default_structure(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StructureOut:
    school_id = current_user.school_id or get_settings().default_school_id
    return structure_to_out(get_structure(db, school_id))


@router.get("/structure/{school_id}", response_model=StructureOut)
def read_structure(
    school_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StructureOut:
    return structure_to_out(get_structure(db, school_id))


@router.put("/structure/{school_id}", response_model=StructureOut)
def update_structure(
    school_id: str,
    payload: StructureIn,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> StructureOut:
    record = save_structure(db, school_id, payload)
    log_activity(
        db,
        actor_id=current_user.id,
        action="structure.update",
        entity_type="timetable_structure",
        entity_id=record.id,
        details={
            "school_id": school_id,
            "working_days": record.working_days,
            "periods": len(record.time_slots),
        },
    )
    db.commit()
    return structure_to_out(get_structure(db, school_id))

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from weekweave.api.deps import get_db, require_admin
from weekweave.schemas.activity import ActivityLogOut
from weekweave.schemas.auth import CurrentUser
from weekweave.services.audit import list_activity

router = APIRouter()


@router.get("/activity/logs", response_model=list[ActivityLogOut])
def list_activity_logs(
    action: str | None = Query(default=None, max_length=100),
    entity_id: str | None = Query(default=None, max_length=100),
    class_id: str | None = Query(default=None, max_length=36),
    limit: int = Query(default=200, ge=1, le=500),
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[ActivityLogOut]:
    return list_activity(db, action=action, entity_id=entity_id, class_id=class_id, limit=limit)

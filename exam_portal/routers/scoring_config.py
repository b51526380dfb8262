"""Per-level mark and duration configuration."""

from fastapi import APIRouter, Depends
from sqlmodel import Session

from exam_portal.database import get_session
from exam_portal.deps import require_login, require_role
from exam_portal.models import DurationConfig, User
from exam_portal.schemas import DurationConfigIn, DurationConfigOut, MarkConfigIn, MarkConfigOut
from exam_portal.services.catalog import (
    get_duration_config,
    get_mark_config,
    update_duration_config,
    update_mark_config,
)

router = APIRouter()


@router.get("/marks", response_model=MarkConfigOut)
def api_get_marks(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    return MarkConfigOut(**get_mark_config(session).model_dump())


@router.put("/marks", response_model=MarkConfigOut)
def api_update_marks(
    payload: MarkConfigIn,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_role(["admin"])),
):
    config = update_mark_config(session, payload.model_dump(exclude_none=True))
    return MarkConfigOut(**config.model_dump())


@router.get("/durations", response_model=DurationConfigOut)
def api_get_durations(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    config = get_duration_config(session) or DurationConfig()
    return DurationConfigOut(**config.model_dump())


@router.put("/durations", response_model=DurationConfigOut)
def api_update_durations(
    payload: DurationConfigIn,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_role(["admin"])),
):
    config = update_duration_config(session, payload.model_dump(exclude_none=True))
    return DurationConfigOut(**config.model_dump())

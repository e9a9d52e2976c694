from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth import TenantContext, get_current_context
from app.db import get_db
from app.schemas import JobOut, TechnicianOut
from app.services import job_service, team_service

router = APIRouter(tags=['schedule'])


@router.get('/schedule', response_model=list[JobOut])
def get_schedule(
    start: datetime,
    end: datetime,
    technician_id: int | None = None,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    jobs = job_service.get_schedule(db, ctx, start=start, end=end, technician_id=technician_id)
    return [JobOut.model_validate(job) for job in jobs]


@router.get('/team/technicians', response_model=list[TechnicianOut])
def list_technicians(ctx: TenantContext = Depends(get_current_context), db: Session = Depends(get_db)):
    return [TechnicianOut.model_validate(user) for user in team_service.list_technicians(db, ctx)]

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..repositories_db import EventsRepositoryDB, SelectionStoreDB
from ..schemas import (
    ReservationCreate,
    ReservationRead,
    WorkWeekendCreate,
    WorkWeekendRead,
    ContactCreate,
    ContactRead,
    ReminderSettingsUpdate,
    ReminderSettingsRead,
)

router = APIRouter(prefix="/organizations/{organization_id}", tags=["events"])


@router.post("/reservations", response_model=ReservationRead)
def create_reservation(
    organization_id: str, data: ReservationCreate, db: Session = Depends(get_db)
):
    if data.end_date < data.start_date:
        raise HTTPException(status_code=400, detail="end_date is before start_date")
    repo = EventsRepositoryDB(db)
    return ReservationRead.model_validate(repo.create_reservation(organization_id, data))


@router.get("/reservations", response_model=List[ReservationRead])
def list_reservations(
    organization_id: str,
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db),
):
    repo = EventsRepositoryDB(db)
    return [
        ReservationRead.model_validate(r)
        for r in repo.list_reservations(organization_id, start, end)
    ]


@router.post("/work-weekends", response_model=WorkWeekendRead)
def create_work_weekend(
    organization_id: str, data: WorkWeekendCreate, db: Session = Depends(get_db)
):
    if data.end_date < data.start_date:
        raise HTTPException(status_code=400, detail="end_date is before start_date")
    repo = EventsRepositoryDB(db)
    return WorkWeekendRead.model_validate(repo.create_work_weekend(organization_id, data))


@router.get("/work-weekends", response_model=List[WorkWeekendRead])
def list_work_weekends(organization_id: str, db: Session = Depends(get_db)):
    repo = EventsRepositoryDB(db)
    return [WorkWeekendRead.model_validate(w) for w in repo.list_work_weekends(organization_id)]


@router.post("/contacts", response_model=ContactRead)
def upsert_contact(organization_id: str, data: ContactCreate, db: Session = Depends(get_db)):
    store = SelectionStoreDB(db)
    return ContactRead.model_validate(store.upsert_contact(organization_id, data))


@router.get("/reminder-settings", response_model=ReminderSettingsRead)
def get_reminder_settings(organization_id: str, db: Session = Depends(get_db)):
    settings = EventsRepositoryDB(db).get_reminder_settings(organization_id)
    if not settings:
        return ReminderSettingsRead()
    return ReminderSettingsRead.model_validate(settings)


@router.put("/reminder-settings", response_model=ReminderSettingsRead)
def update_reminder_settings(
    organization_id: str, data: ReminderSettingsUpdate, db: Session = Depends(get_db)
):
    repo = EventsRepositoryDB(db)
    return ReminderSettingsRead.model_validate(repo.upsert_reminder_settings(organization_id, data))

from datetime import datetime, timedelta
import logging
from typing import List

import httpx
from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from ..changes import reminder_cache
from ..db import get_db
from ..notifications import dispatch_reminders
from ..phase import DEFAULT_SECONDARY_WINDOW_DAYS
from ..reminders import DEFAULT_HORIZON_DAYS, build_reminders
from ..repositories_db import EventsRepositoryDB, SelectionStoreDB
from ..rotation import selection_rotation_year
from ..schemas import DispatchResult, ReminderInstance

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/organizations/{organization_id}/reminders", tags=["reminders"])


def load_reminders(
    db: Session,
    organization_id: str,
    now: datetime,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
) -> List[ReminderInstance]:
    """
    Fetch a fresh snapshot and build the reminder list. Periods come from
    the rotation year whose selections are open at the end of the horizon;
    the secondary status from the year being selected for today.
    """
    store = SelectionStoreDB(db)
    events = EventsRepositoryDB(db)
    today = now.date()
    horizon_end = today + timedelta(days=horizon_days)

    config = store.get_rotation_config(organization_id)
    start_month = config.start_month if config else None
    periods_year = selection_rotation_year(horizon_end, start_month)
    status_year = selection_rotation_year(today, start_month)

    return build_reminders(
        events.list_reservations(organization_id, today, horizon_end),
        store.list_selection_periods(organization_id, periods_year),
        store.get_secondary_status(organization_id, status_year),
        events.list_work_weekends(organization_id),
        settings=events.get_reminder_settings(organization_id),
        now=now,
        horizon_days=horizon_days,
        completed_groups=store.completed_groups(organization_id, periods_year),
        extensions=store.list_extensions(organization_id, periods_year),
        contacts=store.list_contacts(organization_id),
        secondary_window_days=(
            config.secondary_window_days if config else DEFAULT_SECONDARY_WINDOW_DAYS
        ),
    )


def cached_reminders(
    db: Session, organization_id: str, now: datetime, horizon_days: int
) -> List[ReminderInstance]:
    # every input comparison is by calendar day, so one entry per day is exact
    return reminder_cache.get_or_compute(
        organization_id,
        (now.date(), horizon_days),
        lambda: load_reminders(db, organization_id, now, horizon_days),
    )


@router.get("", response_model=List[ReminderInstance])
def preview_reminders(
    organization_id: str,
    horizon_days: int = Query(DEFAULT_HORIZON_DAYS, ge=1, le=366),
    db: Session = Depends(get_db),
):
    """
    Upcoming automated reminders, soonest first.
    Example: /organizations/acme/reminders?horizon_days=30
    """
    return cached_reminders(db, organization_id, datetime.utcnow(), horizon_days)


@router.post("/dispatch", response_model=DispatchResult)
async def dispatch(
    organization_id: str,
    horizon_days: int = Query(DEFAULT_HORIZON_DAYS, ge=1, le=366),
    db: Session = Depends(get_db),
):
    # store reads use a sync Session; keep them off the event loop
    reminders = await run_in_threadpool(
        cached_reminders, db, organization_id, datetime.utcnow(), horizon_days
    )
    try:
        count = await dispatch_reminders(organization_id, reminders)
    except httpx.HTTPError as e:
        logger.warning("Reminder dispatch failed for %s: %s", organization_id, e)
        return DispatchResult(organization_id=organization_id, dispatched=0, error=str(e))
    return DispatchResult(organization_id=organization_id, dispatched=count)

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..phase import compute_active
from ..repositories_db import SelectionStoreDB
from ..rotation import resolve_for_year
from ..schemas import (
    PhaseState,
    UsageCounterUpdate,
    UsageCounterRead,
    ActiveTurnUpdate,
    SecondaryActionRequest,
    SecondaryStatusRead,
    ExtensionCreate,
    ExtensionRead,
)

router = APIRouter(prefix="/organizations/{organization_id}/selection", tags=["selection"])


def load_phase_state(
    store: SelectionStoreDB,
    organization_id: str,
    year: int,
    today: Optional[date] = None,
) -> PhaseState:
    """Fetch one snapshot for the org/year and run the phase tracker on it."""
    config = store.get_rotation_config(organization_id, year)
    order = (
        resolve_for_year(config.base_order, config.base_year, year, config.direction_policy)
        if config
        else []
    )
    return compute_active(
        order,
        store.get_usage_counters(organization_id, year),
        store.list_selection_periods(organization_id, year),
        store.get_active_turn(organization_id, year),
        secondary_status=store.get_secondary_status(organization_id, year),
        config=config,
        today=today or date.today(),
    )


@router.get("", response_model=PhaseState)
def get_selection_state(
    organization_id: str,
    year: int = Query(..., ge=2000, le=2100),
    db: Session = Depends(get_db),
):
    """
    Current phase, active group and upcoming turns.
    Example: /organizations/acme/selection?year=2027
    """
    return load_phase_state(SelectionStoreDB(db), organization_id, year)


@router.put("/active", response_model=PhaseState)
def set_active_group(
    organization_id: str,
    update: ActiveTurnUpdate,
    db: Session = Depends(get_db),
):
    store = SelectionStoreDB(db)
    if update.current_group is not None:
        config = store.get_rotation_config(organization_id, update.rotation_year)
        order = (
            resolve_for_year(
                config.base_order, config.base_year, update.rotation_year, config.direction_policy
            )
            if config
            else []
        )
        if update.current_group not in order:
            raise HTTPException(status_code=400, detail="Group is not in the rotation order")
    store.set_active_turn(organization_id, update.rotation_year, update.current_group)
    return load_phase_state(store, organization_id, update.rotation_year)


@router.put("/usage", response_model=UsageCounterRead)
def upsert_usage(
    organization_id: str,
    data: UsageCounterUpdate,
    db: Session = Depends(get_db),
):
    store = SelectionStoreDB(db)
    return UsageCounterRead.model_validate(store.upsert_usage_counter(organization_id, data))


def _secondary_action(action, organization_id: str, year: int) -> SecondaryStatusRead:
    try:
        status = action(organization_id, year)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e).strip("'"))
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return SecondaryStatusRead.model_validate(status)


@router.get("/secondary", response_model=SecondaryStatusRead)
def get_secondary_status(
    organization_id: str,
    year: int = Query(..., ge=2000, le=2100),
    db: Session = Depends(get_db),
):
    status = SelectionStoreDB(db).get_secondary_status(organization_id, year)
    if not status:
        return SecondaryStatusRead(organization_id=organization_id, rotation_year=year)
    return SecondaryStatusRead.model_validate(status)


@router.post("/secondary/start", response_model=SecondaryStatusRead)
def start_secondary(
    organization_id: str, data: SecondaryActionRequest, db: Session = Depends(get_db)
):
    store = SelectionStoreDB(db)
    return _secondary_action(store.start_secondary, organization_id, data.rotation_year)


@router.post("/secondary/complete-turn", response_model=SecondaryStatusRead)
def complete_secondary_turn(
    organization_id: str, data: SecondaryActionRequest, db: Session = Depends(get_db)
):
    store = SelectionStoreDB(db)
    return _secondary_action(store.complete_secondary_turn, organization_id, data.rotation_year)


@router.post("/secondary/advance", response_model=SecondaryStatusRead)
def advance_secondary(
    organization_id: str, data: SecondaryActionRequest, db: Session = Depends(get_db)
):
    store = SelectionStoreDB(db)
    return _secondary_action(store.advance_secondary, organization_id, data.rotation_year)


@router.post("/secondary/end", response_model=SecondaryStatusRead)
def end_secondary(
    organization_id: str, data: SecondaryActionRequest, db: Session = Depends(get_db)
):
    store = SelectionStoreDB(db)
    return _secondary_action(store.end_secondary, organization_id, data.rotation_year)


@router.post("/extensions", response_model=ExtensionRead)
def extend_selection(
    organization_id: str, data: ExtensionCreate, db: Session = Depends(get_db)
):
    store = SelectionStoreDB(db)
    return ExtensionRead.model_validate(store.upsert_extension(organization_id, data))

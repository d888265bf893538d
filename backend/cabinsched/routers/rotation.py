from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..repositories_db import RotationRepositoryDB
from ..rotation import split_legacy_order
from ..schemas import RotationConfigUpsert, RotationConfigRead, ResolvedOrderRead

router = APIRouter(prefix="/organizations/{organization_id}/rotation", tags=["rotation"])


@router.put("", response_model=RotationConfigRead)
def upsert_rotation_config(
    organization_id: str,
    data: RotationConfigUpsert,
    db: Session = Depends(get_db),
):
    groups = split_legacy_order(data.base_order).order
    if len(set(groups)) != len(groups):
        raise HTTPException(status_code=400, detail="Rotation order has duplicate groups")
    repo = RotationRepositoryDB(db)
    return RotationConfigRead.model_validate(repo.upsert(organization_id, data))


@router.get("", response_model=RotationConfigRead)
def get_rotation_config(organization_id: str, db: Session = Depends(get_db)):
    repo = RotationRepositoryDB(db)
    config = repo.get(organization_id)
    if not config:
        raise HTTPException(status_code=404, detail="Rotation config not found")
    return RotationConfigRead.model_validate(config)


@router.get("/order", response_model=ResolvedOrderRead)
def get_resolved_order(
    organization_id: str,
    year: int = Query(..., ge=2000, le=2100),
    db: Session = Depends(get_db),
):
    """
    Turn order for a rotation year.
    Example: /organizations/acme/rotation/order?year=2027
    """
    repo = RotationRepositoryDB(db)
    config = repo.get(organization_id, year)
    return ResolvedOrderRead(
        organization_id=organization_id,
        year=year,
        allocation_mode=config.allocation_mode if config else "rotating_selection",
        order=repo.resolved_order(organization_id, year),
    )

from fastapi import APIRouter, Depends, HTTPException, Response, Query
from typing import Optional
from sqlalchemy.orm import Session
from datetime import date
import csv
from io import StringIO

from ..db import get_db
from ..repositories_db import SelectionStoreDB
from ..schemas import (
    GeneratePeriodsRequest,
    PeriodsRead,
    SelectionPeriodRead,
)

router = APIRouter(prefix="/organizations/{organization_id}/periods", tags=["periods"])


@router.post("/generate", response_model=PeriodsRead)
def generate_periods(
    organization_id: str,
    data: GeneratePeriodsRequest,
    db: Session = Depends(get_db),
):
    """
    Generate primary selection periods for selections opening in
    selection_year (stored as rotation year selection_year + 1).
    Calling it again returns the periods already stored.
    """
    store = SelectionStoreDB(db)
    if not store.get_rotation_config(organization_id):
        raise HTTPException(status_code=404, detail="Rotation config not found")

    periods = store.ensure_selection_periods(organization_id, data.selection_year)
    return PeriodsRead(
        organization_id=organization_id,
        rotation_year=data.selection_year + 1,
        periods=[SelectionPeriodRead.model_validate(p) for p in periods],
    )


@router.get("", response_model=PeriodsRead)
def list_periods(
    organization_id: str,
    year: int = Query(..., ge=2000, le=2100),
    phase: Optional[str] = Query(None, pattern="^(primary|secondary)$"),
    db: Session = Depends(get_db),
):
    store = SelectionStoreDB(db)
    periods = store.list_selection_periods(organization_id, year, phase)
    return PeriodsRead(
        organization_id=organization_id,
        rotation_year=year,
        periods=[SelectionPeriodRead.model_validate(p) for p in periods],
    )


@router.post("/{period_id}/complete", response_model=SelectionPeriodRead)
def complete_period(organization_id: str, period_id: int, db: Session = Depends(get_db)):
    store = SelectionStoreDB(db)
    try:
        period = store.complete_period(organization_id, period_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Period not found")
    return SelectionPeriodRead.model_validate(period)


@router.get("/export")
def export_periods(
    organization_id: str,
    year: int = Query(..., ge=2000, le=2100),
    format: str = Query("csv", pattern="^(csv|md|ics)$"),
    db: Session = Depends(get_db),
):
    store = SelectionStoreDB(db)
    periods = store.list_selection_periods(organization_id, year)
    if not periods:
        raise HTTPException(status_code=404, detail="No periods found for that year")

    # CSV export
    if format == "csv":
        buf = StringIO()
        writer = csv.writer(buf)
        writer.writerow(
            ["phase", "sequence_index", "group_name", "start_date", "end_date", "completed"]
        )
        for p in periods:
            writer.writerow(
                [
                    p.phase,
                    p.sequence_index,
                    p.group_name,
                    p.start_date.isoformat(),
                    p.end_date.isoformat(),
                    "yes" if p.completed else "",
                ]
            )
        return Response(
            content=buf.getvalue(),
            media_type="text/csv",
            headers={
                "Content-Disposition": f"attachment; filename=periods_{organization_id}_{year}.csv"
            },
        )

    # Markdown export
    if format == "md":
        lines = [
            f"# Selection periods {year}",
            "",
            "| # | Phase | Group | Start | End | Completed |",
            "|---|-------|-------|-------|-----|-----------|",
        ]
        for p in periods:
            lines.append(
                f"| {p.sequence_index + 1} | {p.phase} | {p.group_name} | "
                f"{p.start_date.isoformat()} | {p.end_date.isoformat()} | "
                f"{'yes' if p.completed else ''} |"
            )
        return Response(content="\n".join(lines), media_type="text/markdown")

    # ICS export: all-day events, DTEND is exclusive
    def fmt(d: date) -> str:
        return d.strftime("%Y%m%d")

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//CabinSelection//EN",
    ]
    for p in periods:
        lines.extend(
            [
                "BEGIN:VEVENT",
                f"UID:{organization_id}-{year}-{p.phase}-{p.sequence_index}@cabinsched",
                f"DTSTART;VALUE=DATE:{fmt(p.start_date)}",
                f"DTEND;VALUE=DATE:{fmt(p.end_date + date.resolution)}",
                f"SUMMARY:{p.group_name} selection period ({p.phase})",
                "END:VEVENT",
            ]
        )
    lines.append("END:VCALENDAR")
    return Response(
        content="\n".join(lines),
        media_type="text/calendar",
        headers={
            "Content-Disposition": f"attachment; filename=periods_{organization_id}_{year}.ics"
        },
    )

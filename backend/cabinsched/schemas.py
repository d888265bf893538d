from datetime import date, datetime
from pydantic import BaseModel, Field
from typing import List, Optional, Literal

DirectionPolicy = Literal["move_first_to_last", "move_last_to_first"]
AllocationMode = Literal[
    "rotating_selection", "static_weeks", "first_come_first_serve", "manual", "lottery"
]
PeriodPhase = Literal["primary", "secondary"]
SourceType = Literal["reservation", "selection_period", "work_weekend"]
ReminderKind = Literal[
    "7_day", "3_day", "1_day", "selection_start", "selection_ending", "secondary_deadline"
]
SecondaryState = Literal["not_started", "active", "turn_completed", "phase_done"]


# ----- Rotation config -----
class RotationConfigUpsert(BaseModel):
    base_year: int = Field(..., ge=2000, le=2100)
    base_order: List[str] = Field(default_factory=list)
    direction_policy: DirectionPolicy = "move_first_to_last"
    allocation_mode: AllocationMode = "rotating_selection"
    primary_window_days: int = Field(14, gt=0)
    secondary_window_days: int = Field(7, gt=0)
    primary_max_periods: int = Field(2, ge=0)
    secondary_max_periods: int = Field(1, ge=0)
    start_month: str = "October"
    enable_secondary_selection: bool = True


class RotationConfigRead(RotationConfigUpsert):
    id: int
    organization_id: str

    class Config:
        from_attributes = True


class ResolvedOrderRead(BaseModel):
    organization_id: str
    year: int
    allocation_mode: AllocationMode
    order: List[str]


# ----- Selection periods -----
class GeneratePeriodsRequest(BaseModel):
    selection_year: int = Field(..., ge=2000, le=2100)


class SelectionPeriodRead(BaseModel):
    id: int
    organization_id: str
    rotation_year: int
    phase: PeriodPhase
    group_name: str
    sequence_index: int
    start_date: date
    end_date: date
    completed: bool = False

    class Config:
        from_attributes = True


class PeriodsRead(BaseModel):
    organization_id: str
    rotation_year: int
    periods: List[SelectionPeriodRead]


# ----- Usage / turns -----
class UsageCounterUpdate(BaseModel):
    rotation_year: int
    group_name: str
    primary_used: int = Field(0, ge=0)
    primary_allowed: int = Field(2, ge=0)
    secondary_used: int = Field(0, ge=0)
    secondary_allowed: int = Field(1, ge=0)


class UsageCounterRead(UsageCounterUpdate):
    id: int

    class Config:
        from_attributes = True


class ActiveTurnUpdate(BaseModel):
    rotation_year: int
    current_group: Optional[str] = None


class SecondaryStatusRead(BaseModel):
    organization_id: str
    rotation_year: int
    current_group: Optional[str] = None
    current_group_index: int = 0
    started_at: Optional[datetime] = None
    turn_completed: bool = False

    class Config:
        from_attributes = True


class SecondaryActionRequest(BaseModel):
    rotation_year: int


class ExtensionCreate(BaseModel):
    rotation_year: int
    group_name: str
    extended_until: date
    reason: Optional[str] = None


class ExtensionRead(ExtensionCreate):
    id: int

    class Config:
        from_attributes = True


class ContactCreate(BaseModel):
    group_name: str
    lead_name: Optional[str] = None
    lead_email: Optional[str] = None


class ContactRead(ContactCreate):
    id: int

    class Config:
        from_attributes = True


# ----- Events feeding reminders -----
class ReservationCreate(BaseModel):
    group_name: str
    host_name: Optional[str] = None
    start_date: date
    end_date: date
    status: str = "confirmed"


class ReservationRead(ReservationCreate):
    id: int

    class Config:
        from_attributes = True


class WorkWeekendCreate(BaseModel):
    title: str
    start_date: date
    end_date: date
    status: str = "proposed"
    proposer_name: Optional[str] = None
    description: Optional[str] = None


class WorkWeekendRead(WorkWeekendCreate):
    id: int

    class Config:
        from_attributes = True


class ReminderSettingsUpdate(BaseModel):
    reservation_reminders_enabled: bool = True
    selection_reminders_enabled: bool = True
    work_weekend_reminders_enabled: bool = True
    remind_7_day: bool = True
    remind_3_day: bool = True
    remind_1_day: bool = True
    subject_template: Optional[str] = None
    message_template: Optional[str] = None


class ReminderSettingsRead(ReminderSettingsUpdate):
    class Config:
        from_attributes = True


# ----- Derived results -----
class ReminderInstance(BaseModel):
    id: str
    source_type: SourceType
    reminder_kind: ReminderKind
    send_at: datetime
    recipient: str
    group_name: str
    subject: str
    body: str
    event_start: date
    event_end: date


class QueueEntry(BaseModel):
    group_name: str
    start_date: date
    end_date: date
    source: Literal["scheduled", "computed"] = "scheduled"


class GroupDisplayInfo(BaseModel):
    group_name: str
    status: Literal["scheduled", "active", "completed"]
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days_until: Optional[int] = None
    days_remaining: Optional[int] = None
    is_current_turn: bool = False
    display_text: str = ""


class PhaseState(BaseModel):
    phase: Literal["primary", "secondary"]
    label: Literal[
        "primary",
        "secondary_not_started",
        "secondary_active",
        "secondary_turn_completed",
        "secondary_done",
    ]
    secondary_state: Optional[SecondaryState] = None
    active_group: Optional[str] = None
    order: List[str] = Field(default_factory=list)
    upcoming_queue: List[QueueEntry] = Field(default_factory=list)
    display_info: List[GroupDisplayInfo] = Field(default_factory=list)


class DispatchResult(BaseModel):
    organization_id: str
    dispatched: int
    error: Optional[str] = None

from datetime import datetime, date
from sqlalchemy import (
    Integer,
    String,
    DateTime,
    Date,
    Text,
    UniqueConstraint,
    Boolean,
    JSON,
)
from sqlalchemy.orm import Mapped, mapped_column
from .db import Base


class RotationConfig(Base):
    """
    One row per organization. base_order holds group names only; the
    allocation mode lives in its own column instead of being mixed into
    the order array.
    """
    __tablename__ = "rotation_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True
    )
    base_year: Mapped[int] = mapped_column(Integer, nullable=False)
    base_order: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    direction_policy: Mapped[str] = mapped_column(
        String(32), nullable=False, default="move_first_to_last"
    )
    allocation_mode: Mapped[str] = mapped_column(
        String(32), nullable=False, default="rotating_selection"
    )
    primary_window_days: Mapped[int] = mapped_column(Integer, nullable=False, default=14)
    secondary_window_days: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    primary_max_periods: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    secondary_max_periods: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    start_month: Mapped[str] = mapped_column(String(16), nullable=False, default="October")
    enable_secondary_selection: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class SelectionPeriod(Base):
    __tablename__ = "selection_periods"
    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "rotation_year",
            "phase",
            "sequence_index",
            name="uix_period_org_year_phase_seq",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    rotation_year: Mapped[int] = mapped_column(Integer, nullable=False)
    phase: Mapped[str] = mapped_column(String(16), nullable=False, default="primary")
    group_name: Mapped[str] = mapped_column(String(200), nullable=False)
    sequence_index: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )


class UsageCounter(Base):
    __tablename__ = "usage_counters"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "rotation_year", "group_name", name="uix_usage_org_year_group"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    rotation_year: Mapped[int] = mapped_column(Integer, nullable=False)
    group_name: Mapped[str] = mapped_column(String(200), nullable=False)
    primary_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    primary_allowed: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    secondary_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    secondary_allowed: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class ActiveTurn(Base):
    """Authoritative pointer to whose primary turn it is."""
    __tablename__ = "active_turns"
    __table_args__ = (
        UniqueConstraint("organization_id", "rotation_year", name="uix_turn_org_year"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    rotation_year: Mapped[int] = mapped_column(Integer, nullable=False)
    current_group: Mapped[str | None] = mapped_column(String(200), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class SecondaryPhaseStatus(Base):
    __tablename__ = "secondary_phase_status"
    __table_args__ = (
        UniqueConstraint("organization_id", "rotation_year", name="uix_secondary_org_year"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    rotation_year: Mapped[int] = mapped_column(Integer, nullable=False)
    current_group: Mapped[str | None] = mapped_column(String(200), nullable=True)
    current_group_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    turn_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class SelectionExtension(Base):
    """A group's selection window pushed past its scheduled end date."""
    __tablename__ = "selection_extensions"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "rotation_year", "group_name", name="uix_extension_org_year_group"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    rotation_year: Mapped[int] = mapped_column(Integer, nullable=False)
    group_name: Mapped[str] = mapped_column(String(200), nullable=False)
    extended_until: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)


class GroupContact(Base):
    __tablename__ = "group_contacts"
    __table_args__ = (
        UniqueConstraint("organization_id", "group_name", name="uix_contact_org_group"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    group_name: Mapped[str] = mapped_column(String(200), nullable=False)
    lead_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    lead_email: Mapped[str | None] = mapped_column(String(255), nullable=True)


class Reservation(Base):
    __tablename__ = "reservations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    group_name: Mapped[str] = mapped_column(String(200), nullable=False)
    host_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="confirmed")


class WorkWeekend(Base):
    __tablename__ = "work_weekends"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="proposed")
    proposer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class ReminderSettings(Base):
    __tablename__ = "reminder_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True
    )
    reservation_reminders_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    selection_reminders_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    work_weekend_reminders_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    remind_7_day: Mapped[bool] = mapped_column(Boolean, default=True)
    remind_3_day: Mapped[bool] = mapped_column(Boolean, default=True)
    remind_1_day: Mapped[bool] = mapped_column(Boolean, default=True)
    subject_template: Mapped[str | None] = mapped_column(Text, nullable=True)
    message_template: Mapped[str | None] = mapped_column(Text, nullable=True)

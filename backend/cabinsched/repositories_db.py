import logging
from typing import List, Optional, Set
from datetime import date, datetime
from sqlalchemy.orm import Session
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from .models_db import (
    RotationConfig,
    SelectionPeriod,
    UsageCounter,
    ActiveTurn,
    SecondaryPhaseStatus,
    SelectionExtension,
    GroupContact,
    Reservation,
    WorkWeekend,
    ReminderSettings,
)

from .schemas import (
    RotationConfigUpsert,
    UsageCounterUpdate,
    ExtensionCreate,
    ContactCreate,
    ReservationCreate,
    WorkWeekendCreate,
    ReminderSettingsUpdate,
)
from .changes import change_feed, ChangeFeed
from .rotation import resolve_for_year, split_legacy_order
from .scheduler import generate_selection_periods
from .phase import usage_by_group, next_secondary_group, secondary_lifecycle

logger = logging.getLogger(__name__)


class _Repository:
    def __init__(self, db: Session, feed: ChangeFeed = change_feed):
        self.db = db
        self.feed = feed

    def _commit(self, organization_id: str, topic: str) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.feed.publish(organization_id, topic)


# ----- Rotation config -----
class RotationRepositoryDB(_Repository):
    def get(self, organization_id: str, year: Optional[int] = None) -> Optional[RotationConfig]:
        # one config per organization; year is accepted for callers that
        # look configs up per rotation year
        return self.db.scalars(
            select(RotationConfig).where(RotationConfig.organization_id == organization_id)
        ).first()

    def upsert(self, organization_id: str, data: RotationConfigUpsert) -> RotationConfig:
        obj = self.get(organization_id)
        if obj is None:
            obj = RotationConfig(organization_id=organization_id)
            self.db.add(obj)
        values = data.model_dump()
        setup = split_legacy_order(values["base_order"])
        if setup.order != values["base_order"]:
            # legacy clients mix mode flags into the order array
            logger.info("Normalized legacy rotation order for %s", organization_id)
            values["base_order"] = setup.order
            if setup.mode != "rotating_selection":
                values["allocation_mode"] = setup.mode
        for key, value in values.items():
            setattr(obj, key, value)
        self._commit(organization_id, "rotation_config")
        self.db.refresh(obj)
        return obj

    def resolved_order(self, organization_id: str, year: int) -> List[str]:
        config = self.get(organization_id, year)
        if config is None:
            return []
        return resolve_for_year(
            config.base_order, config.base_year, year, config.direction_policy
        )


# ----- Selection state -----
class SelectionStoreDB(_Repository):
    """Read/write access to everything the phase tracker and reminders need."""

    def get_rotation_config(self, organization_id: str, year: Optional[int] = None):
        return RotationRepositoryDB(self.db, self.feed).get(organization_id, year)

    def list_selection_periods(
        self,
        organization_id: str,
        year: Optional[int] = None,
        phase: Optional[str] = None,
    ) -> List[SelectionPeriod]:
        stmt = select(SelectionPeriod).where(SelectionPeriod.organization_id == organization_id)
        if year is not None:
            stmt = stmt.where(SelectionPeriod.rotation_year == year)
        if phase is not None:
            stmt = stmt.where(SelectionPeriod.phase == phase)
        stmt = stmt.order_by(
            SelectionPeriod.rotation_year,
            SelectionPeriod.phase,
            SelectionPeriod.sequence_index,
        )
        return list(self.db.scalars(stmt).all())

    def insert_selection_periods(
        self, organization_id: str, rows: List[dict]
    ) -> List[SelectionPeriod]:
        """
        Insert one year's batch. If another writer got there first the
        unique constraint rejects the batch and the stored rows are
        returned instead.
        """
        if not rows:
            return []
        year = rows[0]["rotation_year"]
        phase = rows[0].get("phase", "primary")
        try:
            for r in rows:
                self.db.add(SelectionPeriod(organization_id=organization_id, **r))
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(
                "Periods for %s/%s (%s) already inserted by another writer, re-reading",
                organization_id,
                year,
                phase,
            )
            return self.list_selection_periods(organization_id, year, phase)

        self.feed.publish(organization_id, "selection_periods")
        return self.list_selection_periods(organization_id, year, phase)

    def ensure_selection_periods(
        self, organization_id: str, selection_year: int
    ) -> List[SelectionPeriod]:
        """
        Primary periods for selection_year's selections (stored under
        selection_year + 1). Generated once; later calls return the
        existing rows untouched.
        """
        reservation_year = selection_year + 1
        existing = self.list_selection_periods(organization_id, reservation_year, "primary")
        if existing:
            logger.info("Periods already exist for %s/%s", organization_id, reservation_year)
            return existing

        config = self.get_rotation_config(organization_id, reservation_year)
        if config is None:
            logger.warning("No rotation config for %s, no periods generated", organization_id)
            return []
        if config.allocation_mode != "rotating_selection":
            logger.info(
                "%s uses %s allocation, no selection periods",
                organization_id,
                config.allocation_mode,
            )
            return []

        order = resolve_for_year(
            config.base_order, config.base_year, reservation_year, config.direction_policy
        )
        raw_periods = generate_selection_periods(
            order,
            selection_year,
            window_days=config.primary_window_days,
            start_month=config.start_month,
        )
        logger.info(
            "Generating %d periods for %s selections (%s reservations) for %s",
            len(raw_periods),
            selection_year,
            reservation_year,
            organization_id,
        )
        return self.insert_selection_periods(organization_id, raw_periods)

    def complete_period(self, organization_id: str, period_id: int) -> SelectionPeriod:
        period = self.db.get(SelectionPeriod, period_id)
        if period is None or period.organization_id != organization_id:
            raise KeyError("period not found")
        period.completed = True
        self._commit(organization_id, "selection_periods")
        self.db.refresh(period)
        return period

    def completed_groups(self, organization_id: str, year: int) -> Set[str]:
        return {
            p.group_name
            for p in self.list_selection_periods(organization_id, year, "primary")
            if p.completed
        }

    # usage counters are written by the booking side; upsert is its entry point
    def get_usage_counters(self, organization_id: str, year: int) -> List[UsageCounter]:
        return list(
            self.db.scalars(
                select(UsageCounter)
                .where(
                    UsageCounter.organization_id == organization_id,
                    UsageCounter.rotation_year == year,
                )
                .order_by(UsageCounter.group_name)
            ).all()
        )

    def upsert_usage_counter(
        self, organization_id: str, data: UsageCounterUpdate
    ) -> UsageCounter:
        obj = self.db.scalars(
            select(UsageCounter).where(
                UsageCounter.organization_id == organization_id,
                UsageCounter.rotation_year == data.rotation_year,
                UsageCounter.group_name == data.group_name,
            )
        ).first()
        if obj is None:
            obj = UsageCounter(organization_id=organization_id)
            self.db.add(obj)
        for key, value in data.model_dump().items():
            setattr(obj, key, value)
        self._commit(organization_id, "usage_counters")
        self.db.refresh(obj)
        return obj

    def get_active_turn(self, organization_id: str, year: int) -> Optional[str]:
        turn = self.db.scalars(
            select(ActiveTurn).where(
                ActiveTurn.organization_id == organization_id,
                ActiveTurn.rotation_year == year,
            )
        ).first()
        return turn.current_group if turn else None

    def set_active_turn(
        self, organization_id: str, year: int, group_name: Optional[str]
    ) -> Optional[str]:
        turn = self.db.scalars(
            select(ActiveTurn).where(
                ActiveTurn.organization_id == organization_id,
                ActiveTurn.rotation_year == year,
            )
        ).first()
        if turn is None:
            turn = ActiveTurn(organization_id=organization_id, rotation_year=year)
            self.db.add(turn)
        turn.current_group = group_name
        self._commit(organization_id, "active_turn")
        return group_name

    # ----- secondary phase (state changes are external actions) -----
    def get_secondary_status(
        self, organization_id: str, year: int
    ) -> Optional[SecondaryPhaseStatus]:
        return self.db.scalars(
            select(SecondaryPhaseStatus).where(
                SecondaryPhaseStatus.organization_id == organization_id,
                SecondaryPhaseStatus.rotation_year == year,
            )
        ).first()

    def _secondary_context(self, organization_id: str, year: int):
        config = self.get_rotation_config(organization_id, year)
        if config is None:
            raise KeyError("rotation config not found")
        order = resolve_for_year(
            config.base_order, config.base_year, year, config.direction_policy
        )
        usage = usage_by_group(order, self.get_usage_counters(organization_id, year))
        return config, order, usage

    def start_secondary(
        self, organization_id: str, year: int, now: Optional[datetime] = None
    ) -> SecondaryPhaseStatus:
        status = self.get_secondary_status(organization_id, year)
        if status is not None and status.started_at is not None:
            raise ValueError("secondary selection already started")

        config, order, usage = self._secondary_context(organization_id, year)
        group, index = next_secondary_group(order, usage, None, config.secondary_max_periods)

        if status is None:
            status = SecondaryPhaseStatus(organization_id=organization_id, rotation_year=year)
            self.db.add(status)
        status.started_at = now or datetime.utcnow()
        status.current_group = group
        status.current_group_index = max(index, 0)
        status.turn_completed = False
        self._commit(organization_id, "secondary_status")
        self.db.refresh(status)
        return status

    def complete_secondary_turn(self, organization_id: str, year: int) -> SecondaryPhaseStatus:
        status = self.get_secondary_status(organization_id, year)
        if secondary_lifecycle(status) != "active":
            raise ValueError("no active secondary turn to complete")
        status.turn_completed = True
        self._commit(organization_id, "secondary_status")
        self.db.refresh(status)
        return status

    def advance_secondary(
        self, organization_id: str, year: int, now: Optional[datetime] = None
    ) -> SecondaryPhaseStatus:
        status = self.get_secondary_status(organization_id, year)
        state = secondary_lifecycle(status)
        if state not in ("active", "turn_completed"):
            raise ValueError(f"cannot advance secondary selection in state {state}")

        config, order, usage = self._secondary_context(organization_id, year)
        group, index = next_secondary_group(
            order, usage, status.current_group, config.secondary_max_periods
        )
        if group is None:
            logger.info("No group has secondary periods left for %s/%s", organization_id, year)
            status.current_group = None
        else:
            status.current_group = group
            status.current_group_index = index
            # each turn is timed from its own start
            status.started_at = now or datetime.utcnow()
        status.turn_completed = False
        self._commit(organization_id, "secondary_status")
        self.db.refresh(status)
        return status

    def end_secondary(self, organization_id: str, year: int) -> SecondaryPhaseStatus:
        status = self.get_secondary_status(organization_id, year)
        if status is None or status.started_at is None:
            raise ValueError("secondary selection has not started")
        status.current_group = None
        status.turn_completed = False
        self._commit(organization_id, "secondary_status")
        self.db.refresh(status)
        return status

    # ----- extensions / contacts -----
    def list_extensions(
        self, organization_id: str, year: Optional[int] = None
    ) -> List[SelectionExtension]:
        stmt = select(SelectionExtension).where(
            SelectionExtension.organization_id == organization_id
        )
        if year is not None:
            stmt = stmt.where(SelectionExtension.rotation_year == year)
        return list(self.db.scalars(stmt).all())

    def upsert_extension(
        self, organization_id: str, data: ExtensionCreate
    ) -> SelectionExtension:
        obj = self.db.scalars(
            select(SelectionExtension).where(
                SelectionExtension.organization_id == organization_id,
                SelectionExtension.rotation_year == data.rotation_year,
                SelectionExtension.group_name == data.group_name,
            )
        ).first()
        if obj is None:
            obj = SelectionExtension(organization_id=organization_id)
            self.db.add(obj)
        for key, value in data.model_dump().items():
            setattr(obj, key, value)
        self._commit(organization_id, "extensions")
        self.db.refresh(obj)
        return obj

    def list_contacts(self, organization_id: str) -> List[GroupContact]:
        return list(
            self.db.scalars(
                select(GroupContact).where(GroupContact.organization_id == organization_id)
            ).all()
        )

    def upsert_contact(self, organization_id: str, data: ContactCreate) -> GroupContact:
        obj = self.db.scalars(
            select(GroupContact).where(
                GroupContact.organization_id == organization_id,
                GroupContact.group_name == data.group_name,
            )
        ).first()
        if obj is None:
            obj = GroupContact(organization_id=organization_id)
            self.db.add(obj)
        for key, value in data.model_dump().items():
            setattr(obj, key, value)
        self._commit(organization_id, "contacts")
        self.db.refresh(obj)
        return obj


# ----- Reservations / work weekends / reminder settings -----
class EventsRepositoryDB(_Repository):
    def create_reservation(self, organization_id: str, data: ReservationCreate) -> Reservation:
        obj = Reservation(organization_id=organization_id, **data.model_dump())
        self.db.add(obj)
        self._commit(organization_id, "reservations")
        self.db.refresh(obj)
        return obj

    def list_reservations(
        self,
        organization_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[Reservation]:
        stmt = select(Reservation).where(Reservation.organization_id == organization_id)
        if start is not None:
            stmt = stmt.where(Reservation.start_date >= start)
        if end is not None:
            stmt = stmt.where(Reservation.start_date <= end)
        return list(self.db.scalars(stmt.order_by(Reservation.start_date, Reservation.id)).all())

    def create_work_weekend(self, organization_id: str, data: WorkWeekendCreate) -> WorkWeekend:
        obj = WorkWeekend(organization_id=organization_id, **data.model_dump())
        self.db.add(obj)
        self._commit(organization_id, "work_weekends")
        self.db.refresh(obj)
        return obj

    def list_work_weekends(self, organization_id: str) -> List[WorkWeekend]:
        return list(
            self.db.scalars(
                select(WorkWeekend)
                .where(WorkWeekend.organization_id == organization_id)
                .order_by(WorkWeekend.start_date, WorkWeekend.id)
            ).all()
        )

    def get_reminder_settings(self, organization_id: str) -> Optional[ReminderSettings]:
        return self.db.scalars(
            select(ReminderSettings).where(ReminderSettings.organization_id == organization_id)
        ).first()

    def upsert_reminder_settings(
        self, organization_id: str, data: ReminderSettingsUpdate
    ) -> ReminderSettings:
        obj = self.get_reminder_settings(organization_id)
        if obj is None:
            obj = ReminderSettings(organization_id=organization_id)
            self.db.add(obj)
        for key, value in data.model_dump().items():
            setattr(obj, key, value)
        self._commit(organization_id, "reminder_settings")
        self.db.refresh(obj)
        return obj

from sqlalchemy.orm import Session
from datetime import date, time
from typing import List, Optional, Tuple
import logging

from ..core.config import settings
from ..core.database import get_redis
from ..core.exceptions import InvalidRangeError, NotFoundError, OverlapError
from ..core.locks import availability_lock
from ..core.security import Actor, AuthorizationError
from ..core.time_range import TimeRange, truncate_to_minute, validate_local_times
from ..models.availability import AvailabilityRule, SpecificAvailability, Leave
from ..models.clinic_branch import ClinicBranch
from ..models.dentist import Dentist
from ..schemas.availability import (
    AvailabilityRuleCreate, AvailabilityRuleUpdate,
    SpecificAvailabilityCreate, SpecificAvailabilityUpdate,
    LeaveCreate, LeaveUpdate
)

logger = logging.getLogger(__name__)

def _times_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    return start_a < end_b and start_b < end_a

def _dates_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    # Leaves are inclusive on both ends
    return start_a <= end_b and start_b <= end_a

def _merged(changes: dict, field: str, current):
    """Value of ``field`` after a partial update; an explicit null keeps the stored value."""
    value = changes.get(field)
    return current if value is None else value

def _page(query, limit: Optional[int], offset: int):
    total = query.count()
    limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
    return query.offset(offset).limit(limit).all(), total

class AvailabilityService:
    """Weekly rules, date overrides and leaves, and the effective schedule they produce."""

    def __init__(self, db: Session, redis_client=None):
        self.db = db
        self.redis = redis_client if redis_client is not None else get_redis()

    # Lookups

    def get_dentist(self, dentist_id: int) -> Dentist:
        dentist = self.db.get(Dentist, dentist_id)
        if not dentist:
            raise NotFoundError("Dentist not found", f"No dentist found with id {dentist_id}")
        return dentist

    def get_dentist_by_user_id(self, user_id: int) -> Dentist:
        dentist = self.db.query(Dentist).filter(Dentist.user_id == user_id).first()
        if not dentist:
            raise NotFoundError("Dentist not found", f"No dentist profile for user {user_id}")
        return dentist

    def get_effective_availability(self, dentist_id: int, day: date) -> List[TimeRange]:
        """Working windows for ``day`` ordered by start.

        A leave covering the date empties the schedule. Otherwise any
        date-specific override replaces the weekly rules for that date.
        """
        self.get_dentist(dentist_id)

        on_leave = self.db.query(Leave).filter(
            Leave.dentist_id == dentist_id,
            Leave.start_date <= day,
            Leave.end_date >= day
        ).first()
        if on_leave:
            return []

        overrides = self.db.query(SpecificAvailability).filter(
            SpecificAvailability.dentist_id == dentist_id,
            SpecificAvailability.date == day
        ).all()
        if overrides:
            windows = [TimeRange.from_local(day, o.start_time, o.end_time) for o in overrides]
            return sorted(windows, key=lambda window: window.start)

        rules = self.db.query(AvailabilityRule).filter(
            AvailabilityRule.dentist_id == dentist_id,
            AvailabilityRule.day_of_week == day.weekday()
        ).all()

        windows = []
        for rule in rules:
            working = TimeRange.from_local(day, rule.start_time, rule.end_time)
            if rule.break_start_time is not None and rule.break_end_time is not None:
                lunch = TimeRange.from_local(day, rule.break_start_time, rule.break_end_time)
                windows.extend(working.subtract(lunch))
            else:
                windows.append(working)

        return sorted(windows, key=lambda window: window.start)

    # Weekly rules

    def get_rule(self, rule_id: int) -> AvailabilityRule:
        rule = self.db.get(AvailabilityRule, rule_id)
        if not rule:
            raise NotFoundError("Availability not found", f"No availability rule with id {rule_id}")
        return rule

    def list_rules(
        self,
        dentist_id: Optional[int] = None,
        day_of_week: Optional[int] = None,
        clinic_branch_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[AvailabilityRule], int]:
        query = self.db.query(AvailabilityRule)
        if dentist_id is not None:
            query = query.filter(AvailabilityRule.dentist_id == dentist_id)
        if day_of_week is not None:
            query = query.filter(AvailabilityRule.day_of_week == day_of_week)
        if clinic_branch_id is not None:
            query = query.filter(AvailabilityRule.clinic_branch_id == clinic_branch_id)

        query = query.order_by(
            AvailabilityRule.dentist_id, AvailabilityRule.day_of_week, AvailabilityRule.start_time
        )
        return _page(query, limit, offset)

    def add_rule(self, data: AvailabilityRuleCreate, actor: Actor) -> AvailabilityRule:
        dentist = self.get_dentist(data.dentist_id)
        self._check_can_manage(dentist, actor)
        self._check_branch(data.clinic_branch_id)

        start, end = truncate_to_minute(data.start_time), truncate_to_minute(data.end_time)
        break_start, break_end = self._validate_rule_times(
            start, end, data.break_start_time, data.break_end_time
        )

        with availability_lock(self.redis, dentist.id):
            self._check_rule_overlap(dentist.id, data.day_of_week, start, end)

            rule = AvailabilityRule(
                dentist_id=dentist.id,
                day_of_week=data.day_of_week,
                start_time=start,
                end_time=end,
                break_start_time=break_start,
                break_end_time=break_end,
                clinic_branch_id=data.clinic_branch_id,
            )
            self.db.add(rule)
            self.db.commit()
            self.db.refresh(rule)

        logger.info(f"Dentist {dentist.id} availability added for day {rule.day_of_week}: {start:%H:%M}-{end:%H:%M}")
        return rule

    def update_rule(self, rule_id: int, data: AvailabilityRuleUpdate, actor: Actor) -> AvailabilityRule:
        rule = self.get_rule(rule_id)
        self._check_can_manage(rule.dentist, actor)

        changes = data.model_dump(exclude_unset=True)
        if "clinic_branch_id" in changes:
            self._check_branch(changes["clinic_branch_id"])

        day_of_week = _merged(changes, "day_of_week", rule.day_of_week)
        start = truncate_to_minute(_merged(changes, "start_time", rule.start_time))
        end = truncate_to_minute(_merged(changes, "end_time", rule.end_time))
        break_start = changes.get("break_start_time", rule.break_start_time)
        break_end = changes.get("break_end_time", rule.break_end_time)
        break_start, break_end = self._validate_rule_times(start, end, break_start, break_end)

        with availability_lock(self.redis, rule.dentist_id):
            self._check_rule_overlap(rule.dentist_id, day_of_week, start, end, exclude_id=rule.id)

            rule.day_of_week = day_of_week
            rule.start_time = start
            rule.end_time = end
            rule.break_start_time = break_start
            rule.break_end_time = break_end
            if "clinic_branch_id" in changes:
                rule.clinic_branch_id = changes["clinic_branch_id"]

            self.db.commit()
            self.db.refresh(rule)

        return rule

    def delete_rule(self, rule_id: int, actor: Actor) -> None:
        rule = self.get_rule(rule_id)
        self._check_can_manage(rule.dentist, actor)

        with availability_lock(self.redis, rule.dentist_id):
            self.db.delete(rule)
            self.db.commit()

        logger.info(f"Availability rule {rule_id} deleted")

    # Date-specific overrides

    def get_override(self, override_id: int) -> SpecificAvailability:
        override = self.db.get(SpecificAvailability, override_id)
        if not override:
            raise NotFoundError(
                "Specific availability not found",
                f"No specific availability with id {override_id}",
            )
        return override

    def list_overrides(
        self,
        dentist_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        clinic_branch_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[SpecificAvailability], int]:
        query = self.db.query(SpecificAvailability)
        if dentist_id is not None:
            query = query.filter(SpecificAvailability.dentist_id == dentist_id)
        if date_from is not None:
            query = query.filter(SpecificAvailability.date >= date_from)
        if date_to is not None:
            query = query.filter(SpecificAvailability.date <= date_to)
        if clinic_branch_id is not None:
            query = query.filter(SpecificAvailability.clinic_branch_id == clinic_branch_id)

        query = query.order_by(SpecificAvailability.date, SpecificAvailability.start_time)
        return _page(query, limit, offset)

    def add_override(self, data: SpecificAvailabilityCreate, actor: Actor) -> SpecificAvailability:
        dentist = self.get_dentist(data.dentist_id)
        self._check_can_manage(dentist, actor)
        self._check_branch(data.clinic_branch_id)

        start, end = truncate_to_minute(data.start_time), truncate_to_minute(data.end_time)
        validate_local_times(start, end, "specific availability")

        with availability_lock(self.redis, dentist.id):
            self._check_override_overlap(dentist.id, data.date, start, end)

            override = SpecificAvailability(
                dentist_id=dentist.id,
                date=data.date,
                start_time=start,
                end_time=end,
                clinic_branch_id=data.clinic_branch_id,
            )
            self.db.add(override)
            self.db.commit()
            self.db.refresh(override)

        logger.info(f"Dentist {dentist.id} specific availability added on {data.date}: {start:%H:%M}-{end:%H:%M}")
        return override

    def update_override(
        self, override_id: int, data: SpecificAvailabilityUpdate, actor: Actor
    ) -> SpecificAvailability:
        override = self.get_override(override_id)
        self._check_can_manage(override.dentist, actor)

        changes = data.model_dump(exclude_unset=True)
        if "clinic_branch_id" in changes:
            self._check_branch(changes["clinic_branch_id"])

        day = _merged(changes, "date", override.date)
        start = truncate_to_minute(_merged(changes, "start_time", override.start_time))
        end = truncate_to_minute(_merged(changes, "end_time", override.end_time))
        validate_local_times(start, end, "specific availability")

        with availability_lock(self.redis, override.dentist_id):
            self._check_override_overlap(override.dentist_id, day, start, end, exclude_id=override.id)

            override.date = day
            override.start_time = start
            override.end_time = end
            if "clinic_branch_id" in changes:
                override.clinic_branch_id = changes["clinic_branch_id"]

            self.db.commit()
            self.db.refresh(override)

        return override

    def delete_override(self, override_id: int, actor: Actor) -> None:
        override = self.get_override(override_id)
        self._check_can_manage(override.dentist, actor)

        with availability_lock(self.redis, override.dentist_id):
            self.db.delete(override)
            self.db.commit()

    # Leaves

    def get_leave(self, leave_id: int) -> Leave:
        leave = self.db.get(Leave, leave_id)
        if not leave:
            raise NotFoundError("Leave not found", f"No leave with id {leave_id}")
        return leave

    def list_leaves(
        self,
        dentist_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[Leave], int]:
        query = self.db.query(Leave)
        if dentist_id is not None:
            query = query.filter(Leave.dentist_id == dentist_id)
        # A leave matches the window when any of its days falls inside it
        if date_from is not None:
            query = query.filter(Leave.end_date >= date_from)
        if date_to is not None:
            query = query.filter(Leave.start_date <= date_to)

        query = query.order_by(Leave.start_date)
        return _page(query, limit, offset)

    def add_leave(self, data: LeaveCreate, actor: Actor) -> Leave:
        dentist = self.get_dentist(data.dentist_id)
        self._check_can_manage(dentist, actor)
        self._validate_leave_dates(data.start_date, data.end_date)

        with availability_lock(self.redis, dentist.id):
            self._check_leave_overlap(dentist.id, data.start_date, data.end_date)

            leave = Leave(
                dentist_id=dentist.id,
                start_date=data.start_date,
                end_date=data.end_date,
                reason=data.reason,
            )
            self.db.add(leave)
            self.db.commit()
            self.db.refresh(leave)

        logger.info(f"Dentist {dentist.id} on leave {data.start_date}..{data.end_date}")
        return leave

    def update_leave(self, leave_id: int, data: LeaveUpdate, actor: Actor) -> Leave:
        leave = self.get_leave(leave_id)
        self._check_can_manage(leave.dentist, actor)

        changes = data.model_dump(exclude_unset=True)
        start_date = _merged(changes, "start_date", leave.start_date)
        end_date = _merged(changes, "end_date", leave.end_date)
        self._validate_leave_dates(start_date, end_date)

        with availability_lock(self.redis, leave.dentist_id):
            self._check_leave_overlap(leave.dentist_id, start_date, end_date, exclude_id=leave.id)

            leave.start_date = start_date
            leave.end_date = end_date
            if "reason" in changes:
                leave.reason = changes["reason"]

            self.db.commit()
            self.db.refresh(leave)

        return leave

    def delete_leave(self, leave_id: int, actor: Actor) -> None:
        leave = self.get_leave(leave_id)
        self._check_can_manage(leave.dentist, actor)

        with availability_lock(self.redis, leave.dentist_id):
            self.db.delete(leave)
            self.db.commit()

    # Helpers

    def _check_can_manage(self, dentist: Dentist, actor: Actor) -> None:
        """Only the dentist themselves or an administrator edits a schedule."""
        if actor.role.is_admin:
            return
        if dentist.user_id != actor.user_id:
            raise AuthorizationError("You can only manage your own availability")

    def _check_branch(self, clinic_branch_id: Optional[int]) -> None:
        if clinic_branch_id is not None and not self.db.get(ClinicBranch, clinic_branch_id):
            raise NotFoundError("Clinic branch not found", f"No clinic branch with id {clinic_branch_id}")

    def _validate_rule_times(
        self,
        start: time,
        end: time,
        break_start: Optional[time],
        break_end: Optional[time],
    ) -> Tuple[Optional[time], Optional[time]]:
        validate_local_times(start, end, "working hours")

        if break_start is None and break_end is None:
            return None, None
        if break_start is None or break_end is None:
            raise InvalidRangeError(
                "Invalid break",
                "Break start and end must be provided together",
            )

        break_start, break_end = truncate_to_minute(break_start), truncate_to_minute(break_end)
        validate_local_times(break_start, break_end, "break")
        if break_start < start or break_end > end:
            raise InvalidRangeError(
                "Invalid break",
                f"Break {break_start:%H:%M}-{break_end:%H:%M} must fall within working hours {start:%H:%M}-{end:%H:%M}",
            )
        return break_start, break_end

    def _validate_leave_dates(self, start_date: date, end_date: date) -> None:
        if start_date > end_date:
            raise InvalidRangeError(
                "Invalid leave",
                f"Leave start {start_date.isoformat()} is after its end {end_date.isoformat()}",
            )

    def _check_rule_overlap(
        self, dentist_id: int, day_of_week: int, start: time, end: time, exclude_id: Optional[int] = None
    ) -> None:
        query = self.db.query(AvailabilityRule).filter(
            AvailabilityRule.dentist_id == dentist_id,
            AvailabilityRule.day_of_week == day_of_week
        )
        if exclude_id is not None:
            query = query.filter(AvailabilityRule.id != exclude_id)

        for existing in query.all():
            if _times_overlap(start, end, existing.start_time, existing.end_time):
                logger.warning(f"Rejected overlapping availability for dentist {dentist_id} on day {day_of_week}")
                raise OverlapError(
                    "Availability overlaps",
                    f"{start:%H:%M}-{end:%H:%M} overlaps existing availability "
                    f"{existing.start_time:%H:%M}-{existing.end_time:%H:%M}",
                )

    def _check_override_overlap(
        self, dentist_id: int, day: date, start: time, end: time, exclude_id: Optional[int] = None
    ) -> None:
        query = self.db.query(SpecificAvailability).filter(
            SpecificAvailability.dentist_id == dentist_id,
            SpecificAvailability.date == day
        )
        if exclude_id is not None:
            query = query.filter(SpecificAvailability.id != exclude_id)

        for existing in query.all():
            if _times_overlap(start, end, existing.start_time, existing.end_time):
                raise OverlapError(
                    "Specific availability overlaps",
                    f"{start:%H:%M}-{end:%H:%M} overlaps existing specific availability "
                    f"{existing.start_time:%H:%M}-{existing.end_time:%H:%M} on {day.isoformat()}",
                )

    def _check_leave_overlap(
        self, dentist_id: int, start_date: date, end_date: date, exclude_id: Optional[int] = None
    ) -> None:
        query = self.db.query(Leave).filter(Leave.dentist_id == dentist_id)
        if exclude_id is not None:
            query = query.filter(Leave.id != exclude_id)

        for existing in query.all():
            if _dates_overlap(start_date, end_date, existing.start_date, existing.end_date):
                raise OverlapError(
                    "Leave overlaps",
                    f"Leave {start_date.isoformat()}..{end_date.isoformat()} overlaps existing leave "
                    f"{existing.start_date.isoformat()}..{existing.end_date.isoformat()}",
                )

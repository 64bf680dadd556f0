# taskflow/core/task_rules.py
"""
Business rules shared by the store-backed operations and the board cache:
parent status derivation, timer accounting and board positions.
"""
from datetime import datetime, timezone
from typing import Iterable, NamedTuple, Optional

from taskflow.db.models.enums import TaskStatus, TaskPriority, TimerStatus


class StatusDerivation:
    """Derive a parent task's status from its direct children"""

    # Any of these on a child means work on the parent has started
    STARTED_STATUSES = frozenset({TaskStatus.IN_PROGRESS, TaskStatus.DONE, TaskStatus.BLOCKED})

    TIMER_MODES = {
        TaskStatus.IN_PROGRESS: TimerStatus.WORKING,
        TaskStatus.BREAK: TimerStatus.BREAK,
    }

    @classmethod
    def derive_parent_status(cls, child_statuses: Iterable[TaskStatus]) -> Optional[TaskStatus]:
        """
        Compute the parent status for the given child statuses.

        Returns None for a parent without children, whose status is then
        independent of any derivation.
        """
        statuses = [TaskStatus(status) for status in child_statuses]
        if not statuses:
            return None
        if all(status == TaskStatus.DONE for status in statuses):
            return TaskStatus.DONE
        if any(status in cls.STARTED_STATUSES for status in statuses):
            return TaskStatus.IN_PROGRESS
        return TaskStatus.TO_DO

    @classmethod
    def timer_mode_for(cls, status: TaskStatus) -> TimerStatus:
        """Timer state implied by moving a task into `status`"""
        return cls.TIMER_MODES.get(TaskStatus(status), TimerStatus.IDLE)


class TimerState(NamedTuple):
    timer_status: TimerStatus
    timer_started_at: Optional[datetime]
    total_time_spent: int


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps (SQLite) as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TimerAccounting:
    """Working/break sessions and accrual into total_time_spent"""

    @staticmethod
    def elapsed_seconds(started_at: datetime, now: datetime) -> int:
        """Whole seconds between start and now; clock skew yields 0"""
        delta_ms = int((as_utc(now) - as_utc(started_at)).total_seconds() * 1000)
        return max(delta_ms // 1000, 0)

    @classmethod
    def accrued_total(cls, state: TimerState, now: datetime) -> int:
        """Total after closing the running session; break time never counts"""
        total = state.total_time_spent or 0
        if state.timer_status == TimerStatus.WORKING and state.timer_started_at is not None:
            total += cls.elapsed_seconds(state.timer_started_at, now)
        return total

    @classmethod
    def stop(cls, state: TimerState, now: datetime) -> TimerState:
        return TimerState(TimerStatus.IDLE, None, cls.accrued_total(state, now))

    @classmethod
    def start(cls, state: TimerState, mode: TimerStatus, now: datetime) -> TimerState:
        """Start a new session, committing any working time still running"""
        mode = TimerStatus(mode)
        if mode == TimerStatus.IDLE:
            raise ValueError("A timer session must be 'working' or 'break'")
        return TimerState(mode, now, cls.accrued_total(state, now))

    @classmethod
    def for_status(cls, state: TimerState, status: TaskStatus, now: datetime) -> TimerState:
        """
        Timer change coupled to a status write.

        A session already running in the mode the status implies is left
        untouched, so repeating a status never accrues or restarts anything.
        """
        mode = StatusDerivation.timer_mode_for(status)
        if mode == TimerStatus.IDLE:
            return cls.stop(state, now)
        if state.timer_status == mode and state.timer_started_at is not None:
            return state
        return cls.start(state, mode, now)


class PositionAssignment:
    """Fractional board positions; the board lists positions descending"""

    EDGE_GAP = 10.0

    @staticmethod
    def initial_position(max_position: Optional[float], priority: TaskPriority) -> float:
        """New tasks go on top of their priority tier, or at the tier base weight"""
        if not max_position:
            return TaskPriority(priority).base_weight
        return float(max_position) + 1

    @classmethod
    def position_between(
            cls,
            above: Optional[float],
            below: Optional[float],
            default: float,
            gap: Optional[float] = None
    ) -> float:
        """
        Position for a task dropped between two neighbours.

        `above` is the neighbour rendered above the slot (higher position),
        `below` the one rendered under it. Without neighbours `default` is used.
        """
        gap = cls.EDGE_GAP if gap is None else gap
        if above is not None and below is not None:
            return (float(above) + float(below)) / 2
        if below is not None:
            return float(below) + gap
        if above is not None:
            return float(above) - gap
        return float(default)

# taskflow/core/board_cache.py
"""
Optimistic board state for clients.

Holds the rows of one project board keyed by task UUID and applies the same
transitions the API applies (status changes with timer coupling and parent
derivation, board moves with the subtask cascade, inserts and removals), so
the optimistic board matches what the server returns. `reconcile` swaps the
optimistic rows for the authoritative ones.
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Union
from uuid import UUID

from loguru import logger

from taskflow.core.config import settings
from taskflow.api.v1.schemas.tasks import TaskResponse
from taskflow.core.task_rules import (
    StatusDerivation, TimerAccounting, TimerState, PositionAssignment, as_utc
)
from taskflow.db.models.enums import TaskStatus, TaskType, TimerStatus

Row = Union[TaskResponse, dict]


def _board_key(row: TaskResponse):
    # Same order as the list endpoint: position, then newest first
    return (row.position, as_utc(row.created_at))


class BoardCache:
    """In-memory board for a single project"""

    def __init__(self, rows: Iterable[Row] = (), edge_gap: Optional[float] = None):
        self._rows: Dict[UUID, TaskResponse] = {}
        self.edge_gap = settings.POSITION_EDGE_GAP if edge_gap is None else edge_gap
        self.reconcile(rows)

    # -------------------- loading --------------------
    def reconcile(self, rows: Iterable[Row]) -> None:
        """Replace the whole board with rows from the server"""
        self._rows = {}
        for raw in rows:
            row = raw if isinstance(raw, TaskResponse) else TaskResponse.model_validate(raw)
            self._rows[row.id] = row
        logger.debug(f"Board cache reconciled with {len(self._rows)} tasks")

    # -------------------- queries --------------------
    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, task_id: UUID) -> bool:
        return task_id in self._rows

    def get(self, task_id: UUID) -> Optional[TaskResponse]:
        return self._rows.get(task_id)

    def children(self, task_id: UUID) -> List[TaskResponse]:
        return sorted(
            (row for row in self._rows.values() if row.parent_id == task_id),
            key=_board_key,
            reverse=True
        )

    def column(self, status: TaskStatus) -> List[TaskResponse]:
        """Top-level tasks in a status column, highest position first"""
        status = TaskStatus(status)
        return sorted(
            (row for row in self._rows.values() if row.status == status and row.parent_id is None),
            key=_board_key,
            reverse=True
        )

    def columns(self) -> Dict[TaskStatus, List[TaskResponse]]:
        return {status: self.column(status) for status in TaskStatus}

    # -------------------- transitions --------------------
    def insert(self, row: Row) -> TaskResponse:
        """Add a task created optimistically (or pushed by another client)"""
        row = row if isinstance(row, TaskResponse) else TaskResponse.model_validate(row)
        self._rows[row.id] = row
        self._sync_parent(row.parent_id)
        return row

    def remove(self, task_id: UUID) -> bool:
        """Drop a task and its subtasks; the former parent is re-derived"""
        row = self._rows.pop(task_id, None)
        if row is None:
            return False
        for child in self.children(task_id):
            self._rows.pop(child.id, None)
        self._sync_parent(row.parent_id)
        return True

    def set_status(self, task_id: UUID, status: TaskStatus, now: Optional[datetime] = None) -> TaskResponse:
        now = now or datetime.now(timezone.utc)
        row = self._apply_status(self._require(task_id), status, now)
        self._sync_parent(row.parent_id)
        return self._rows[task_id]

    def move(
            self,
            task_id: UUID,
            position: Optional[float] = None,
            above_id: Optional[UUID] = None,
            below_id: Optional[UUID] = None,
            status: Optional[TaskStatus] = None,
            now: Optional[datetime] = None
    ) -> TaskResponse:
        """
        Drop a task on the board.

        Without an explicit position it lands between the `above_id` and
        `below_id` neighbours. A status moves it to another column and
        cascades that status to its subtasks.
        """
        now = now or datetime.now(timezone.utc)
        row = self._require(task_id)

        if position is None:
            above = self._rows.get(above_id) if above_id else None
            below = self._rows.get(below_id) if below_id else None
            position = PositionAssignment.position_between(
                above.position if above else None,
                below.position if below else None,
                default=row.priority.base_weight,
                gap=self.edge_gap
            )

        row = row.model_copy(update={"position": position})
        self._rows[task_id] = row

        if status is not None:
            self._apply_status(row, status, now)
            for child in self.children(task_id):
                self._apply_status(child, status, now)
            self._sync_parent(row.parent_id)

        return self._rows[task_id]

    def start_timer(self, task_id: UUID, mode: TimerStatus, now: Optional[datetime] = None) -> TaskResponse:
        now = now or datetime.now(timezone.utc)
        row = self._require(task_id)
        return self._write_timer(row, TimerAccounting.start(self._timer_state(row), mode, now))

    def stop_timer(self, task_id: UUID, now: Optional[datetime] = None) -> TaskResponse:
        now = now or datetime.now(timezone.utc)
        row = self._require(task_id)
        return self._write_timer(row, TimerAccounting.stop(self._timer_state(row), now))

    # -------------------- helpers --------------------
    def _require(self, task_id: UUID) -> TaskResponse:
        row = self._rows.get(task_id)
        if row is None:
            raise KeyError(f"Task {task_id} is not on this board")
        return row

    @staticmethod
    def _timer_state(row: TaskResponse) -> TimerState:
        return TimerState(row.timer_status, row.timer_started_at, row.total_time_spent)

    def _write_timer(self, row: TaskResponse, state: TimerState) -> TaskResponse:
        update = {
            "timer_status": state.timer_status,
            "timer_started_at": state.timer_started_at,
        }
        # Big tasks report the subtask rollup, not their own counter
        if row.type != TaskType.BIG:
            update["total_time_spent"] = state.total_time_spent
        updated = row.model_copy(update=update)
        self._rows[row.id] = updated
        self._refresh_rollup(updated.parent_id)
        return updated

    def _apply_status(self, row: TaskResponse, status: TaskStatus, now: datetime) -> TaskResponse:
        status = TaskStatus(status)
        state = TimerAccounting.for_status(self._timer_state(row), status, now)
        row = row.model_copy(update={"status": status})
        self._rows[row.id] = row
        return self._write_timer(row, state)

    def _sync_parent(self, parent_id: Optional[UUID]) -> None:
        parent = self._rows.get(parent_id) if parent_id else None
        if parent is None:
            return

        self._refresh_rollup(parent_id)
        derived = StatusDerivation.derive_parent_status(row.status for row in self.children(parent_id))
        if derived is not None and derived != parent.status:
            self._rows[parent_id] = self._rows[parent_id].model_copy(update={"status": derived})

    def _refresh_rollup(self, parent_id: Optional[UUID]) -> None:
        parent = self._rows.get(parent_id) if parent_id else None
        if parent is None:
            return

        children = self.children(parent_id)
        update = {
            "subtask_count": len(children),
            "subtasks_done": sum(1 for child in children if child.status == TaskStatus.DONE),
        }
        if parent.type == TaskType.BIG:
            update["total_time_spent"] = sum(child.total_time_spent for child in children)
        self._rows[parent_id] = parent.model_copy(update=update)

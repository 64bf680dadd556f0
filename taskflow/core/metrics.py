# taskflow/core/metrics.py
"""Prometheus counters for the task engine (exposed on /metrics)"""
from prometheus_client import Counter

TASK_STATUS_TRANSITIONS = Counter(
    'taskflow_task_status_transitions_total',
    'Task status writes by resulting status and origin',
    ['status', 'origin']
)

TIMER_SESSIONS = Counter(
    'taskflow_timer_sessions_total',
    'Timer sessions closed, by session mode',
    ['mode']
)

TRACKED_SECONDS = Counter(
    'taskflow_tracked_seconds_total',
    'Working seconds accrued into task totals'
)


def record_status(status, origin: str) -> None:
    TASK_STATUS_TRANSITIONS.labels(status=getattr(status, "value", status), origin=origin).inc()


def record_timer_close(mode, accrued_seconds: int) -> None:
    TIMER_SESSIONS.labels(mode=getattr(mode, "value", mode)).inc()
    if accrued_seconds > 0:
        TRACKED_SECONDS.inc(accrued_seconds)

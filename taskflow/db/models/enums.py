# taskflow/db/models/enums.py
import enum


class TaskStatus(str, enum.Enum):
    TO_DO = "To Do"
    IN_PROGRESS = "In Progress"
    BLOCKED = "Blocked"
    DONE = "Done"
    BREAK = "Break"


class TaskPriority(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"

    @property
    def base_weight(self) -> float:
        """Ordering weight of the tier; higher tiers sort first on the board"""
        return PRIORITY_BASE_WEIGHTS[self]


PRIORITY_BASE_WEIGHTS = {
    TaskPriority.LOW: 1000.0,
    TaskPriority.MEDIUM: 2000.0,
    TaskPriority.HIGH: 3000.0,
    TaskPriority.URGENT: 4000.0,
}


class TaskType(str, enum.Enum):
    BIG = "big"
    SMALL = "small"


class TimerStatus(str, enum.Enum):
    IDLE = "idle"
    WORKING = "working"
    BREAK = "break"


class ProjectStatus(str, enum.Enum):
    PLANNING = "Planning"
    ACTIVE = "Active"
    ON_HOLD = "On Hold"
    COMPLETED = "Completed"


class MemberRole(str, enum.Enum):
    ADMIN = "Admin"
    MEMBER = "Member"


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"

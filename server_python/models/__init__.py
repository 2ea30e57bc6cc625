from .task import (
    TaskStatus,
    TERMINAL_STATUSES,
    TaskEventType,
    TaskSnapshot,
    TaskEvent,
    ChainEntry,
    SystemStatus,
    utc_now,
    to_jsonable,
)

__all__ = [
    # Task
    "TaskStatus",
    "TERMINAL_STATUSES",
    "TaskEventType",
    "TaskSnapshot",
    "TaskEvent",
    "ChainEntry",
    "SystemStatus",
    "utc_now",
    "to_jsonable",
]

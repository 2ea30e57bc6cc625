from enum import Enum
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_serializer
from pydantic_core import to_jsonable_python


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    BLOCKED = "blocked"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({
    TaskStatus.COMPLETED,
    TaskStatus.FAILED,
    TaskStatus.CANCELLED,
})


class TaskEventType(str, Enum):
    STATUS_CHANGE = "status_change"
    FORCE_COMPLETE = "force_complete"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_jsonable(value: Any) -> Any:
    """Best-effort JSON projection of an opaque payload."""
    if isinstance(value, BaseException):
        return {"type": type(value).__name__, "message": str(value)}
    return to_jsonable_python(value, serialize_unknown=True)


class TaskSnapshot(BaseModel):
    """Serializable projection of a task. Never carries the completion future."""

    id: str
    status: TaskStatus
    dependencies: List[str] = Field(default_factory=list)
    dependents: List[str] = Field(default_factory=list)
    worker_hint: Optional[str] = None
    assigned_worker: Optional[str] = None
    result: Any = None
    error: Any = None
    cancelled_by: Optional[str] = None  # failed ancestor that cascaded into this task
    metadata: Any = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @field_serializer("result", "error", "metadata", when_used="json")
    def _serialize_payload(self, value: Any) -> Any:
        return to_jsonable(value)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class TaskEvent(BaseModel):
    type: TaskEventType = TaskEventType.STATUS_CHANGE
    taskId: str
    oldStatus: Optional[TaskStatus] = None
    newStatus: TaskStatus
    timestamp: datetime = Field(default_factory=utc_now)
    snapshot: Dict[str, Any] = Field(default_factory=dict)
    hasResult: bool = False
    hasError: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class ChainEntry(BaseModel):
    taskId: str
    status: TaskStatus
    depth: int
    dependencies: List[str] = Field(default_factory=list)
    dependents: List[str] = Field(default_factory=list)


class SystemStatus(BaseModel):
    totalTasks: int = 0
    statusCounts: Dict[str, int] = Field(default_factory=dict)
    activeFutures: int = 0
    runningTasks: int = 0
    dependencyGraphSize: int = 0
    timestamp: datetime = Field(default_factory=utc_now)

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator


class Priority(str, Enum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    VERY_LOW = "Very Low"


class Category(str, Enum):
    WORK = "Work"
    PERSONAL = "Personal"
    HEALTH = "Health"
    STUDY = "Study"


class StatusFilter(str, Enum):
    ALL = "all"
    PAST_DUE = "past-due"
    DUE_TODAY = "due-today"
    DUE_THIS_WEEK = "due-this-week"
    UPCOMING = "upcoming"
    COMPLETED = "completed"


ALL = "all"

# Grace period for form submissions that race the clock
DUE_DATE_GRACE_SECONDS = 60


class Task(BaseModel):
    # Snapshots are shared between consumers, so a task never changes in place
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    due_date: datetime  # timezone-aware
    # Plain strings so legacy rows with values outside the enums still load
    priority: str
    category: str
    completed: bool = False
    created_at: datetime
    reminder_sent: bool = False
    duration_minutes: Optional[int] = None  # Estimated duration, set by the routine planner


def _require_title(value: str) -> str:
    value = value.strip()
    if len(value) < 2:
        raise ValueError("Title must be at least 2 characters.")
    return value


def _require_future(value: datetime) -> datetime:
    if value.timestamp() <= datetime.now().timestamp() - DUE_DATE_GRACE_SECONDS:
        raise ValueError("Due date and time must be in the future.")
    return value


class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    due_date: AwareDatetime
    priority: Priority = Priority.MEDIUM
    category: Category = Category.PERSONAL
    duration_minutes: Optional[int] = Field(default=None, gt=0)

    @field_validator("title")
    @classmethod
    def _check_title(cls, value: str) -> str:
        return _require_title(value)

    @field_validator("due_date")
    @classmethod
    def _check_due_date(cls, value: datetime) -> datetime:
        return _require_future(value)


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[AwareDatetime] = None
    priority: Optional[Priority] = None
    category: Optional[Category] = None
    completed: Optional[bool] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)

    @field_validator("title")
    @classmethod
    def _check_title(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _require_title(value)

    @field_validator("due_date")
    @classmethod
    def _check_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return None if value is None else _require_future(value)


class ParsedTask(BaseModel):
    """A candidate task returned by the routine parser, not yet stored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str = Field(min_length=1)
    description: Optional[str] = None
    priority: Priority
    category: Category
    duration: Optional[int] = Field(default=None, ge=0)  # minutes
    due_date: AwareDatetime = Field(alias="dueDate")


class RoutineParsingOutput(BaseModel):
    tasks: list[ParsedTask]


class RoutineRequest(BaseModel):
    routine_description: str


class RoutineBatchRequest(BaseModel):
    tasks: list[ParsedTask]


class PrioritySuggestionRequest(BaseModel):
    task_description: str = Field(min_length=1)


class PrioritySuggestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    suggested_priority: Priority = Field(alias="suggestedPriority")
    explanation: str


class NotificationPreference(BaseModel):
    enabled: bool


class PushTokenRegistration(BaseModel):
    token: str = Field(min_length=1)


class DistributionEntry(BaseModel):
    name: str
    value: int


class TrendEntry(BaseModel):
    date: str  # YYYY-MM-DD
    count: int


class TaskStats(BaseModel):
    total_tasks: int
    completed_tasks: int
    pending_tasks: int
    overdue_tasks: int
    completion_rate: float  # percent
    priority_distribution: list[DistributionEntry]
    category_distribution: list[DistributionEntry]
    completion_trend: list[TrendEntry]


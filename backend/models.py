from pydantic import BaseModel, Field
from typing import Literal, Optional

# Sentinel used in view state for the "no category" bucket
GENERAL_SECTION_ID = -1


class Category(BaseModel):
    id: int
    name: str
    sort_order: int = 0


class Task(BaseModel):
    id: int
    title: str
    is_completed: bool = False
    date: Optional[int] = None  # epoch millis; date-only or with time of day
    category_id: Optional[int] = None  # None = general bucket
    is_week_task: bool = False  # date is the Monday 00:00 of the task's week


class CategoryCreate(BaseModel):
    name: str


class CategoryRename(BaseModel):
    name: str


class CategoryOrder(BaseModel):
    category_ids: list[int]


class TaskCreate(BaseModel):
    title: str
    date: Optional[int] = None
    category_id: Optional[int] = None
    is_week_task: bool = False


class TaskRename(BaseModel):
    title: str


class GeneralTitle(BaseModel):
    title: str


class WeekShift(BaseModel):
    delta: int


class WeekGoto(BaseModel):
    date: int


class ParityUpdate(BaseModel):
    parity: Literal[1, 2]


class ViewState(BaseModel):
    """Transient UI state. Never persisted by the core, but serializable."""
    expanded_category_ids: set[int] = Field(default_factory=set)
    current_week_start: int


class ListSection(BaseModel):
    """One collapsible block of the list view."""
    id: int  # category id, or GENERAL_SECTION_ID
    title: str
    category: Optional[Category] = None
    tasks: list[Task] = Field(default_factory=list)
    task_count: int = 0
    is_expanded: bool = False


class DayTasks(BaseModel):
    date: int  # day start, epoch millis
    tasks: list[Task] = Field(default_factory=list)


class WeekOverview(BaseModel):
    week_start: int
    week_end: int  # start of the week's Sunday
    is_current_week: bool
    parity: int
    week_tasks: list[Task] = Field(default_factory=list)
    days: list[DayTasks] = Field(default_factory=list)

import logging
from typing import Iterable, Optional

import database
import preferences
import week_parity
from live import LiveQuery, StateCell
from models import (
    GENERAL_SECTION_ID,
    Category,
    DayTasks,
    ListSection,
    Task,
    ViewState,
    WeekOverview,
)

logger = logging.getLogger(__name__)


def _is_blank(text: Optional[str]) -> bool:
    return text is None or not text.strip()


class PlannerService:
    """
    Commands and live collections behind the planner views.

    Blank text input is a silent no-op: the command returns None and nothing is
    written. Storage failures raise database.StorageError and are not retried.
    Reads are live: subscribe to `categories`, `tasks`, `general_title`,
    `week_parity`, `expanded_category_ids` or `current_week_start` to get the
    current snapshot followed by a fresh one after every relevant change.
    """

    def __init__(self, view_state: Optional[ViewState] = None, now: Optional[int] = None):
        hub = database.changes
        if view_state is None:
            view_state = ViewState(current_week_start=week_parity.current_week_start(now))

        # Transient view state, never persisted
        self.expanded_category_ids = StateCell(frozenset(view_state.expanded_category_ids))
        self.current_week_start = StateCell(week_parity.week_start(view_state.current_week_start))

        self.categories = LiveQuery(database.get_categories, hub=hub, tables=("categories",))
        self.tasks = LiveQuery(database.get_all_tasks, hub=hub, tables=("tasks",))
        self.general_title = LiveQuery(preferences.get_general_title, hub=hub, tables=("preferences",))
        self.week_parity = LiveQuery(
            lambda: week_parity.get_week_parity(self.current_week_start.value),
            hub=hub,
            tables=("preferences",),
            depends_on=(self.current_week_start,),
        )
        self.sections = LiveQuery(
            self.list_sections,
            hub=hub,
            tables=("categories", "tasks", "preferences"),
            depends_on=(self.expanded_category_ids,),
        )
        self.week = LiveQuery(
            self.week_overview,
            hub=hub,
            tables=("tasks", "preferences"),
            depends_on=(self.current_week_start,),
        )
        self._hub = hub

    # --- Categories ---
    def add_category(self, name: str) -> Optional[Category]:
        if _is_blank(name):
            logger.debug("Ignoring blank category name")
            return None
        # Read-then-write: two racing calls may share a sort_order
        sort_order = database.max_category_sort_order() + 1
        return database.insert_category(name.strip(), sort_order)

    def rename_category(self, category: Category, new_name: str) -> Optional[Category]:
        if _is_blank(new_name):
            return None
        renamed = category.model_copy(update={"name": new_name.strip()})
        if not database.update_category(renamed):
            return None
        return renamed

    def delete_category(self, category: Category) -> bool:
        """Delete the category and every task filed under it."""
        return database.delete_category(category.id)

    def reorder_categories(self, ordered: Iterable[Category]) -> list[Category]:
        """Persist the given display order as sort_order 0, 1, 2, ... in one batch."""
        reordered = [
            category.model_copy(update={"sort_order": index})
            for index, category in enumerate(ordered)
        ]
        database.update_categories(reordered)
        return reordered

    def clear_category_tasks(self, category_id: Optional[int]) -> int:
        """Delete all tasks of a category, or of the general bucket when category_id is None."""
        if category_id is None:
            return database.delete_general_tasks()
        return database.delete_tasks_by_category(category_id)

    def toggle_category_expand(self, category_id: int) -> frozenset[int]:
        """Flip a section open/closed. GENERAL_SECTION_ID stands for the general bucket."""
        self.expanded_category_ids.update(
            lambda ids: ids - {category_id} if category_id in ids else ids | {category_id}
        )
        return self.expanded_category_ids.value

    # --- Tasks ---
    def add_task(
        self,
        title: str,
        date: Optional[int] = None,
        category_id: Optional[int] = None,
        is_week_task: bool = False
    ) -> Optional[Task]:
        """
        Create a task. A week task's date is moved to the Monday 00:00 of its
        week; any other date is stored as given, time of day included.
        """
        if _is_blank(title):
            logger.debug("Ignoring blank task title")
            return None
        if is_week_task and date is not None:
            date = week_parity.week_start(date)
        return database.insert_task(title.strip(), date, category_id, is_week_task)

    def toggle_task(self, task: Task) -> Task:
        toggled = task.model_copy(update={"is_completed": not task.is_completed})
        database.update_task(toggled)
        return toggled

    def rename_task(self, task: Task, new_title: str) -> Optional[Task]:
        if _is_blank(new_title):
            return None
        renamed = task.model_copy(update={"title": new_title.strip()})
        if not database.update_task(renamed):
            return None
        return renamed

    def delete_task(self, task: Task) -> bool:
        return database.delete_task(task.id)

    def tasks_for_date(self, date: int) -> LiveQuery:
        """Live single-day tasks of the calendar day containing date. Week tasks never appear."""
        start = week_parity.start_of_day(date)
        end = week_parity.next_day_start(date)
        return LiveQuery(
            lambda: [t for t in database.get_tasks_in_range(start, end) if not t.is_week_task],
            hub=self._hub,
            tables=("tasks",),
        )

    def week_tasks(self, week_start: int) -> LiveQuery:
        """Live week tasks of the week containing week_start."""
        aligned = week_parity.week_start(week_start)
        return LiveQuery(lambda: database.get_week_tasks(aligned), hub=self._hub, tables=("tasks",))

    # --- General section ---
    def rename_general_category(self, new_name: str) -> Optional[str]:
        if _is_blank(new_name):
            return None
        title = new_name.strip()
        preferences.set_general_title(title)
        return title

    # --- Week navigation and parity ---
    def change_week(self, delta: int) -> int:
        self.current_week_start.update(lambda start: week_parity.shift_weeks(start, delta))
        return self.current_week_start.value

    def set_week_to_date(self, date: int) -> int:
        self.current_week_start.set(week_parity.week_start(date))
        return self.current_week_start.value

    def set_parity_for_current_week(self, new_parity: int) -> int:
        week_parity.set_parity(self.current_week_start.value, new_parity)
        return new_parity

    # --- Snapshots ---
    def view_state(self) -> ViewState:
        return ViewState(
            expanded_category_ids=set(self.expanded_category_ids.value),
            current_week_start=self.current_week_start.value,
        )

    def restore_view_state(self, state: ViewState) -> None:
        self.expanded_category_ids.set(frozenset(state.expanded_category_ids))
        self.current_week_start.set(week_parity.week_start(state.current_week_start))

    def list_sections(self) -> list[ListSection]:
        """The general section followed by every category in display order."""
        expanded = self.expanded_category_ids.value
        tasks = database.get_all_tasks()

        general_tasks = [t for t in tasks if t.category_id is None]
        sections = [ListSection(
            id=GENERAL_SECTION_ID,
            title=preferences.get_general_title(),
            tasks=general_tasks,
            task_count=len(general_tasks),
            is_expanded=GENERAL_SECTION_ID in expanded,
        )]
        for category in database.get_categories():
            category_tasks = [t for t in tasks if t.category_id == category.id]
            sections.append(ListSection(
                id=category.id,
                title=category.name,
                category=category,
                tasks=category_tasks,
                task_count=len(category_tasks),
                is_expanded=category.id in expanded,
            ))
        return sections

    def week_overview(self, week_start: Optional[int] = None) -> WeekOverview:
        """Week view contents: parity, week tasks and the single-day tasks of each day."""
        if week_start is None:
            week_start = self.current_week_start.value
        week_start = week_parity.week_start(week_start)
        day_starts = week_parity.week_days(week_start)

        by_day: dict[int, list[Task]] = {day: [] for day in day_starts}
        next_week = week_parity.shift_weeks(week_start, 1)
        for task in database.get_tasks_in_range(week_start, next_week):
            if task.is_week_task:
                continue
            by_day.setdefault(week_parity.start_of_day(task.date), []).append(task)

        return WeekOverview(
            week_start=week_start,
            week_end=day_starts[-1],
            is_current_week=week_start == week_parity.current_week_start(),
            parity=week_parity.get_week_parity(week_start),
            week_tasks=database.get_week_tasks(week_start),
            days=[DayTasks(date=day, tasks=by_day[day]) for day in day_starts],
        )

import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterable, Optional

import config
from live import ChangeHub
from models import Category, Task

logger = logging.getLogger(__name__)

DATABASE_PATH = config.DATABASE_PATH

# Every committed write names the tables it touched here; live queries listen
changes = ChangeHub()


class StorageError(Exception):
    """Raised when the underlying SQLite read or write fails."""


@contextmanager
def get_db():
    """
    Context manager for database connections.
    Foreign keys are enforced per connection. Any sqlite3 error rolls back the
    open transaction and is re-raised as StorageError.
    """
    conn = None
    try:
        conn = sqlite3.connect(DATABASE_PATH)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        yield conn
    except sqlite3.Error as e:
        if conn is not None:
            conn.rollback()
        logger.exception("Storage operation failed on %s", DATABASE_PATH)
        raise StorageError(str(e)) from e
    finally:
        if conn is not None:
            conn.close()


def init_db():
    """Initialize database by running Alembic migrations."""
    from alembic import command
    from alembic.config import Config

    backend_dir = os.path.dirname(os.path.abspath(__file__))
    alembic_cfg = Config(os.path.join(backend_dir, "alembic.ini"))
    alembic_cfg.set_main_option("script_location", os.path.join(backend_dir, "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", f"sqlite:///{DATABASE_PATH}")
    # Keep the application's logging configuration intact
    alembic_cfg.attributes["configure_logger"] = False
    command.upgrade(alembic_cfg, "head")
    logger.info("Database ready at %s", DATABASE_PATH)


def _row_to_category(row) -> Category:
    return Category(id=row["id"], name=row["name"], sort_order=row["sort_order"])


def _row_to_task(row) -> Task:
    """Convert a database row to a Task model."""
    return Task(
        id=row["id"],
        title=row["title"],
        is_completed=bool(row["is_completed"]),
        date=row["date"],
        category_id=row["category_id"],
        is_week_task=bool(row["is_week_task"]),
    )


# Category operations
def get_categories() -> list[Category]:
    """All categories in display order."""
    with get_db() as conn:
        rows = conn.execute("SELECT * FROM categories ORDER BY sort_order, id").fetchall()
        return [_row_to_category(row) for row in rows]


def get_category(category_id: int) -> Optional[Category]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM categories WHERE id = ?", (category_id,)).fetchone()
        return _row_to_category(row) if row else None


def max_category_sort_order() -> int:
    """Highest sort_order in use, 0 when there are no categories."""
    with get_db() as conn:
        return conn.execute("SELECT COALESCE(MAX(sort_order), 0) FROM categories").fetchone()[0]


def insert_category(name: str, sort_order: int) -> Category:
    with get_db() as conn:
        cursor = conn.execute(
            "INSERT INTO categories (name, sort_order) VALUES (?, ?)",
            (name, sort_order)
        )
        conn.commit()
        category = Category(id=cursor.lastrowid, name=name, sort_order=sort_order)
    logger.debug("Category added id=%s sort_order=%s", category.id, sort_order)
    changes.notify("categories")
    return category


def update_category(category: Category) -> bool:
    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE categories SET name = ?, sort_order = ? WHERE id = ?",
            (category.name, category.sort_order, category.id)
        )
        conn.commit()
        updated = cursor.rowcount > 0
    changes.notify("categories")
    return updated


def update_categories(categories: Iterable[Category]) -> int:
    """Write a batch of categories in one transaction. Returns rows updated."""
    params = [(c.name, c.sort_order, c.id) for c in categories]
    with get_db() as conn:
        cursor = conn.executemany(
            "UPDATE categories SET name = ?, sort_order = ? WHERE id = ?",
            params
        )
        conn.commit()
        updated = cursor.rowcount
    logger.debug("Category batch update: %d row(s)", updated)
    changes.notify("categories")
    return updated


def delete_category(category_id: int) -> bool:
    """
    Delete a category together with its tasks.
    Tasks are removed explicitly in the same transaction as the category,
    on top of the schema's ON DELETE CASCADE.
    """
    with get_db() as conn:
        conn.execute("DELETE FROM tasks WHERE category_id = ?", (category_id,))
        cursor = conn.execute("DELETE FROM categories WHERE id = ?", (category_id,))
        conn.commit()
        deleted = cursor.rowcount > 0
    logger.debug("Category deleted id=%s found=%s", category_id, deleted)
    changes.notify("categories", "tasks")
    return deleted


# Task operations
def get_all_tasks() -> list[Task]:
    """Incomplete tasks first, newest first within each group."""
    with get_db() as conn:
        rows = conn.execute("SELECT * FROM tasks ORDER BY is_completed ASC, id DESC").fetchall()
        return [_row_to_task(row) for row in rows]


def get_task(task_id: int) -> Optional[Task]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(row) if row else None


def get_tasks_in_range(start: int, end: int) -> list[Task]:
    """Tasks whose date falls in [start, end)."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM tasks WHERE date >= ? AND date < ? ORDER BY is_completed ASC, id DESC",
            (start, end)
        ).fetchall()
        return [_row_to_task(row) for row in rows]


def get_week_tasks(week_start: int) -> list[Task]:
    """Week tasks stored on the given Monday."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM tasks WHERE is_week_task = 1 AND date = ? ORDER BY is_completed ASC, id DESC",
            (week_start,)
        ).fetchall()
        return [_row_to_task(row) for row in rows]


def insert_task(
    title: str,
    date: Optional[int] = None,
    category_id: Optional[int] = None,
    is_week_task: bool = False,
    is_completed: bool = False
) -> Task:
    """Insert a task. An unknown category_id is rejected by the foreign key."""
    with get_db() as conn:
        cursor = conn.execute(
            """INSERT INTO tasks (title, is_completed, date, category_id, is_week_task)
               VALUES (?, ?, ?, ?, ?)""",
            (title, int(is_completed), date, category_id, int(is_week_task))
        )
        conn.commit()
        task = Task(
            id=cursor.lastrowid,
            title=title,
            is_completed=is_completed,
            date=date,
            category_id=category_id,
            is_week_task=is_week_task,
        )
    logger.debug("Task added id=%s category_id=%s week=%s", task.id, category_id, is_week_task)
    changes.notify("tasks")
    return task


def update_task(task: Task) -> bool:
    """Overwrite every column of the task's row."""
    with get_db() as conn:
        cursor = conn.execute(
            """UPDATE tasks
               SET title = ?, is_completed = ?, date = ?, category_id = ?, is_week_task = ?
               WHERE id = ?""",
            (task.title, int(task.is_completed), task.date, task.category_id, int(task.is_week_task), task.id)
        )
        conn.commit()
        updated = cursor.rowcount > 0
    changes.notify("tasks")
    return updated


def delete_task(task_id: int) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        conn.commit()
        deleted = cursor.rowcount > 0
    changes.notify("tasks")
    return deleted


def delete_tasks_by_category(category_id: int) -> int:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM tasks WHERE category_id = ?", (category_id,))
        conn.commit()
        deleted = cursor.rowcount
    logger.debug("Cleared %d task(s) from category %s", deleted, category_id)
    changes.notify("tasks")
    return deleted


def delete_general_tasks() -> int:
    """Delete every task without a category."""
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM tasks WHERE category_id IS NULL")
        conn.commit()
        deleted = cursor.rowcount
    logger.debug("Cleared %d general task(s)", deleted)
    changes.notify("tasks")
    return deleted

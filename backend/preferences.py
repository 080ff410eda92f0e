"""
Key/value preferences kept in the `preferences` table under one namespace.

Values are stored JSON-encoded so integers come back as integers. Each key is
independent; a missing key yields the default supplied by the caller.
"""
import json
import logging
from typing import Any, Optional

import config
import database

logger = logging.getLogger(__name__)

NAMESPACE = "planner_prefs"

GENERAL_TITLE = "general_title"
PARITY_ANCHOR_DATE = "parity_anchor_date"
PARITY_ANCHOR_VALUE = "parity_anchor_value"


def get_pref(key: str, default: Any = None) -> Any:
    with database.get_db() as conn:
        row = conn.execute(
            "SELECT value FROM preferences WHERE namespace = ? AND key = ?",
            (NAMESPACE, key)
        ).fetchone()
    if row is None:
        return default
    try:
        return json.loads(row["value"])
    except json.JSONDecodeError:
        logger.warning("Unreadable preference %s=%r, using default", key, row["value"])
        return default


def set_pref(key: str, value: Any) -> None:
    with database.get_db() as conn:
        conn.execute(
            """INSERT INTO preferences (namespace, key, value) VALUES (?, ?, ?)
               ON CONFLICT(namespace, key) DO UPDATE SET value = excluded.value""",
            (NAMESPACE, key, json.dumps(value, ensure_ascii=False))
        )
        conn.commit()
    logger.debug("Preference %s updated", key)
    database.changes.notify("preferences")


def set_prefs(values: dict[str, Any]) -> None:
    """Write several keys in one transaction."""
    with database.get_db() as conn:
        conn.executemany(
            """INSERT INTO preferences (namespace, key, value) VALUES (?, ?, ?)
               ON CONFLICT(namespace, key) DO UPDATE SET value = excluded.value""",
            [(NAMESPACE, key, json.dumps(value, ensure_ascii=False)) for key, value in values.items()]
        )
        conn.commit()
    logger.debug("Preferences %s updated", ", ".join(values))
    database.changes.notify("preferences")


def get_general_title() -> str:
    return get_pref(GENERAL_TITLE, config.DEFAULT_GENERAL_TITLE)


def set_general_title(title: str) -> None:
    set_pref(GENERAL_TITLE, title)


def get_parity_anchor() -> Optional[tuple[int, int]]:
    """(anchor week start, parity value), or None when no anchor was ever set."""
    anchor_date = get_pref(PARITY_ANCHOR_DATE)
    anchor_value = get_pref(PARITY_ANCHOR_VALUE)
    if anchor_date is None or anchor_value not in (1, 2):
        return None
    return int(anchor_date), int(anchor_value)


def set_parity_anchor(week_start: int, value: int) -> None:
    # Both keys in one transaction
    set_prefs({PARITY_ANCHOR_DATE: week_start, PARITY_ANCHOR_VALUE: value})

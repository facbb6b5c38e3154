import os
import json
import sqlite3
import threading
from typing import Any, Dict, Iterable, Optional

# SQLite file lives under output/policypilot.db unless POLICYPILOT_DB_PATH is set
_BASE_DIR = os.path.dirname(__file__)
DB_PATH = os.getenv("POLICYPILOT_DB_PATH") or os.path.join(_BASE_DIR, "output", "policypilot.db")

LAST_RESULT_KEY = "policyPilotLastResult"

_CONN_LOCK = threading.Lock()
_CONN: Optional[sqlite3.Connection] = None


def _get_conn() -> sqlite3.Connection:
    global _CONN
    if _CONN is None:
        with _CONN_LOCK:
            if _CONN is None:
                db_dir = os.path.dirname(DB_PATH)
                if db_dir:
                    os.makedirs(db_dir, exist_ok=True)
                _CONN = sqlite3.connect(DB_PATH, check_same_thread=False)
                _CONN.row_factory = sqlite3.Row
    return _CONN


def _exec(sql: str, params: Iterable[Any] = ()):
    conn = _get_conn()
    with _CONN_LOCK:
        cur = conn.execute(sql, params)
        conn.commit()
        return cur


def _query(sql: str, params: Iterable[Any] = ()):
    conn = _get_conn()
    with _CONN_LOCK:
        cur = conn.execute(sql, params)
        rows = cur.fetchall()
    return rows


def init_db():
    # One row per key; the last report is a single overwritten slot
    _exec(
        """
        CREATE TABLE IF NOT EXISTS kv_store (
          key TEXT PRIMARY KEY,
          value_json TEXT NOT NULL,
          updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
        """
    )


def _put(key: str, value: Any):
    _exec(
        """
        INSERT INTO kv_store (key, value_json)
        VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET
          value_json=excluded.value_json,
          updated_at=CURRENT_TIMESTAMP
        """,
        (key, json.dumps(value, ensure_ascii=False)),
    )


def _get(key: str) -> Optional[Any]:
    rows = _query("SELECT value_json FROM kv_store WHERE key=?", (key,))
    if not rows:
        return None
    try:
        return json.loads(rows[0]["value_json"])
    except (TypeError, ValueError):
        return None


# Last-result helpers

def save_last_report(report: Dict[str, Any]):
    _put(LAST_RESULT_KEY, report)


def get_last_report() -> Optional[Dict[str, Any]]:
    return _get(LAST_RESULT_KEY)


def clear_last_report():
    _exec("DELETE FROM kv_store WHERE key=?", (LAST_RESULT_KEY,))


init_db()

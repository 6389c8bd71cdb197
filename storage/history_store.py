"""会话历史存储模块，基于 SQLite 的只追加日志"""

import logging
import os
import sqlite3
import threading
from datetime import datetime
from typing import List

from models.data_models import SessionSummary

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    duration_seconds INTEGER NOT NULL,
    peak_stress INTEGER NOT NULL,
    eye_fatigue_warning_count INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_sessions_timestamp ON sessions (timestamp);
"""


class SessionHistoryStore:
    """持久化已完成的会话摘要，按时间倒序读取"""

    def __init__(self, db_path: str = "data/history.db"):
        self.db_path = db_path
        self._lock = threading.Lock()
        if db_path != ":memory:":
            os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def append(self, summary: SessionSummary) -> int:
        """
        写入一条会话摘要。

        Returns:
            新记录的 id
        """
        with self._lock:
            cursor = self._conn.execute(
                "INSERT INTO sessions (timestamp, duration_seconds, peak_stress, eye_fatigue_warning_count) "
                "VALUES (?, ?, ?, ?)",
                (
                    summary.timestamp.isoformat(timespec="microseconds"),
                    summary.duration_seconds,
                    summary.peak_stress,
                    summary.eye_fatigue_warning_count,
                ),
            )
            self._conn.commit()
            session_id = cursor.lastrowid

        logger.info("会话记录已保存: id=%d", session_id)
        return session_id

    def list_all(self) -> List[SessionSummary]:
        """按时间倒序返回全部会话摘要"""
        with self._lock:
            rows = self._conn.execute(
                "SELECT id, timestamp, duration_seconds, peak_stress, eye_fatigue_warning_count "
                "FROM sessions ORDER BY timestamp DESC, id DESC"
            ).fetchall()

        return [
            SessionSummary(
                id=row[0],
                timestamp=datetime.fromisoformat(row[1]),
                duration_seconds=row[2],
                peak_stress=row[3],
                eye_fatigue_warning_count=row[4],
            )
            for row in rows
        ]

    def close(self):
        with self._lock:
            self._conn.close()

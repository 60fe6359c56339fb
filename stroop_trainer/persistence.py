from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path

from .results import ActivityResult
from .session import CompletionCheckError, SubmissionError, SubmitOutcome

SCHEMA_VERSION = 1

logger = logging.getLogger(__name__)


def open_db(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    _migrate(conn)
    return conn


def _utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS activity_result (
                id INTEGER PRIMARY KEY,
                participant_id TEXT NOT NULL,
                activity_id INTEGER NOT NULL,
                phase TEXT NOT NULL,
                correct_answers INTEGER NOT NULL,
                incorrect_answers INTEGER NOT NULL,
                duration_seconds INTEGER NOT NULL,
                score INTEGER NOT NULL,
                details_json TEXT NOT NULL,
                completed_at_utc TEXT NOT NULL
            );
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_activity_result_participant "
            "ON activity_result(participant_id, activity_id);"
        )
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


class SqliteResultStore:
    """ResultSubmitter + CompletionCheck backed by a local SQLite file.

    One row per finished phase; a participant has completed an activity once
    any row exists for it.
    """

    def __init__(self, db_path: Path, *, participant_id: str = "local") -> None:
        self._db_path = Path(db_path)
        self._participant_id = str(participant_id)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def submit(self, result: ActivityResult) -> SubmitOutcome:
        try:
            conn = open_db(self._db_path)
            try:
                row_id = _insert_result(conn=conn, participant_id=self._participant_id, result=result)
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise SubmissionError(f"Failed to save result: {exc}") from exc
        logger.info("saved %s phase result as row %s", result.phase.value, row_id)
        return SubmitOutcome(ok=True, message="Result saved successfully!")

    def has_completed(self, activity_id: int) -> bool:
        try:
            conn = open_db(self._db_path)
            try:
                row = conn.execute(
                    "SELECT 1 FROM activity_result WHERE participant_id = ? AND activity_id = ? LIMIT 1",
                    (self._participant_id, int(activity_id)),
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise CompletionCheckError(f"Failed to read completed activities: {exc}") from exc
        return row is not None

    def results(self) -> list[dict[str, object]]:
        conn = open_db(self._db_path)
        try:
            rows = conn.execute(
                """
                SELECT activity_id, phase, correct_answers, incorrect_answers,
                       duration_seconds, score, details_json, completed_at_utc
                FROM activity_result
                WHERE participant_id = ?
                ORDER BY id
                """,
                (self._participant_id,),
            ).fetchall()
        finally:
            conn.close()
        return [
            {
                "activity_id": int(r[0]),
                "phase": str(r[1]),
                "correct_answers": int(r[2]),
                "incorrect_answers": int(r[3]),
                "duration_seconds": int(r[4]),
                "score": int(r[5]),
                "details": json.loads(r[6]),
                "completed_at": str(r[7]),
            }
            for r in rows
        ]


def _insert_result(*, conn: sqlite3.Connection, participant_id: str, result: ActivityResult) -> int:
    with conn:
        cur = conn.execute(
            """
            INSERT INTO activity_result(
                participant_id, activity_id, phase,
                correct_answers, incorrect_answers, duration_seconds,
                score, details_json, completed_at_utc
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                participant_id,
                int(result.activity_id),
                str(result.phase.value),
                int(result.correct_answers),
                int(result.incorrect_answers),
                int(result.duration_seconds),
                int(result.score),
                json.dumps(result.details(), sort_keys=True),
                _utc_now_iso(),
            ),
        )
    return int(cur.lastrowid)

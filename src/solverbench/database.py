"""SQLite storage for finished benchmark reports.

Keeps one session per run so results can be listed and compared across
solver versions or machines.
"""

from __future__ import annotations

import sqlite3
import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from solverbench.errors import FailReason
from solverbench.report import ReportRow
from solverbench.stats import Status


@dataclass
class Session:
    """A stored benchmark run.

    Attributes:
        timestamp: When the run finished.
        suite: Suite name.
        description: Optional description.
        git_commit: Git commit hash at time of run.
        rows: Report rows.
        id: Session ID (None until saved).
    """

    timestamp: datetime
    suite: str
    description: str | None
    git_commit: str | None
    rows: list[ReportRow]
    id: int | None = None


def _get_git_commit() -> str | None:
    """Get current git commit hash."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0:
            return result.stdout.strip()[:12]
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        pass
    return None


class BenchmarkDatabase:
    """SQLite database of report sessions."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self.conn: sqlite3.Connection | None = None

    def __enter__(self) -> BenchmarkDatabase:
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def open(self) -> None:
        """Open database and initialize schema."""
        self.conn = sqlite3.connect(self.db_path)
        self._init_schema()

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    def _cursor(self) -> sqlite3.Cursor:
        if not self.conn:
            raise RuntimeError("Database not open")
        return self.conn.cursor()

    def _init_schema(self) -> None:
        cursor = self._cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                id INTEGER PRIMARY KEY,
                timestamp TEXT NOT NULL,
                suite TEXT NOT NULL,
                description TEXT,
                git_commit TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS rows (
                id INTEGER PRIMARY KEY,
                session_id INTEGER NOT NULL,
                workload TEXT NOT NULL,
                contender TEXT NOT NULL,
                elapsed_nanos INTEGER,
                num_variables INTEGER,
                num_constraints INTEGER,
                status TEXT NOT NULL,
                value REAL,
                passed INTEGER NOT NULL,
                reason TEXT,
                measurements INTEGER NOT NULL DEFAULT 0,
                timing_cv REAL NOT NULL DEFAULT 0.0,
                FOREIGN KEY (session_id) REFERENCES sessions(id)
            )
        """)

        self.conn.commit()

    def save_session(self, session: Session) -> int:
        """Save a session and return its ID."""
        cursor = self._cursor()

        git_commit = session.git_commit or _get_git_commit()

        cursor.execute(
            """
            INSERT INTO sessions (timestamp, suite, description, git_commit)
            VALUES (?, ?, ?, ?)
            """,
            (
                session.timestamp.isoformat(),
                session.suite,
                session.description,
                git_commit,
            ),
        )
        session_id = cursor.lastrowid
        if session_id is None:
            raise RuntimeError("Failed to get session ID")

        cursor.executemany(
            """
            INSERT INTO rows (
                session_id, workload, contender, elapsed_nanos,
                num_variables, num_constraints, status, value, passed, reason,
                measurements, timing_cv
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    session_id,
                    row.workload_id,
                    row.contender_id,
                    row.elapsed_nanos,
                    row.num_variables,
                    row.num_constraints,
                    row.status.value,
                    row.value,
                    int(row.passed),
                    row.reason.value if row.reason else None,
                    row.measurements,
                    row.timing_cv,
                )
                for row in session.rows
            ],
        )

        self.conn.commit()
        session.id = session_id
        return session_id

    def load_session(self, session_id: int) -> Session | None:
        """Load a session, or None if not found."""
        cursor = self._cursor()

        cursor.execute(
            "SELECT timestamp, suite, description, git_commit "
            "FROM sessions WHERE id = ?",
            (session_id,),
        )
        meta = cursor.fetchone()
        if not meta:
            return None

        cursor.execute(
            """
            SELECT workload, contender, elapsed_nanos, num_variables,
                   num_constraints, status, value, passed, reason,
                   measurements, timing_cv
            FROM rows WHERE session_id = ? ORDER BY workload, contender
            """,
            (session_id,),
        )
        rows = [
            ReportRow(
                workload_id=r[0],
                contender_id=r[1],
                elapsed_nanos=r[2],
                num_variables=r[3],
                num_constraints=r[4],
                status=Status(r[5]),
                value=r[6],
                passed=bool(r[7]),
                reason=FailReason(r[8]) if r[8] else None,
                measurements=r[9],
                timing_cv=r[10],
            )
            for r in cursor.fetchall()
        ]

        return Session(
            id=session_id,
            timestamp=datetime.fromisoformat(meta[0]),
            suite=meta[1],
            description=meta[2],
            git_commit=meta[3],
            rows=rows,
        )

    def list_sessions(self) -> list[tuple[int, datetime, str, str | None, str | None]]:
        """List all sessions, newest first.

        Returns:
            List of (id, timestamp, suite, description, git_commit) tuples.
        """
        cursor = self._cursor()
        cursor.execute(
            "SELECT id, timestamp, suite, description, git_commit "
            "FROM sessions ORDER BY id DESC"
        )
        return [
            (row[0], datetime.fromisoformat(row[1]), row[2], row[3], row[4])
            for row in cursor.fetchall()
        ]

    def get_latest_session_id(self) -> int | None:
        cursor = self._cursor()
        cursor.execute("SELECT MAX(id) FROM sessions")
        row = cursor.fetchone()
        return row[0] if row and row[0] else None

    def compare_sessions(
        self, id1: int, id2: int
    ) -> dict[str, dict[str, tuple[float, float, float]]]:
        """Compare the passing durations of two sessions.

        Returns:
            Dictionary mapping workload to contender to
            (ms1, ms2, ratio) tuples; 0.0 marks a missing or failed result.
        """
        session1 = self.load_session(id1)
        session2 = self.load_session(id2)

        if not session1 or not session2:
            return {}

        s2_lookup: dict[tuple[str, str], float] = {
            (r.workload_id, r.contender_id): _millis(r) for r in session2.rows
        }

        comparison: dict[str, dict[str, tuple[float, float, float]]] = {}
        for r in session1.rows:
            ms1 = _millis(r)
            ms2 = s2_lookup.get((r.workload_id, r.contender_id), 0.0)
            ratio = ms2 / ms1 if ms1 > 0 and ms2 > 0 else 0.0
            comparison.setdefault(r.workload_id, {})[r.contender_id] = (
                ms1,
                ms2,
                ratio,
            )

        return comparison


def _millis(row: ReportRow) -> float:
    if row.elapsed_nanos is None:
        return 0.0
    return row.elapsed_nanos / 1e6

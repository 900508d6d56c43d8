from __future__ import annotations

import json
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class StepInvocation:
    """A recorded step call: what was invoked, with which arguments, and how it ended."""

    job_id: str
    run_id: str
    step_id: str
    step_type: str
    arguments: Dict[str, Any]
    display: Optional[str]
    status: Optional[str]


class StateStore:
    def __init__(self, db_path: str):
        self.db_path = str(db_path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init()

    def _connect(self):
        return sqlite3.connect(self.db_path, timeout=30, isolation_level=None)

    def _init(self):
        with self._connect() as c:
            c.execute("PRAGMA journal_mode=WAL;")
            c.execute(
                """CREATE TABLE IF NOT EXISTS job_runs(
                    job_id TEXT NOT NULL,
                    run_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    updated_at INTEGER NOT NULL,
                    PRIMARY KEY(job_id, run_id)
                );"""
            )
            c.execute(
                """CREATE TABLE IF NOT EXISTS step_runs(
                    job_id TEXT NOT NULL,
                    run_id TEXT NOT NULL,
                    step_id TEXT NOT NULL,
                    step_type TEXT,
                    arguments TEXT,
                    display TEXT,
                    status TEXT,
                    seq INTEGER,
                    updated_at INTEGER NOT NULL,
                    PRIMARY KEY(job_id, run_id, step_id)
                );"""
            )

    def set_job_status(self, job_id: str, run_id: str, status: str):
        now = int(time.time())
        with self._connect() as c:
            c.execute(
                "INSERT OR REPLACE INTO job_runs(job_id, run_id, status, updated_at) VALUES (?,?,?,?)",
                (job_id, run_id, status, now),
            )

    def get_job_status(self, job_id: str, run_id: str) -> Optional[str]:
        with self._connect() as c:
            row = c.execute(
                "SELECT status FROM job_runs WHERE job_id=? AND run_id=?",
                (job_id, run_id),
            ).fetchone()
            return row[0] if row else None

    def record_step_invocation(self, job_id: str, run_id: str, step_id: str, *, step_type: str,
                               arguments: Dict[str, Any], display: Optional[str]) -> None:
        """Record the literal arguments of a step before it runs."""
        now = int(time.time())
        payload = json.dumps(arguments, ensure_ascii=False, default=str, sort_keys=True)
        with self._connect() as c:
            seq = c.execute("SELECT COALESCE(MAX(seq), 0) + 1 FROM step_runs WHERE run_id=?", (run_id,)).fetchone()[0]
            c.execute(
                """INSERT OR REPLACE INTO step_runs(job_id, run_id, step_id, step_type, arguments, display, status, seq, updated_at)
                   VALUES (?,?,?,?,?,?,?,?,?)""",
                (job_id, run_id, step_id, step_type, payload, display, "RUNNING", seq, now),
            )

    def set_step_status(self, job_id: str, run_id: str, step_id: str, status: str):
        now = int(time.time())
        with self._connect() as c:
            cur = c.execute(
                "UPDATE step_runs SET status=?, updated_at=? WHERE job_id=? AND run_id=? AND step_id=?",
                (status, now, job_id, run_id, step_id),
            )
            if cur.rowcount == 0:
                c.execute(
                    "INSERT INTO step_runs(job_id, run_id, step_id, status, updated_at) VALUES (?,?,?,?,?)",
                    (job_id, run_id, step_id, status, now),
                )

    def get_step_status(self, job_id: str, run_id: str, step_id: str) -> Optional[str]:
        with self._connect() as c:
            row = c.execute(
                "SELECT status FROM step_runs WHERE job_id=? AND run_id=? AND step_id=?",
                (job_id, run_id, step_id),
            ).fetchone()
            return row[0] if row else None

    def list_step_invocations(self, run_id: str, *, step_type: Optional[str] = None) -> List[StepInvocation]:
        sql = "SELECT job_id, run_id, step_id, step_type, arguments, display, status FROM step_runs WHERE run_id=?"
        params: list = [run_id]
        if step_type is not None:
            sql += " AND step_type=?"
            params.append(step_type)
        sql += " ORDER BY seq"
        with self._connect() as c:
            rows = c.execute(sql, params).fetchall()
        return [
            StepInvocation(
                job_id=r[0],
                run_id=r[1],
                step_id=r[2],
                step_type=r[3],
                arguments=json.loads(r[4]) if r[4] else {},
                display=r[5],
                status=r[6],
            )
            for r in rows
        ]

    def get_step_arguments_as_string(self, job_id: str, run_id: str, step_id: str) -> Optional[str]:
        with self._connect() as c:
            row = c.execute(
                "SELECT display FROM step_runs WHERE job_id=? AND run_id=? AND step_id=?",
                (job_id, run_id, step_id),
            ).fetchone()
            return row[0] if row else None

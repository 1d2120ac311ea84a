"""Observability sinks (storage backends)."""

from __future__ import annotations

import json
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import duckdb

from .models import DeliveryRecord


class ObservabilitySink(Protocol):
    """A synchronous sink for delivery records.

    Sinks are synchronous; the recorder runs them in a worker thread so the
    event loop never blocks on storage.
    """

    def write(self, record: DeliveryRecord) -> None:
        """Persist a single record."""

    def close(self) -> None:
        """Close any underlying resources."""


class InMemoryObservabilitySink:
    """In-memory sink for tests and local debugging."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[DeliveryRecord] = []

    def write(self, record: DeliveryRecord) -> None:
        """Append a record to the in-memory list (thread-safe)."""
        with self._lock:
            self._records.append(record)

    def close(self) -> None:  # noqa: D401 - keep interface consistent
        """No-op."""

    def snapshot(self) -> Sequence[DeliveryRecord]:
        """Return a point-in-time copy of all recorded entries."""
        with self._lock:
            return list(self._records)


@dataclass(frozen=True)
class DuckDBOptions:
    path: Path
    table: str = "delivery_records"


class DuckDBObservabilitySink:
    """DuckDB sink for durable local persistence of delivery records."""

    def __init__(self, *, path: str | Path, table: str = "delivery_records") -> None:
        """Create (or open) a DuckDB-backed sink at the given path (":memory:" allowed)."""
        self._opts = DuckDBOptions(path=Path(path), table=table)
        self._lock = threading.Lock()
        self._conn = duckdb.connect(str(self._opts.path))
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        """Create the backing table if it does not exist yet."""
        create_sql = f"""
        create table if not exists {self._opts.table} (
          logged_at timestamptz not null,
          occurred_at timestamptz not null,
          kind varchar not null,
          msg_type varchar not null,
          stage varchar not null,
          delivery_id varchar not null,
          attempt integer not null,
          summary_json varchar not null
        )
        """
        with self._lock:
            self._conn.execute(create_sql)

    def write(self, record: DeliveryRecord) -> None:
        """Insert a single record; the summary is stored as stable JSON."""
        summary_json = json.dumps(record.summary, separators=(",", ":"), sort_keys=True, default=str)
        insert_sql = f"""
        insert into {self._opts.table}
        (logged_at, occurred_at, kind, msg_type, stage, delivery_id, attempt, summary_json)
        values (?, ?, ?, ?, ?, ?, ?, ?)
        """
        with self._lock:
            self._conn.execute(
                insert_sql,
                [
                    record.logged_at,
                    record.occurred_at,
                    record.kind,
                    record.msg_type,
                    record.stage,
                    record.delivery_id,
                    record.attempt,
                    summary_json,
                ],
            )

    def fetch_delivery(self, delivery_id: str) -> list[dict[str, Any]]:
        """Return the stored records of one delivery, oldest first."""
        select_sql = f"""
        select kind, msg_type, stage, attempt, summary_json
        from {self._opts.table}
        where delivery_id = ?
        order by logged_at, rowid
        """
        with self._lock:
            rows = self._conn.execute(select_sql, [delivery_id]).fetchall()
        return [
            {
                "kind": kind,
                "msg_type": msg_type,
                "stage": stage,
                "attempt": attempt,
                "summary": json.loads(summary_json),
            }
            for kind, msg_type, stage, attempt, summary_json in rows
        ]

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        with self._lock:
            self._conn.close()

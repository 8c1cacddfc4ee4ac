from __future__ import annotations

import sqlite3
import threading
from typing import Any, Protocol
from uuid import uuid4

import requests

from mileage_log.core import utc_now
from mileage_log.identity import BackendClient
from mileage_log.models import TravelEntry, TravelEntryInput

TABLE_NAME = "travel_entries"


class TravelEntryRepository(Protocol):
    def list_for_range(self, user_id: str, start: str, end: str) -> list[TravelEntry]:
        ...

    def insert(self, user_id: str, payload: TravelEntryInput) -> TravelEntry:
        ...

    def delete(self, user_id: str, entry_id: str) -> None:
        ...


class SqliteTravelEntryRepository:
    """Table access over one connection; statements are serialized across threads."""

    def __init__(self, conn: sqlite3.Connection, lock: threading.Lock | None = None):
        self.conn = conn
        self.lock = lock or threading.Lock()

    def list_for_range(self, user_id: str, start: str, end: str) -> list[TravelEntry]:
        with self.lock:
            rows = self.conn.execute(
                f"""
                SELECT id, user_id, entry_date, trip, miles, purpose, created_at
                FROM {TABLE_NAME}
                WHERE user_id = ? AND entry_date >= ? AND entry_date <= ?
                ORDER BY entry_date ASC, created_at ASC
                """,
                (user_id, start, end),
            ).fetchall()
        return [TravelEntry.from_row(row) for row in rows]

    def insert(self, user_id: str, payload: TravelEntryInput) -> TravelEntry:
        entry = TravelEntry(
            id=str(uuid4()),
            user_id=user_id,
            entry_date=payload.entry_date,
            trip=payload.trip,
            miles=payload.miles,
            purpose=payload.purpose,
            created_at=utc_now(),
        )
        with self.lock, self.conn:
            self.conn.execute(
                f"""
                INSERT INTO {TABLE_NAME}(id, user_id, entry_date, trip, miles, purpose, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.user_id,
                    entry.entry_date,
                    entry.trip,
                    entry.miles,
                    entry.purpose,
                    entry.created_at,
                ),
            )
        return entry

    def delete(self, user_id: str, entry_id: str) -> None:
        with self.lock, self.conn:
            cursor = self.conn.execute(
                f"DELETE FROM {TABLE_NAME} WHERE id = ? AND user_id = ?",
                (entry_id, user_id),
            )
        if cursor.rowcount == 0:
            raise LookupError(f"Entry {entry_id} not found for user {user_id}")


class RestTravelEntryRepository:
    """PostgREST-style table access (Supabase ``/rest/v1``)."""

    def __init__(self, client: BackendClient, access_token: str | None = None):
        self.client = client
        self.access_token = access_token

    @property
    def table_url(self) -> str:
        return f"{self.client.rest_url}/{TABLE_NAME}"

    def _request(
        self,
        method: str,
        *,
        params: Any = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        response = self.client.http.request(
            method,
            self.table_url,
            params=params,
            json=json,
            headers={**self.client.auth_headers(self.access_token), **(headers or {})},
            timeout=self.client.timeout,
        )
        response.raise_for_status()
        return response

    def list_for_range(self, user_id: str, start: str, end: str) -> list[TravelEntry]:
        response = self._request(
            "GET",
            params=[
                ("select", "*"),
                ("user_id", f"eq.{user_id}"),
                ("entry_date", f"gte.{start}"),
                ("entry_date", f"lte.{end}"),
                ("order", "entry_date.asc"),
            ],
        )
        return [TravelEntry.from_row(row) for row in response.json() or []]

    def insert(self, user_id: str, payload: TravelEntryInput) -> TravelEntry:
        response = self._request(
            "POST",
            params={"select": "*"},
            json={
                "user_id": user_id,
                "entry_date": payload.entry_date,
                "trip": payload.trip,
                "miles": payload.miles,
                "purpose": payload.purpose,
            },
            headers={
                "Prefer": "return=representation",
                "Accept": "application/vnd.pgrst.object+json",
            },
        )
        return TravelEntry.from_row(response.json())

    def delete(self, user_id: str, entry_id: str) -> None:
        response = self._request(
            "DELETE",
            params={"id": f"eq.{entry_id}", "user_id": f"eq.{user_id}"},
            headers={"Prefer": "return=representation"},
        )
        if not response.json():
            raise LookupError(f"Entry {entry_id} not found for user {user_id}")

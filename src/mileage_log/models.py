from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass(frozen=True)
class TravelEntry:
    id: str
    user_id: str
    entry_date: str
    trip: str
    miles: float
    purpose: str
    created_at: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "TravelEntry":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            entry_date=str(row["entry_date"]),
            trip=row["trip"],
            miles=float(row["miles"] if row["miles"] is not None else 0),
            purpose=row["purpose"],
            created_at=str(row["created_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "entry_date": self.entry_date,
            "trip": self.trip,
            "miles": self.miles,
            "purpose": self.purpose,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class TravelEntryInput:
    entry_date: str
    trip: str
    miles: float
    purpose: str


@dataclass(frozen=True)
class EntryForm:
    """Raw form text, one field per input."""

    entry_date: str = ""
    trip: str = ""
    miles: str = ""
    purpose: str = ""

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "EntryForm":
        def text(key: str) -> str:
            value = raw.get(key)
            return "" if value is None else str(value)

        return cls(
            entry_date=text("entry_date"),
            trip=text("trip"),
            miles=text("miles"),
            purpose=text("purpose"),
        )


@dataclass(frozen=True)
class MonthRange:
    start: str
    end: str


@dataclass(frozen=True)
class ExportArtifact:
    content: bytes
    filename: str
    media_type: str = XLSX_MEDIA_TYPE


@dataclass(frozen=True)
class Session:
    user_id: str
    display_name: str = ""
    access_token: str | None = None

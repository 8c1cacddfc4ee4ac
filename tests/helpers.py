from __future__ import annotations

from datetime import date, timedelta

from mileage_log.models import TravelEntry


def make_entry(
    entry_date: str,
    *,
    miles: float = 4.4,
    trip: str = "Roos <-> Wash",
    purpose: str = "Client visit",
    entry_id: str | None = None,
    user_id: str = "user-1",
) -> TravelEntry:
    return TravelEntry(
        id=entry_id or f"entry-{entry_date}-{trip}",
        user_id=user_id,
        entry_date=entry_date,
        trip=trip,
        miles=miles,
        purpose=purpose,
        created_at=f"{entry_date}T08:00:00.000000Z",
    )


def month_of_entries(count: int, first: date = date(2024, 3, 1)) -> list[TravelEntry]:
    entries = []
    for offset in range(count):
        day = first + timedelta(days=offset % 28)
        entries.append(
            make_entry(
                day.isoformat(),
                miles=round(0.5 + offset / 10, 1),
                trip=f"Trip {offset + 1}",
                purpose=f"Purpose {offset + 1}",
                entry_id=f"entry-{offset}",
            )
        )
    return sorted(entries, key=lambda entry: entry.entry_date)

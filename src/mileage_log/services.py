from __future__ import annotations

from bisect import bisect_right
from contextlib import contextmanager
from dataclasses import dataclass
import logging
from typing import Callable, Iterator, Protocol, Sequence

from mileage_log.core import month_range, total_miles
from mileage_log.errors import ConfirmationRequired, EntryNotFound, LoadError, MutationError
from mileage_log.models import ExportArtifact, TravelEntry, TravelEntryInput
from mileage_log.repositories import TravelEntryRepository

logger = logging.getLogger(__name__)

LOAD_FAILED = "Unable to load entries for this month."
SAVE_FAILED = "Could not save the entry. Please try again."
DELETE_FAILED = "Could not delete the entry."
MISSING_USER = "Missing user information."


@dataclass(frozen=True)
class StoreSnapshot:
    entries: tuple[TravelEntry, ...]
    total_miles: float
    error: str | None = None


Listener = Callable[[StoreSnapshot], None]


class SpreadsheetExporter(Protocol):
    def export(
        self,
        entries: Sequence[TravelEntry],
        display_name: str,
        month: str,
        template: bytes | None = None,
    ) -> ExportArtifact:
        ...


class EntryStore:
    """Month-scoped view of one user's travel entries.

    The in-memory list is a convenience cache refreshed from the repository;
    the backing table stays the source of truth. Subscribers receive a
    :class:`StoreSnapshot` after every load, add and remove.
    """

    def __init__(self, repository: TravelEntryRepository, user_id: str | None = None):
        self.repository = repository
        self.user_id = user_id
        self.month: str | None = None
        self.entries: list[TravelEntry] = []
        self.error: str | None = None
        self.busy = False
        self._listeners: list[Listener] = []

    @property
    def total_miles(self) -> float:
        return total_miles(self.entries)

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(entries=tuple(self.entries), total_miles=self.total_miles, error=self.error)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    @contextmanager
    def _operation(self) -> Iterator[None]:
        self.busy = True
        try:
            yield
        finally:
            self.busy = False

    def load(self, user_id: str | None, month: str) -> list[TravelEntry]:
        if not user_id:
            self.user_id = None
            self.month = month
            self.entries = []
            self.error = None
            self._publish()
            return []

        range_ = month_range(month)
        self.user_id = user_id
        self.month = month
        with self._operation():
            self.error = None
            try:
                rows = self.repository.list_for_range(user_id, range_.start, range_.end)
            except Exception as exc:
                logger.exception("Loading entries for %s failed", month)
                self.entries = []
                self.error = LOAD_FAILED
                self._publish()
                raise LoadError(LOAD_FAILED) from exc

        self.entries = sorted(rows, key=lambda entry: entry.entry_date)
        logger.debug("Loaded %d entries for %s", len(self.entries), month)
        self._publish()
        return list(self.entries)

    def refresh(self) -> list[TravelEntry]:
        if self.month is None:
            return []
        return self.load(self.user_id, self.month)

    def add(self, payload: TravelEntryInput, user_id: str | None = None) -> TravelEntry:
        owner = user_id or self.user_id
        if not owner:
            raise MutationError(MISSING_USER)
        if self.user_id and owner != self.user_id:
            raise MutationError("Entries can only be added for the signed-in user.")

        with self._operation():
            try:
                entry = self.repository.insert(owner, payload)
            except Exception as exc:
                logger.exception("Saving entry dated %s failed", payload.entry_date)
                raise MutationError(SAVE_FAILED) from exc

        dates = [existing.entry_date for existing in self.entries]
        self.entries.insert(bisect_right(dates, entry.entry_date), entry)
        logger.info("Added entry %s on %s (%.1f mi)", entry.id, entry.entry_date, entry.miles)
        self._publish()
        return entry

    def remove(self, entry_id: str, *, confirmed: bool = False) -> None:
        """Delete an entry permanently. Callers must pass ``confirmed=True``."""
        if not confirmed:
            raise ConfirmationRequired("Delete this entry? This action cannot be undone.")
        if not self.user_id:
            raise MutationError(MISSING_USER)

        with self._operation():
            try:
                self.repository.delete(self.user_id, entry_id)
            except LookupError as exc:
                logger.warning("Entry %s not found for the current user", entry_id)
                raise EntryNotFound(DELETE_FAILED) from exc
            except Exception as exc:
                logger.exception("Deleting entry %s failed", entry_id)
                raise MutationError(DELETE_FAILED) from exc

        self.entries = [entry for entry in self.entries if entry.id != entry_id]
        logger.info("Deleted entry %s", entry_id)
        self._publish()

    def export(
        self,
        display_name: str,
        exporter: SpreadsheetExporter,
        template: bytes | None = None,
    ) -> ExportArtifact:
        if self.month is None:
            raise LoadError("No month has been loaded.")
        return exporter.export(self.entries, display_name, self.month, template)

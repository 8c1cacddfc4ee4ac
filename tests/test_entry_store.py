import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from mileage_log.db import apply_all_migrations, connect_sqlite
from mileage_log.errors import ConfirmationRequired, EntryNotFound, InvalidMonthToken, LoadError, MutationError
from mileage_log.models import TravelEntryInput
from mileage_log.repositories import SqliteTravelEntryRepository
from mileage_log.services import LOAD_FAILED, EntryStore


def _payload(entry_date: str, miles: float = 4.4, trip: str = "Roos <-> Wash") -> TravelEntryInput:
    return TravelEntryInput(entry_date=entry_date, trip=trip, miles=miles, purpose="Client visit")


@pytest.fixture
def repository():
    conn = connect_sqlite()
    apply_all_migrations(conn)
    yield SqliteTravelEntryRepository(conn)
    conn.close()


@pytest.fixture
def store(repository):
    store = EntryStore(repository)
    store.load("user-1", "2024-03")
    return store


class ExplodingRepository:
    def __init__(self):
        self.calls = []

    def list_for_range(self, user_id, start, end):
        self.calls.append("list")
        raise RuntimeError("backend unreachable")

    def insert(self, user_id, payload):
        self.calls.append("insert")
        raise RuntimeError("backend unreachable")

    def delete(self, user_id, entry_id):
        self.calls.append("delete")
        raise RuntimeError("backend unreachable")


def test_added_entry_is_returned_by_month_load_in_date_order(store, repository):
    late = store.add(_payload("2024-03-15"))
    early = store.add(_payload("2024-03-02"))
    same_day = store.add(_payload("2024-03-15", trip="Wash <-> Kerp"))

    assert [entry.id for entry in store.entries] == [early.id, late.id, same_day.id]

    reloaded = EntryStore(repository).load("user-1", "2024-03")
    assert [entry.entry_date for entry in reloaded] == ["2024-03-02", "2024-03-15", "2024-03-15"]
    assert {entry.id for entry in reloaded} == {early.id, late.id, same_day.id}


def test_backend_assigns_id_and_created_at(store):
    entry = store.add(_payload("2024-03-05"))

    assert entry.id
    assert entry.created_at
    assert entry.user_id == "user-1"
    assert entry.miles == 4.4


def test_load_is_scoped_to_month_boundaries(store):
    for entry_date in ["2024-02-29", "2024-03-01", "2024-03-31", "2024-04-01"]:
        store.add(_payload(entry_date))

    loaded = store.load("user-1", "2024-03")

    assert [entry.entry_date for entry in loaded] == ["2024-03-01", "2024-03-31"]


def test_entries_never_cross_users(store, repository):
    mine = store.add(_payload("2024-03-10"))
    other = EntryStore(repository)
    other.load("user-2", "2024-03")

    assert other.entries == []

    with pytest.raises(EntryNotFound):
        other.remove(mine.id, confirmed=True)
    assert [entry.id for entry in store.load("user-1", "2024-03")] == [mine.id]


def test_remove_requires_confirmation(store):
    entry = store.add(_payload("2024-03-10"))

    with pytest.raises(ConfirmationRequired):
        store.remove(entry.id)

    assert [e.id for e in store.refresh()] == [entry.id]


def test_removed_entry_is_gone_after_reload(store):
    keep = store.add(_payload("2024-03-01"))
    drop = store.add(_payload("2024-03-02"))

    store.remove(drop.id, confirmed=True)

    assert [entry.id for entry in store.entries] == [keep.id]
    assert [entry.id for entry in store.refresh()] == [keep.id]


def test_total_miles_tracks_the_entry_set(store):
    store.add(_payload("2024-03-01", miles=4.4))
    removable = store.add(_payload("2024-03-02", miles=0.6))
    store.add(_payload("2024-03-03", miles=2.0))

    assert store.total_miles == pytest.approx(7.0)

    store.remove(removable.id, confirmed=True)
    assert store.total_miles == pytest.approx(6.4)


def test_load_without_user_does_not_contact_backend():
    repository = ExplodingRepository()
    store = EntryStore(repository)

    assert store.load(None, "2024-03") == []
    assert store.load("", "2024-03") == []
    assert repository.calls == []


def test_load_failure_clears_entries_and_reports(store):
    store.add(_payload("2024-03-01"))
    snapshots = []
    store.repository = ExplodingRepository()
    store.subscribe(snapshots.append)

    with pytest.raises(LoadError):
        store.load("user-1", "2024-03")

    assert store.entries == []
    assert store.error == LOAD_FAILED
    assert snapshots[-1].error == LOAD_FAILED
    assert store.repository.calls == ["list"]


def test_invalid_month_is_rejected_before_query():
    repository = ExplodingRepository()
    store = EntryStore(repository)

    with pytest.raises(InvalidMonthToken):
        store.load("user-1", "2024-13")
    assert repository.calls == []


def test_failed_mutations_leave_local_state_untouched(store):
    existing = store.add(_payload("2024-03-01"))
    store.repository = ExplodingRepository()

    with pytest.raises(MutationError):
        store.add(_payload("2024-03-02"))
    with pytest.raises(MutationError):
        store.remove(existing.id, confirmed=True)

    assert [entry.id for entry in store.entries] == [existing.id]
    assert store.repository.calls == ["insert", "delete"]
    assert store.busy is False


def test_constraint_violation_surfaces_as_mutation_error(store):
    with pytest.raises(MutationError):
        store.add(_payload("2024-03-01", miles=-1.0))

    assert store.entries == []


def test_add_without_user_is_rejected(repository):
    with pytest.raises(MutationError, match="Missing user information"):
        EntryStore(repository).add(_payload("2024-03-01"))


def test_subscribers_receive_snapshots_until_unsubscribed(store):
    snapshots = []
    unsubscribe = store.subscribe(snapshots.append)

    entry = store.add(_payload("2024-03-01", miles=4.4))
    store.load("user-1", "2024-03")
    unsubscribe()
    store.remove(entry.id, confirmed=True)

    assert len(snapshots) == 2
    assert snapshots[0].entries == (entry,)
    assert snapshots[0].total_miles == pytest.approx(4.4)
    assert snapshots[1].error is None


def test_busy_flag_is_set_while_backend_call_is_outstanding(repository):
    observed = []

    class Recording(SqliteTravelEntryRepository):
        def insert(self, user_id, payload):
            observed.append(store.busy)
            return super().insert(user_id, payload)

    store = EntryStore(Recording(repository.conn), user_id="user-1")
    store.add(_payload("2024-03-01"))

    assert observed == [True]
    assert store.busy is False


def test_signing_out_publishes_an_empty_snapshot(store):
    store.add(_payload("2024-03-01", miles=4.4))
    snapshots = []
    store.subscribe(snapshots.append)

    assert store.load(None, "2024-03") == []

    assert len(snapshots) == 1
    assert snapshots[0].entries == ()
    assert snapshots[0].total_miles == 0.0


def test_add_for_another_user_is_rejected(store, repository):
    with pytest.raises(MutationError):
        store.add(_payload("2024-03-01"), user_id="user-2")

    assert all(entry.user_id == store.user_id for entry in store.entries)
    assert repository.list_for_range("user-2", "2024-03-01", "2024-03-31") == []


def test_add_with_matching_explicit_user(store):
    entry = store.add(_payload("2024-03-01"), user_id="user-1")

    assert store.entries == [entry]


def test_statements_wait_for_the_connection_lock(repository):
    finished = []
    worker = threading.Thread(target=lambda: finished.append(repository.insert("user-1", _payload("2024-03-01"))))

    with repository.lock:
        worker.start()
        worker.join(timeout=0.2)
        assert worker.is_alive()
        assert finished == []

    worker.join(timeout=5)
    assert len(finished) == 1


def test_concurrent_writes_from_worker_threads(repository):
    days = [f"2024-03-{day:02d}" for day in range(1, 29)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        created = list(pool.map(lambda day: repository.insert("user-1", _payload(day)), days))

    loaded = repository.list_for_range("user-1", "2024-03-01", "2024-03-31")
    assert {entry.id for entry in loaded} == {entry.id for entry in created}
    assert [entry.entry_date for entry in loaded] == days

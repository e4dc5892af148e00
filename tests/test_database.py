from __future__ import annotations

import threading
from pathlib import Path

import pytest

from database import Database, JsonSnapshotFile, Store, load_database
from schemas import Task, User

from .fakes import RecordingSnapshots


def test_every_mutation_is_saved() -> None:
    snapshots = RecordingSnapshots()
    db = Database(snapshots=snapshots)

    db.upsert_task(Task(id=1, name="a", completed=False))
    db.upsert_user(User(id=9, username="u", password="p"))
    db.delete_task(1)
    db.delete_user(9)

    assert snapshots.saves == [
        ({1}, set()),
        ({1}, {9}),
        (set(), {9}),
        (set(), set()),
    ]


def test_reads_and_noop_deletes_do_not_save() -> None:
    snapshots = RecordingSnapshots()
    db = Database(snapshots=snapshots)

    db.get_task(1)
    db.list_tasks()
    db.get_user(1)
    db.list_users()
    db.find_user_by_name("nobody")
    db.login("nobody", "pw")
    assert db.delete_task(1) is None
    assert db.delete_user(1) is None

    assert snapshots.saves == []


def test_acknowledged_mutation_is_on_disk(snapshot_path: Path, database: Database) -> None:
    database.upsert_task(Task(id=3, name="persist me", completed=True))

    # A fresh process would see the task
    restarted = load_database(snapshot_path)
    assert restarted.get_task(3) == Task(id=3, name="persist me", completed=True)


def test_failed_save_keeps_memory_state() -> None:
    db = Database(snapshots=RecordingSnapshots(fail=True))

    saved = db.upsert_task(Task(id=1, name="a", completed=False))

    assert saved is False
    assert db.get_task(1) == Task(id=1, name="a", completed=False)


def test_without_snapshots_nothing_is_persisted() -> None:
    db = Database()
    assert db.upsert_task(Task(id=1, name="a", completed=False)) is True
    assert len(db.list_tasks()) == 1


def test_returned_records_are_copies() -> None:
    db = Database()
    task = Task(id=1, name="original", completed=False)
    db.upsert_task(task)

    # Mutating the caller's object or a returned one does not touch the store
    task.name = "changed by caller"
    fetched = db.get_task(1)
    fetched.completed = True
    db.list_tasks()[0].name = "changed via list"

    assert db.get_task(1) == Task(id=1, name="original", completed=False)


def test_wraps_existing_store() -> None:
    store = Store()
    store.upsert_user(User(id=1, username="alice", password="secret"))
    db = Database(store=store)

    assert db.find_user_by_name("alice").id == 1
    assert db.get_user(1).username == "alice"


def test_login_outcomes() -> None:
    db = Database()
    db.upsert_user(User(id=1, username="alice", password="secret"))

    assert db.login("alice", "secret") is True
    # Wrong password and unknown user give the same answer
    assert db.login("alice", "wrong") is False
    assert db.login("bob", "anything") is False


def test_concurrent_upserts_lose_nothing(snapshot_path: Path, database: Database) -> None:
    n = 50
    barrier = threading.Barrier(n)

    def writer(i: int) -> None:
        barrier.wait(timeout=5.0)
        database.upsert_task(Task(id=i, name=f"task-{i}", completed=i % 2 == 0))

    threads = [threading.Thread(target=writer, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10.0)

    tasks = {t.id: t for t in database.list_tasks()}
    assert len(tasks) == n
    for i in range(n):
        assert tasks[i] == Task(id=i, name=f"task-{i}", completed=i % 2 == 0)

    # The last save ran after every upsert, so the file has all of them
    restored = JsonSnapshotFile(snapshot_path).load()
    assert restored is not None
    assert len(restored.tasks) == n


def test_saves_never_overlap() -> None:
    snapshots = RecordingSnapshots(delay=0.01)
    db = Database(snapshots=snapshots)

    def worker(i: int) -> None:
        db.upsert_task(Task(id=i, name="t", completed=False))
        db.list_tasks()
        db.upsert_user(User(id=i, username=f"u{i}", password="p"))

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10.0)

    assert snapshots.max_concurrent == 1
    assert len(snapshots.saves) == 16
    # Each save sees a state at least as large as the one before it
    sizes = [len(tasks) + len(users) for tasks, users in snapshots.saves]
    assert sizes == sorted(sizes)


def test_failed_delete_save_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    db = Database(snapshots=RecordingSnapshots(fail=True))
    db.upsert_task(Task(id=1, name="a", completed=False))
    db.upsert_user(User(id=2, username="u", password="p"))

    with caplog.at_level("WARNING", logger="database"):
        assert db.delete_task(1) == Task(id=1, name="a", completed=False)
        assert db.delete_user(2).username == "u"

    assert "Task 1 deleted in memory but the snapshot was not saved" in caplog.text
    assert "User 2 deleted in memory but the snapshot was not saved" in caplog.text
    assert db.get_task(1) is None

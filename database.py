import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Protocol

from passlib.utils import consteq

from schemas import SNAPSHOT_VERSION, Snapshot, Task, User

# This file holds the application's data. Everything lives in memory and
# the whole state is written to a single JSON file after every change.

logger = logging.getLogger(__name__)


class Store:
    """Task and user tables keyed by id.

    Not thread-safe. Callers must hold exclusive access, which is what
    `Database` provides.
    """

    def __init__(self, tasks: Dict[int, Task] | None = None, users: Dict[int, User] | None = None):
        self.tasks: Dict[int, Task] = dict(tasks or {})
        self.users: Dict[int, User] = dict(users or {})

    # --- Tasks ---
    def upsert_task(self, task: Task) -> None:
        self.tasks[task.id] = task

    def get_task(self, task_id: int) -> Task | None:
        return self.tasks.get(task_id)

    def list_tasks(self) -> List[Task]:
        return list(self.tasks.values())

    def delete_task(self, task_id: int) -> Task | None:
        return self.tasks.pop(task_id, None)

    # --- Users ---
    def upsert_user(self, user: User) -> None:
        self.users[user.id] = user

    def get_user(self, user_id: int) -> User | None:
        return self.users.get(user_id)

    def list_users(self) -> List[User]:
        return list(self.users.values())

    def delete_user(self, user_id: int) -> User | None:
        return self.users.pop(user_id, None)

    def find_user_by_name(self, username: str) -> User | None:
        # Usernames are not unique; the first match in table order wins
        return next((u for u in self.users.values() if u.username == username), None)

    # --- Snapshot conversion ---
    def to_snapshot(self) -> Snapshot:
        return Snapshot(version=SNAPSHOT_VERSION, tasks=dict(self.tasks), users=dict(self.users))

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> "Store":
        return cls(tasks=snapshot.tasks, users=snapshot.users)


def check_credentials(store: Store, username: str, password: str) -> User | None:
    # Unknown user and wrong password both come back as None so callers
    # cannot tell the two apart
    user = store.find_user_by_name(username)
    if user is None:
        return None
    if not consteq(user.password.encode("utf-8"), password.encode("utf-8")):
        return None
    return user


class SnapshotStore(Protocol):
    def save(self, store: Store) -> bool: ...

    def load(self) -> Store | None: ...


class JsonSnapshotFile:
    """Whole-store snapshot kept in one JSON file.

    Writes go to a temporary file in the same directory which then
    replaces the snapshot, so a failed write leaves the previous
    snapshot in place.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def save(self, store: Store) -> bool:
        tmp_name = None
        try:
            data = store.to_snapshot().model_dump_json()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.path.parent, prefix=f".{self.path.name}.", delete=False
            ) as handle:
                tmp_name = handle.name
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except (OSError, ValueError):
            logger.exception("Failed to save snapshot to %s", self.path)
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            return False
        return True

    def load(self) -> Store | None:
        if not self.path.exists():
            logger.info("No snapshot at %s", self.path)
            return None
        try:
            snapshot = Snapshot.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable snapshot at %s: %s", self.path, exc)
            return None
        if snapshot.version > SNAPSHOT_VERSION:
            logger.warning("Snapshot at %s has unsupported version %d", self.path, snapshot.version)
            return None
        logger.info(
            "Loaded snapshot from %s (%d tasks, %d users)", self.path, len(snapshot.tasks), len(snapshot.users)
        )
        return Store.from_snapshot(snapshot)


class Database:
    """The single shared entry point to the store.

    One lock serializes every read and write. Mutations save the snapshot
    before releasing the lock, so no two saves interleave and a reader never
    observes a state that is not also being written to disk. Records are
    copied in and out so nobody can modify the tables without the lock.
    """

    def __init__(self, store: Store | None = None, snapshots: SnapshotStore | None = None):
        self._store = store if store is not None else Store()
        self._snapshots = snapshots
        self._lock = threading.Lock()

    def _persist(self) -> bool:
        # Caller holds the lock
        if self._snapshots is None:
            return True
        return self._snapshots.save(self._store)

    # --- Tasks ---
    def upsert_task(self, task: Task) -> bool:
        with self._lock:
            self._store.upsert_task(task.model_copy())
            logger.debug("Upserted task %d", task.id)
            return self._persist()

    def get_task(self, task_id: int) -> Task | None:
        with self._lock:
            task = self._store.get_task(task_id)
            return task.model_copy() if task is not None else None

    def list_tasks(self) -> List[Task]:
        with self._lock:
            return [t.model_copy() for t in self._store.list_tasks()]

    def delete_task(self, task_id: int) -> Task | None:
        """Remove a task and return it, or None if there was none.

        The removed record is the result, so a failed save is not reported
        to the caller. It is logged here and by the snapshot layer.
        """
        with self._lock:
            task = self._store.delete_task(task_id)
            # Nothing changed, nothing to save
            if task is not None:
                logger.debug("Deleted task %d", task_id)
                if not self._persist():
                    logger.warning("Task %d deleted in memory but the snapshot was not saved", task_id)
            return task

    # --- Users ---
    def upsert_user(self, user: User) -> bool:
        with self._lock:
            self._store.upsert_user(user.model_copy())
            logger.debug("Upserted user %d", user.id)
            return self._persist()

    def get_user(self, user_id: int) -> User | None:
        with self._lock:
            user = self._store.get_user(user_id)
            return user.model_copy() if user is not None else None

    def list_users(self) -> List[User]:
        with self._lock:
            return [u.model_copy() for u in self._store.list_users()]

    def delete_user(self, user_id: int) -> User | None:
        # Same save-failure handling as delete_task
        with self._lock:
            user = self._store.delete_user(user_id)
            if user is not None:
                logger.debug("Deleted user %d", user_id)
                if not self._persist():
                    logger.warning("User %d deleted in memory but the snapshot was not saved", user_id)
            return user

    def find_user_by_name(self, username: str) -> User | None:
        with self._lock:
            user = self._store.find_user_by_name(username)
            return user.model_copy() if user is not None else None

    def login(self, username: str, password: str) -> bool:
        with self._lock:
            return check_credentials(self._store, username, password) is not None


def load_database(path: str | Path) -> Database:
    # A missing or corrupt snapshot means "no prior state", never a failed start
    snapshots = JsonSnapshotFile(path)
    store = snapshots.load()
    if store is None:
        logger.warning("Starting with an empty store")
        store = Store()
    return Database(store=store, snapshots=snapshots)

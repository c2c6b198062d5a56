"""
Snapshot storage backends.

Every backend persists the whole workspace snapshot (the camelCase dict
produced by ``EntityGraph.to_dict``) and returns it unchanged on load.
``get_state`` returns None when nothing has been saved yet; any read or
write failure is raised as ``PersistenceError``.

    memory    in-process copy, used by the testing config
    local     one JSON file, replaced atomically on every save
    database  Flask-SQLAlchemy tables, upsert + delete-missing per save
"""

import json
import logging
import os
import tempfile
import time

from sqlalchemy.exc import SQLAlchemyError

from journeymap.core.exceptions import PersistenceError
from journeymap.models import db
from journeymap.models.workspace import SNAPSHOT_TABLES, CellCommentRecord

logger = logging.getLogger(__name__)


class StateStore:
    """Interface shared by the storage backends."""

    name = "abstract"

    def get_state(self) -> dict | None:
        raise NotImplementedError

    def save_state(self, snapshot: dict) -> None:
        raise NotImplementedError


class MemoryStore(StateStore):
    name = "memory"

    def __init__(self, initial: dict | None = None):
        self._payload = json.dumps(initial) if initial is not None else None

    def get_state(self) -> dict | None:
        return json.loads(self._payload) if self._payload is not None else None

    def save_state(self, snapshot: dict) -> None:
        self._payload = json.dumps(snapshot)


class LocalFileStore(StateStore):
    """Whole snapshot as one JSON document on disk."""

    name = "local"

    def __init__(self, path: str):
        self.path = path

    def get_state(self) -> dict | None:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Cannot read state file {self.path}: {exc}", backend=self.name) from exc

    def save_state(self, snapshot: dict) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=directory, suffix=".tmp", delete=False
            ) as fh:
                tmp_path = fh.name
                json.dump(snapshot, fh, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise PersistenceError(f"Cannot write state file {self.path}: {exc}", backend=self.name) from exc


class DatabaseStore(StateStore):
    """
    Relational backend: one table per collection.

    A save upserts every row of the snapshot by primary key and deletes
    rows whose id is no longer present, inside a single transaction.
    Saves can run off the request thread (debounced edits), so every call
    pushes its own application context.
    """

    name = "database"

    def __init__(self, app):
        self.app = app

    def get_state(self) -> dict | None:
        with self.app.app_context():
            try:
                state = {
                    collection: [
                        row.to_snapshot()
                        for row in model.query.order_by(model.created_at, model.id).all()
                    ]
                    for collection, model in SNAPSHOT_TABLES.items()
                }
                comments = {row.key: row.to_snapshot() for row in CellCommentRecord.query.all()}
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise PersistenceError(f"Cannot load workspace: {exc}", backend=self.name) from exc

        if not comments and not any(state.values()):
            return None
        state["cellComments"] = comments
        return state

    def save_state(self, snapshot: dict) -> None:
        t0 = time.perf_counter()
        with self.app.app_context():
            try:
                for collection, model in SNAPSHOT_TABLES.items():
                    self._sync(model, model.id, {r["id"]: r for r in snapshot.get(collection) or []})
                self._sync(CellCommentRecord, CellCommentRecord.key, snapshot.get("cellComments") or {})
                db.session.commit()
            except SQLAlchemyError as exc:
                db.session.rollback()
                logger.error("Workspace save rolled back: %s", exc, extra={"backend": self.name})
                raise PersistenceError(f"Cannot save workspace: {exc}", backend=self.name) from exc

        logger.debug(
            "Workspace saved",
            extra={"backend": self.name, "duration_ms": round((time.perf_counter() - t0) * 1000, 1)},
        )

    @staticmethod
    def _sync(model, key_column, rows: dict) -> None:
        """Upsert ``rows`` (keyed by primary key) and delete every other row."""
        existing = {getattr(r, key_column.key): r for r in model.query.all()}
        for key, data in rows.items():
            record = existing.get(key)
            if record is None:
                record = model(**{key_column.key: key})
                db.session.add(record)
            record.apply_snapshot(data)
        for key, record in existing.items():
            if key not in rows:
                db.session.delete(record)


def get_store(app) -> StateStore:
    """Build the backend named by ``STORAGE_BACKEND``."""
    backend = app.config.get("STORAGE_BACKEND", "local")
    if backend == "memory":
        return MemoryStore()
    if backend == "local":
        return LocalFileStore(app.config["STATE_FILE"])
    if backend == "database":
        return DatabaseStore(app)
    raise ValueError(f"Unknown STORAGE_BACKEND: {backend!r}")

"""
WorkspaceEngine: applies engine operations to the live snapshot and persists.

The engine keeps exactly one ``EntityGraph`` per process. A command runs a
pure operation against it, swaps the result in under a lock, then saves the
whole snapshot. A failed save never rolls the in-memory graph back; the
failure is kept as the sticky ``save_error`` until the next successful save
or ``dismiss_save_error()``.

Free-text phase edits arrive on every keystroke, so ``update_phase_text``
applies in memory immediately and defers the save until ``SAVE_DEBOUNCE_MS``
of quiet. A structural command, or ``flush()``, writes a pending edit at
once. With a debounce of 0 no timer is started and only ``flush()`` or the
next structural command persists the edit.

Usage:
    engine = get_engine()
    result = engine.apply("create_client", graph_service.create_client, "Acme")
    engine.update_phase_text(phase_id, {"struggles": "..."})
"""

import logging
import threading
import time

from flask import current_app

from journeymap.core.entities import PHASE_TEXT_FIELDS, EntityGraph
from journeymap.core.exceptions import PersistenceError, ValidationError
from journeymap.services.graph_service import MutationResult, update_phase
from journeymap.services.migration import normalize_state

logger = logging.getLogger(__name__)

EXTENSION_KEY = "workspace_engine"


class WorkspaceEngine:
    def __init__(self, store, debounce_ms: int = 400):
        self.store = store
        self.debounce_ms = debounce_ms
        self._lock = threading.RLock()
        self._graph: EntityGraph | None = None
        self._save_error: PersistenceError | None = None
        self._timer: threading.Timer | None = None
        self._pending = False

    # ── Snapshot ─────────────────────────────────────────────────────────

    def _load(self) -> EntityGraph:
        if self._graph is None:
            result = normalize_state(self.store.get_state())
            self._graph = result.graph
            if result.needs_save:
                logger.warning(
                    "Workspace normalized on load: %s", ", ".join(result.applied),
                    extra={"backend": self.store.name},
                )
                self._save("normalize")
        return self._graph

    @property
    def graph(self) -> EntityGraph:
        """Current snapshot, loading and normalizing it on first access."""
        with self._lock:
            return self._load()

    def reload(self) -> EntityGraph:
        """Drop the in-memory snapshot and load it again from the store."""
        with self._lock:
            self._cancel_timer()
            self._pending = False
            self._graph = None
            return self._load()

    # ── Commands ─────────────────────────────────────────────────────────

    def apply(self, command: str, operation, *args, **kwargs) -> MutationResult:
        """Run ``operation(graph, *args, **kwargs)``, swap the result in and save."""
        t0 = time.perf_counter()
        with self._lock:
            out = operation(self._load(), *args, **kwargs)
            result = out if isinstance(out, MutationResult) else MutationResult(out)
            if result.found:
                self._graph = result.graph
                self._cancel_timer()
                self._save(command)
        if result.found:
            logger.info(
                "Applied %s", command,
                extra={"command": command, "duration_ms": round((time.perf_counter() - t0) * 1000, 1)},
            )
        else:
            logger.debug("%s: target not found, nothing changed", command, extra={"command": command})
        return result

    def update_phase_text(self, phase_id: str, changes: dict) -> MutationResult:
        """Apply a free-text phase edit now and persist it after the quiet period."""
        unknown = set(changes) - set(PHASE_TEXT_FIELDS)
        if unknown:
            raise ValidationError("Not a free-text phase field", details={"fields": sorted(unknown)})

        with self._lock:
            result = update_phase(self._load(), phase_id, changes)
            if result.found:
                self._graph = result.graph
                self._schedule_save()
        return result

    def flush(self) -> None:
        """Persist a pending debounced edit immediately."""
        with self._lock:
            self._cancel_timer()
            if self._pending:
                self._save("flush")

    @property
    def has_pending_save(self) -> bool:
        return self._pending

    # ── Save error ───────────────────────────────────────────────────────

    @property
    def save_error(self) -> str | None:
        return str(self._save_error) if self._save_error else None

    def dismiss_save_error(self) -> None:
        self._save_error = None

    # ── Internals ────────────────────────────────────────────────────────

    def _schedule_save(self) -> None:
        self._cancel_timer()
        self._pending = True
        if self.debounce_ms > 0:
            self._timer = threading.Timer(self.debounce_ms / 1000.0, self.flush)
            self._timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _save(self, command: str) -> None:
        self._pending = False
        try:
            self.store.save_state(self._graph.to_dict())
        except PersistenceError as exc:
            self._save_error = exc
            logger.error(
                "Saving workspace failed after %s: %s", command, exc,
                exc_info=True, extra={"command": command, "backend": self.store.name},
            )
        else:
            self._save_error = None


def init_engine(app, store) -> WorkspaceEngine:
    engine = WorkspaceEngine(store, debounce_ms=app.config.get("SAVE_DEBOUNCE_MS", 400))
    app.extensions[EXTENSION_KEY] = engine
    return engine


def get_engine() -> WorkspaceEngine:
    return current_app.extensions[EXTENSION_KEY]

"""
Watch the world-state document and invalidate the relationship graph cache
when it changes on disk.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .documents import WORLD_STATE_PATH

if TYPE_CHECKING:
    from ..systems.graph_cache import RelationshipGraphCache

logger = logging.getLogger(__name__)


class _GraphEventHandler(FileSystemEventHandler):
    """Forward file events to the watcher."""

    def __init__(self, watcher: "GraphWatcher") -> None:
        self._watcher = watcher

    def on_modified(self, event) -> None:  # type: ignore[override]
        if event.is_directory:
            return
        self._watcher.handle_path(Path(event.src_path))

    def on_created(self, event) -> None:  # type: ignore[override]
        if event.is_directory:
            return
        self._watcher.handle_path(Path(event.src_path))

    def on_moved(self, event) -> None:  # type: ignore[override]
        if event.is_directory:
            return
        # Editors that save via rename land here
        self._watcher.handle_path(Path(event.dest_path))


class GraphWatcher:
    """
    Invalidate a RelationshipGraphCache whenever world-state.yaml changes.

    Without a watcher the cache only notices external edits when its TTL
    runs out or someone calls invalidate().
    """

    def __init__(self, cache: "RelationshipGraphCache", data_dir: str | Path) -> None:
        self._cache = cache
        self.data_dir = Path(data_dir)

        self._observer: Observer | None = None
        self._lock = threading.Lock()
        self.invalidations = 0

    @property
    def world_state_path(self) -> Path:
        return self.data_dir / WORLD_STATE_PATH

    @property
    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start_watching(self) -> bool:
        """Start the observer thread. Returns False if the directory is missing."""
        if self.is_running:
            return True

        if not self.data_dir.exists():
            logger.warning(f"World data directory not found: {self.data_dir}")
            return False

        observer = Observer()
        try:
            observer.schedule(_GraphEventHandler(self), str(self.data_dir), recursive=False)
            observer.start()
        except Exception as exc:
            logger.error(f"Graph watcher failed to start: {exc}")
            return False

        self._observer = observer
        logger.info(f"Watching {self.world_state_path} for relationship changes")
        return True

    def stop_watching(self) -> None:
        """Stop the observer and wait for it to exit."""
        if self._observer is None:
            return

        self._observer.stop()
        self._observer.join(timeout=2)
        self._observer = None
        logger.info(f"Stopped watching {self.world_state_path}")

    def handle_path(self, path: Path) -> bool:
        """Invalidate the cache if path is the world-state document."""
        if path.name != WORLD_STATE_PATH:
            return False

        try:
            if path.resolve().parent != self.data_dir.resolve():
                return False
        except OSError:
            return False

        with self._lock:
            self._cache.invalidate()
            self.invalidations += 1
        logger.debug(f"Relationship graph invalidated by change to {path.name}")
        return True

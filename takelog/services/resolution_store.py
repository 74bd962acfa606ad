"""In-memory store of pending duplicate resolutions with TTL.

Holds at most one pending workflow per project; storing a new one for the
same project supersedes the previous handle.
"""

import threading
import time
from dataclasses import dataclass, field
from uuid import uuid4

from takelog.schemas.resolution import ResolutionStrategy, WorkflowState
from takelog.schemas.take import ConflictSet, LogSheet, TakeEditRequest


@dataclass
class PendingResolution:
    project_id: str
    request: TakeEditRequest
    candidate: LogSheet
    conflicts: ConflictSet
    strategies: list[ResolutionStrategy]
    state: WorkflowState = WorkflowState.AWAITING_DECISION
    handle: str = field(default_factory=lambda: str(uuid4()))
    created_at: float = field(default_factory=time.monotonic)


class ResolutionStore:
    """Thread-safe in-memory store with TTL-based expiration."""

    def __init__(self, ttl_seconds: int = 1800) -> None:
        self._store: dict[str, PendingResolution] = {}
        self._by_project: dict[str, str] = {}
        self._lock = threading.Lock()
        self._ttl = ttl_seconds

    def get(self, handle: str) -> PendingResolution | None:
        """Get a pending resolution, or None if not found/expired."""
        with self._lock:
            entry = self._store.get(handle)
            if entry is None:
                return None
            if time.monotonic() - entry.created_at > self._ttl:
                self._remove(handle)
                return None
            return entry

    def put(self, pending: PendingResolution) -> PendingResolution | None:
        """Store a pending resolution.

        Returns:
            The superseded resolution of the same project, if any
        """
        with self._lock:
            self._cleanup_expired()
            superseded = None
            previous = self._by_project.get(pending.project_id)
            if previous is not None and previous != pending.handle:
                superseded = self._remove(previous)
            self._store[pending.handle] = pending
            self._by_project[pending.project_id] = pending.handle
            return superseded

    def pop(self, handle: str) -> PendingResolution | None:
        with self._lock:
            return self._remove(handle)

    def pop_project(self, project_id: str) -> PendingResolution | None:
        """Remove and return the project's pending resolution, if any."""
        with self._lock:
            handle = self._by_project.get(project_id)
            return self._remove(handle) if handle is not None else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _remove(self, handle: str) -> PendingResolution | None:
        """Remove one entry (called under lock)."""
        entry = self._store.pop(handle, None)
        if entry is not None and self._by_project.get(entry.project_id) == handle:
            del self._by_project[entry.project_id]
        return entry

    def _cleanup_expired(self) -> None:
        """Remove expired entries (called under lock)."""
        now = time.monotonic()
        expired = [k for k, v in self._store.items() if now - v.created_at > self._ttl]
        for k in expired:
            self._remove(k)

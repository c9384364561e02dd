from __future__ import annotations

from dataclasses import asdict, dataclass
from threading import Lock

from kafka_governance.core.time import utcnow


@dataclass
class RuntimeState:
    started_at: str | None = None
    shutdown_started_at: str | None = None
    startup_count: int = 0
    seeded: bool = False

    @property
    def is_shutting_down(self) -> bool:
        return self.shutdown_started_at is not None


_lock = Lock()
_state = RuntimeState()


def mark_startup(*, seeded: bool = False) -> None:
    with _lock:
        _state.started_at = utcnow().isoformat()
        _state.shutdown_started_at = None
        _state.startup_count += 1
        _state.seeded = seeded


def mark_shutdown_started() -> None:
    with _lock:
        _state.shutdown_started_at = utcnow().isoformat()


def snapshot_runtime_state() -> dict[str, object]:
    with _lock:
        snapshot = asdict(_state)
        snapshot["is_shutting_down"] = _state.is_shutting_down
        return snapshot

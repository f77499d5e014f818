"""Per-task and per-batch progress tracking keyed by task id."""

from collections.abc import Callable
from dataclasses import dataclass

from mediaferry.models import ProgressSnapshot

ProgressCallback = Callable[[ProgressSnapshot], None]


@dataclass
class _TaskProgress:
    total: int
    transferred: int = 0
    percentage: int = 0
    attempt: int = 0
    indeterminate: bool = False
    done: bool = False


def _percentage(transferred: int, total: int) -> int:
    if total <= 0:
        return 0
    return (100 * transferred) // total


class ProgressAggregator:
    """
    Turns raw byte counters into snapshots.

    Within one attempt a task's percentage never goes down, and it stays at or
    below 99 until `complete` is called, so 100 means the task succeeded. A new
    attempt starts again from whatever byte count the strategy reports.
    """

    def __init__(self, on_progress: ProgressCallback | None = None):
        self._on_progress = on_progress
        self._tasks: dict[str, _TaskProgress] = {}

    def register(self, task_id: str, total_bytes: int) -> None:
        self._tasks[task_id] = _TaskProgress(total=total_bytes)

    def start_attempt(self, task_id: str, transferred: int = 0, indeterminate: bool = False) -> None:
        """Reset the task's counters at an attempt boundary and emit a snapshot."""
        state = self._tasks.get(task_id)
        if state is None or state.done:
            return
        state.attempt += 1
        state.indeterminate = indeterminate
        state.transferred = min(max(transferred, 0), state.total)
        state.percentage = min(_percentage(state.transferred, state.total), 99)
        self._emit(task_id, state)

    def mark_indeterminate(self, task_id: str) -> None:
        """Flag the current attempt as unobservable without lowering its percentage."""
        state = self._tasks.get(task_id)
        if state is None or state.done or state.indeterminate:
            return
        state.indeterminate = True
        self._emit(task_id, state)

    def update(self, task_id: str, bytes_transferred: int) -> None:
        """Record bytes transferred so far in the current attempt."""
        state = self._tasks.get(task_id)
        if state is None or state.done:
            return
        transferred = min(bytes_transferred, state.total)
        if transferred <= state.transferred:
            return
        state.transferred = transferred
        state.percentage = max(state.percentage, min(_percentage(transferred, state.total), 99))
        self._emit(task_id, state)

    def complete(self, task_id: str) -> None:
        state = self._tasks.get(task_id)
        if state is None or state.done:
            return
        state.done = True
        state.indeterminate = False
        state.transferred = state.total
        state.percentage = 100
        self._emit(task_id, state)

    def snapshot(self, task_id: str) -> ProgressSnapshot | None:
        state = self._tasks.get(task_id)
        if state is None:
            return None
        return self._snapshot(task_id, state)

    def batch_percentage(self) -> int:
        """Bytes transferred across all registered tasks as a percentage."""
        total = sum(s.total for s in self._tasks.values())
        transferred = sum(s.transferred for s in self._tasks.values())
        if total and all(s.done for s in self._tasks.values()):
            return 100
        return min(_percentage(transferred, total), 99)

    def discard(self, task_id: str) -> None:
        self._tasks.pop(task_id, None)

    def clear(self) -> None:
        self._tasks.clear()

    def __len__(self) -> int:
        return len(self._tasks)

    def _snapshot(self, task_id: str, state: _TaskProgress) -> ProgressSnapshot:
        return ProgressSnapshot(
            task_id=task_id,
            bytes_transferred=state.transferred,
            total_bytes=state.total,
            percentage=state.percentage,
            attempt=state.attempt,
            indeterminate=state.indeterminate,
        )

    def _emit(self, task_id: str, state: _TaskProgress) -> None:
        if self._on_progress is not None:
            self._on_progress(self._snapshot(task_id, state))

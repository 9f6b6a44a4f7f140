import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Hashable, Iterable, Protocol


logger = logging.getLogger(__name__)

ADD = "add"
REMOVE = "remove"

SUCCEEDED = "succeeded"
FAILED = "failed"
CANCELLED = "cancelled"


class AssociationStore(Protocol):
    def add_association(self, parent_id, child_id) -> None: ...

    def remove_association(self, parent_id, child_id) -> None: ...


class SelectionState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    COMMITTING = "committing"


class SelectionStateError(RuntimeError):
    pass


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class ChangeResult:
    item_id: Hashable
    action: str
    status: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == SUCCEEDED


@dataclass
class BatchResult:
    results: dict = field(default_factory=dict)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.cancelled and all(r.ok for r in self.results.values())

    @property
    def succeeded(self) -> dict:
        return {k: r for k, r in self.results.items() if r.status == SUCCEEDED}

    @property
    def failed(self) -> dict:
        return {k: r for k, r in self.results.items() if r.status == FAILED}


def _log_late_result(item_id, action: str, fut: Future) -> None:
    if fut.cancelled():
        return
    exc = fut.exception()
    if exc is not None:
        logger.warning("Late %s for %r after cancellation failed: %s", action, item_id, exc)
    else:
        logger.warning("Late %s for %r after cancellation succeeded; result ignored.", action, item_id)


@dataclass
class SelectionDiff:
    """
    Net add/remove changes of one multi-select association editor.

    ``original`` is what the store held when the editor opened, ``selected``
    is what is currently checked, and ``pending_changes`` maps each id whose
    membership differs between the two to the action that reconciles it.
    """

    store: AssociationStore
    parent_id: Hashable
    max_workers: int = 8
    poll_seconds: float = 0.05
    original: set = field(default_factory=set)
    selected: set = field(default_factory=set)
    pending_changes: dict = field(default_factory=dict)
    state: SelectionState = SelectionState.CLOSED
    _active_token: CancellationToken | None = field(default=None, repr=False)

    @property
    def pending_count(self) -> int:
        return len(self.pending_changes)

    def initialize(self, original: Iterable) -> None:
        if self.state is SelectionState.COMMITTING:
            raise SelectionStateError("Cannot reinitialize while a commit is in flight.")
        self.original = set(original)
        self.selected = set(self.original)
        self.pending_changes = {}
        self.state = SelectionState.OPEN

    def toggle(self, item_id, checked: bool) -> None:
        if self.state is not SelectionState.OPEN:
            raise SelectionStateError(f"Cannot toggle while {self.state.value}.")
        was_original = item_id in self.original
        if checked:
            self.selected.add(item_id)
            if was_original:
                self.pending_changes.pop(item_id, None)
            else:
                self.pending_changes[item_id] = ADD
        else:
            self.selected.discard(item_id)
            if was_original:
                self.pending_changes[item_id] = REMOVE
            else:
                self.pending_changes.pop(item_id, None)

    def cancel(self) -> None:
        if self.state is SelectionState.COMMITTING:
            # The committing thread sees the token and closes the editor itself.
            if self._active_token is not None:
                self._active_token.cancel()
            return
        self._close()

    def commit(self, token: CancellationToken | None = None) -> BatchResult:
        if self.state is not SelectionState.OPEN:
            raise SelectionStateError(f"Cannot commit while {self.state.value}.")
        if not self.pending_changes:
            self._close()
            return BatchResult()

        token = token or CancellationToken()
        changes = dict(self.pending_changes)
        self._active_token = token
        self.state = SelectionState.COMMITTING
        logger.info("Committing %d change(s) for %r", len(changes), self.parent_id)

        result = BatchResult()
        futures: dict[Future, tuple] = {}
        pool = ThreadPoolExecutor(
            max_workers=max(1, min(int(self.max_workers or 1), len(changes))),
            thread_name_prefix="selection-commit",
        )
        try:
            for item_id, action in changes.items():
                if token.cancelled:
                    break
                call = self.store.add_association if action == ADD else self.store.remove_association
                futures[pool.submit(call, self.parent_id, item_id)] = (item_id, action)

            outstanding = set(futures)
            while outstanding and not token.cancelled:
                done, outstanding = wait(outstanding, timeout=self.poll_seconds, return_when=FIRST_COMPLETED)
                for fut in done:
                    item_id, action = futures[fut]
                    result.results[item_id] = self._settle(fut, item_id, action)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
            self._active_token = None

        if token.cancelled:
            result.cancelled = True
            for fut, (item_id, action) in futures.items():
                if item_id not in result.results:
                    result.results[item_id] = ChangeResult(item_id, action, CANCELLED)
                    fut.add_done_callback(lambda f, i=item_id, a=action: _log_late_result(i, a, f))
            for item_id, action in changes.items():
                result.results.setdefault(item_id, ChangeResult(item_id, action, CANCELLED))
            logger.info("Commit for %r cancelled; %d change(s) settled before cancel.",
                        self.parent_id, len(result.succeeded) + len(result.failed))
            self._close()
            return result

        self._apply(result)
        if result.ok:
            self._close()
        else:
            self.state = SelectionState.OPEN
            logger.warning("Commit for %r finished with %d failure(s) out of %d.",
                           self.parent_id, len(result.failed), len(changes))
        return result

    def _settle(self, fut: Future, item_id, action: str) -> ChangeResult:
        try:
            fut.result()
        except Exception as exc:
            logger.warning("Failed to %s %r on %r: %s", action, item_id, self.parent_id, exc)
            return ChangeResult(item_id, action, FAILED, error=str(exc) or exc.__class__.__name__)
        return ChangeResult(item_id, action, SUCCEEDED)

    def _apply(self, result: BatchResult) -> None:
        # Fold what the store accepted into original; failures stay pending.
        for item_id, change in result.succeeded.items():
            if change.action == ADD:
                self.original.add(item_id)
            else:
                self.original.discard(item_id)
            self.pending_changes.pop(item_id, None)

    def _close(self) -> None:
        self.selected = set()
        self.pending_changes = {}
        self.state = SelectionState.CLOSED

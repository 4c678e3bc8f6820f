# Overview: Forward-step / compensation runner for operations spanning several documents.

"""
Saga runner

The store only guarantees single-document atomicity, so every operation that
writes more than one document runs its writes as saga steps:

    saga = Saga("account.transfer", failure_key="account.transfer.failed")
    with saga:
        debit = saga.run("debit", write_debit, compensate=undo_debit)
        saga.run("credit", write_credit, compensate=undo_credit)

- Steps execute immediately, in order; each compensation receives the value
  its forward step returned (typically the WriteResult carrying the revision
  the step produced, so the undo is itself revision-checked).
- On an exception, compensations of completed steps run in reverse order.
  A failing compensation is logged and collected as a SecondaryFailure; the
  remaining compensations still run.
- Store/infrastructure errors surface as one OperationFailedError(failure_key)
  chained to the triggering exception. ServiceErrors raised mid-saga (business
  rules) are re-raised unchanged after the unwind.
- Sagas nest by passing the outer saga into helpers that register their steps
  on it, so one unwind covers the whole request.
- A document written by several steps is undone once, to its state before the
  first of them: helpers keep that snapshot and the latest revision in
  `saga.touched` and register a compensation only for the first write.
"""
from __future__ import annotations

import logging
from typing import Any, Callable

from .errors import OperationFailedError, SecondaryFailure, ServiceError

logger = logging.getLogger(__name__)


class Saga:
    def __init__(self, name: str, *, failure_key: str, **failure_vars):
        self.name = name
        self.failure_key = failure_key
        self.failure_vars = failure_vars
        self.completed: list[str] = []
        self.secondary_failures: list[SecondaryFailure] = []
        self._compensations: list[tuple[str, Callable[[Any], None], Any]] = []
        # Per-document state for helpers whose steps write the same document
        # more than once (see stock_service.post_movement).
        self.touched: dict[str, Any] = {}

    def run(self, step: str, action: Callable[[], Any],
            compensate: Callable[[Any], None] | None = None) -> Any:
        """Execute one forward step and remember how to undo it."""
        result = action()
        self.completed.append(step)
        if compensate is not None:
            self._compensations.append((step, compensate, result))
        return result

    def compensate(self) -> list[SecondaryFailure]:
        """Undo completed steps newest-first. Never raises."""
        failures: list[SecondaryFailure] = []
        while self._compensations:
            step, undo, result = self._compensations.pop()
            try:
                undo(result)
                logger.debug("%s: compensated %s", self.name, step)
            except Exception as exc:
                logger.error("%s: compensation of %s failed: %s", self.name, step, exc)
                failures.append(SecondaryFailure(step=step, error=exc))
        self.secondary_failures.extend(failures)
        return failures

    def __enter__(self) -> "Saga":
        logger.debug("%s: started", self.name)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is None:
            logger.debug("%s: committed %d steps", self.name, len(self.completed))
            return False
        if not isinstance(exc, Exception):
            return False

        failures = self.compensate()
        if isinstance(exc, ServiceError) and not isinstance(exc, OperationFailedError):
            logger.info("%s: rejected with %s after %d steps, unwound", self.name, exc.key, len(self.completed))
            return False

        logger.warning(
            "%s: failed at step %d (%s); %s (%d compensation failures)",
            self.name,
            len(self.completed) + 1,
            type(exc).__name__,
            self.failure_key,
            len(failures),
        )
        raise OperationFailedError(
            self.failure_key,
            cause=exc,
            secondary_failures=failures,
            **self.failure_vars,
        ) from exc

# Overview: Workflow boundary (single DB transaction or compensating undo stack).

"""
Every multi-step ledger workflow (purchase/sale create, update, delete, due
payment) runs inside workflow_scope(name).

Two modes, selected by LEDGER_ATOMIC_WORKFLOWS:

ATOMIC (default):
- Each step only flushes.
- The scope commits once at the end; any error rolls back every step.
- Undo entries are recorded but never run.

COMPENSATING:
- Each step commits before the next begins.
- On error the open transaction is rolled back, then the undo entries run
  LIFO, each followed by its own commit. A failing undo is rolled back,
  logged and skipped; the remaining undos still run.
- The caller always receives the original error.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable

from flask import current_app

from ..extensions import db

logger = logging.getLogger(__name__)


class CompensationStack:
    """Ordered (description, undo) entries, unwound last-in first-out."""

    def __init__(self, name: str):
        self.name = name
        self._entries: list[tuple[str, Callable[[], object]]] = []

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def descriptions(self) -> list[str]:
        return [description for description, _ in self._entries]

    def push(self, description: str, undo: Callable[[], object]) -> None:
        self._entries.append((description, undo))

    def discard(self) -> None:
        self._entries.clear()

    def unwind(self) -> list[str]:
        """
        Run every undo, newest first.

        Returns the descriptions of undos that failed. Failures never raise.
        """
        failed = []
        while self._entries:
            description, undo = self._entries.pop()
            try:
                undo()
                db.session.commit()
            except Exception:
                db.session.rollback()
                logger.exception("Compensation failed in %s: %s", self.name, description)
                failed.append(description)
            else:
                logger.info("Compensated %s: %s", self.name, description)
        return failed


class WorkflowScope:
    """Handle passed to workflow code inside workflow_scope()."""

    def __init__(self, name: str, atomic: bool):
        self.name = name
        self.atomic = atomic
        self.compensations = CompensationStack(name)

    def step(self, description: str, undo: Callable[[], object] | None = None) -> None:
        """
        Mark the end of one mutating step.

        Flushes (atomic) or commits (compensating), then records the undo.
        The undo is only recorded once the step is durable.
        """
        if self.atomic:
            db.session.flush()
        else:
            db.session.commit()
        if undo is not None:
            self.compensations.push(description, undo)


def atomic_workflows_enabled() -> bool:
    return bool(current_app.config.get("LEDGER_ATOMIC_WORKFLOWS", True))


@contextmanager
def workflow_scope(name: str):
    scope = WorkflowScope(name, atomic_workflows_enabled())
    try:
        yield scope
        db.session.commit()
    except Exception:
        db.session.rollback()
        if scope.atomic:
            scope.compensations.discard()
        else:
            failed = scope.compensations.unwind()
            if failed:
                logger.error("%s left %d step(s) uncompensated: %s", name, len(failed), ", ".join(failed))
        raise

"""
Write orchestrator.
The table offers no transaction to this layer, so multi-row writes run as a
saga: each committed step registers an undo, and a failure undoes the
committed steps in reverse order before the original error propagates.
"""

import logging

logger = logging.getLogger(__name__)


class Saga:
    """
    Usage:

        with Saga("create group schedule") as saga:
            group = saga.run(lambda: insert_group(), lambda g: delete_group(g))
            saga.run(lambda: insert_member(group))
    """

    def __init__(self, name: str):
        self.name = name
        self._undo: list[tuple] = []

    @property
    def committed(self) -> int:
        return len(self._undo)

    def run(self, action, compensate=None, label: str = ""):
        """Execute one step; remember how to undo it once it has committed."""
        result = action()
        step = label or f"step {len(self._undo) + 1}"
        if compensate is not None:
            self._undo.append((step, lambda: compensate(result)))
        else:
            self._undo.append((step, None))
        return result

    def rollback(self):
        """Undo committed steps newest first. Undo failures are logged only."""
        while self._undo:
            step, undo = self._undo.pop()
            if undo is None:
                continue
            try:
                undo()
                logger.info("Saga %s: compensated %s", self.name, step)
            except Exception:
                logger.exception("Saga %s: compensation of %s failed", self.name, step)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            logger.warning("Saga %s failed after %d step(s): %s", self.name, self.committed, exc)
            self.rollback()
        else:
            self._undo.clear()
        return False

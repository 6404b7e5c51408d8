"""
Compensation tokens for check-then-act resource consumption.

A service that consumes a shared resource (a pass use, credit balance)
hands back a ``Compensation`` describing how to give it back. The
orchestrator collects them and calls ``run()`` if a later step of the same
logical operation fails. Undo steps execute newest first.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Tuple

logger = logging.getLogger(__name__)


@dataclass
class Compensation:
    label: str = ""
    _steps: List[Tuple[str, Callable[[], object]]] = field(default_factory=list)
    _done: bool = False

    def add(self, description: str, fn: Callable[[], object]) -> "Compensation":
        self._steps.append((description, fn))
        return self

    def add_checked(self, description: str, fn: Callable[[], bool]) -> "Compensation":
        """Like ``add`` for steps that report success; a falsy result counts as a failed step."""

        def step():
            if not fn():
                raise RuntimeError(f"{description}: no row restored")

        return self.add(description, step)

    def extend(self, other: "Compensation") -> "Compensation":
        if other is not None:
            self._steps.extend(other._steps)
        return self

    def __len__(self) -> int:
        return len(self._steps)

    def run(self) -> List[str]:
        """Run every undo step once. Returns descriptions of steps that failed."""
        if self._done:
            return []
        self._done = True
        failed = []
        for description, fn in reversed(self._steps):
            try:
                fn()
            except Exception:
                logger.exception("compensation step failed (%s): %s", self.label, description)
                failed.append(description)
        if failed:
            logger.error("compensation %s left %d step(s) unapplied", self.label, len(failed))
        else:
            logger.info("compensation %s applied %d step(s)", self.label, len(self._steps))
        return failed

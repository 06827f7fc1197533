from __future__ import annotations

import logging
from typing import Any, Callable

from ..errors import PartialSideEffectFailure

log = logging.getLogger(__name__)


class SideEffects:
    """Per-operation outbox for best-effort writes.

    Effects queued here run after the primary transition has been written.
    A failing effect is logged and skipped; it never reaches the caller.
    """

    def __init__(self) -> None:
        self._pending: list[tuple[str, Callable[..., Any], tuple, dict]] = []

    def __len__(self) -> int:
        return len(self._pending)

    def defer(self, label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self._pending.append((label, fn, args, kwargs))

    def flush(self) -> list[PartialSideEffectFailure]:
        failures: list[PartialSideEffectFailure] = []
        pending, self._pending = self._pending, []
        for label, fn, args, kwargs in pending:
            try:
                fn(*args, **kwargs)
            except Exception as e:
                failure = PartialSideEffectFailure(label, e)
                log.warning("%s", failure)
                failures.append(failure)
        return failures


def run_best_effort(label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
    """Run one secondary write inline; log and return False if it fails."""
    try:
        fn(*args, **kwargs)
        return True
    except Exception as e:
        log.warning("%s", PartialSideEffectFailure(label, e))
        return False
